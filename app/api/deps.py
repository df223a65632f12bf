from typing import Generator
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.crud.crud_custom_domain import SqlDomainStore
from app.db.session import db_registry
from app.logging_config import user_id_ctx
from app.services.dns_resolver import DohResolver
from app.services.domain_verification import DomainVerificationEngine

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    db = db_registry.session()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> UUID:
    """User id (``sub``) from the bearer JWT issued by the auth service."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = jwt.decode(
            credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM],
            options={"verify_aud": False},
        )
        user_id = UUID(str(payload["sub"]))
    except (JWTError, KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id_ctx.set(str(user_id))
    return user_id


def require_service_token(x_service_token: str = Header("", alias="X-Service-Token")) -> None:
    """Internal triggers (scheduler, ops) authenticate with a shared token."""
    if not settings.ADMIN_SERVICE_TOKEN:
        return  # development: no token configured
    if x_service_token != settings.ADMIN_SERVICE_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid service token",
        )


def get_dns_resolver() -> DohResolver:
    return DohResolver()


def get_verification_engine(
    db: Session = Depends(get_db),
    resolver: DohResolver = Depends(get_dns_resolver),
) -> DomainVerificationEngine:
    return DomainVerificationEngine(SqlDomainStore(db), resolver)
