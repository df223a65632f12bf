"""
Public domain resolution API

Unauthenticated lookup used by the profile frontend: which profile does a
custom domain serve? Only active domains resolve.
"""
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api import deps
from app.crud import crud_custom_domain

router = APIRouter()


class DomainResolution(BaseModel):
    domain: str
    profile_id: UUID
    username: str


@router.get("/resolve-domain", response_model=DomainResolution)
def resolve_domain(
    request: Request,
    domain: Optional[str] = Query(None),
    db: Session = Depends(deps.get_db),
) -> Any:
    """
    Resolve by:
      1. ?domain=links.example.com
      2. Host header (fallback)
    """
    host = (domain or request.headers.get("host", "")).split(":")[0].strip().lower()
    record = crud_custom_domain.get_active_by_host(db, host) if host else None
    if not record:
        raise HTTPException(status_code=404, detail="Domain not found")
    return DomainResolution(
        domain=record.domain,
        profile_id=record.profile_id,
        username=record.profile.username,
    )
