"""Pytest configuration and fixtures."""
import os

# Must be set before app.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_SERVICE_TOKEN", "test-service-token")
os.environ.setdefault("DOMAIN_RECHECK_DELAY_SECONDS", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import uuid
import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt

from app.config import settings
from app.db.base_class import Base
from app.db.session import db_registry
from app.services.dns_resolver import DnsAnswer, DnsLookupError

SERVER_IP = settings.SERVER_IP
SERVICE_TOKEN = "test-service-token"


# --- Fakes ---

class FakeResolver:
    """In-memory DoH stand-in: ``(name, type) → [DnsAnswer] | Exception``."""

    def __init__(self, records=None):
        self.records = dict(records or {})
        self.queries = []

    def set_a(self, name, *ips):
        self.records[(name, "A")] = [DnsAnswer(type=1, data=ip) for ip in ips]

    def set_txt(self, name, *values):
        self.records[(name, "TXT")] = [DnsAnswer(type=16, data=v) for v in values]

    def fail(self, name, record_type, message="resolver unavailable"):
        self.records[(name, record_type)] = DnsLookupError(message)

    def query(self, name, record_type):
        self.queries.append((name, record_type))
        answer = self.records.get((name, record_type), [])
        if isinstance(answer, Exception):
            raise answer
        return list(answer)


# --- DB fixtures ---

@pytest.fixture
def db_session():
    """Fresh in-memory SQLite schema per test."""
    import app.models  # noqa: F401

    db_registry.reconfigure("sqlite://")
    Base.metadata.create_all(bind=db_registry.engine)
    db = db_registry.session()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=db_registry.engine)
        db_registry.reconfigure(None)


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
async def client(db_session, resolver):
    """Async HTTP client with the DoH resolver swapped for ``resolver``."""
    from app.main import app as fastapi_app
    from app.api import deps
    from app.middleware.custom_domain import invalidate_domain_cache

    fastapi_app.dependency_overrides[deps.get_dns_resolver] = lambda: resolver
    invalidate_domain_cache()

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://localhost") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()
    invalidate_domain_cache()


# --- Helpers ---

def create_profile(db, username="alice", user_id=None):
    """Helper: insert a profile row and return it."""
    from app.models.profile import LinkProfile

    profile = LinkProfile(id=uuid.uuid4(), user_id=user_id or uuid.uuid4(), username=username)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def auth_headers(user_id) -> dict:
    """Helper: bearer header for a user id."""
    token = jwt.encode({"sub": str(user_id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}
