"""
Custom Domain Model

Tracks per-profile custom domain records with DNS verification status.
"""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, CheckConstraint, Index, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.base_class import Base

STATUS_PENDING = "pending"
STATUS_VERIFYING = "verifying"
STATUS_ACTIVE = "active"
STATUS_FAILED = "failed"
DOMAIN_STATUSES = (STATUS_PENDING, STATUS_VERIFYING, STATUS_ACTIVE, STATUS_FAILED)

SSL_PENDING = "pending"
SSL_ACTIVE = "active"


class CustomDomain(Base):
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    profile_id = Column(UUID(as_uuid=True), ForeignKey("linkprofile.id"), nullable=False, index=True)
    domain = Column(String(255), unique=True, nullable=False, index=True)

    status = Column(String(16), nullable=False, default=STATUS_PENDING, index=True)  # pending, verifying, active, failed
    is_primary = Column(Boolean, nullable=False, default=False)

    # DNS Verification
    verification_token = Column(String(64), nullable=True)   # null = legacy domain, A record only
    dns_verified = Column(Boolean, nullable=False, default=False)

    # Mirrors the DNS outcome; no certificate is issued here
    ssl_status = Column(String(16), nullable=False, default=SSL_PENDING)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    profile = relationship("LinkProfile", back_populates="custom_domains")

    __table_args__ = (
        CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in DOMAIN_STATUSES)),
            name="ck_customdomain_status",
        ),
        # At most one primary domain per profile
        Index(
            "uq_customdomain_primary_per_profile",
            "profile_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary = 1"),
        ),
    )
