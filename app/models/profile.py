import uuid
from sqlalchemy import Column, String, DateTime, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class LinkProfile(Base):
    """Public profile page. Owned by the profile service; only the columns domain routing needs live here."""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    custom_domains = relationship(
        "CustomDomain",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="CustomDomain.created_at",
    )
