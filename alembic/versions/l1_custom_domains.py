"""Add linkprofile and customdomain tables

Revision ID: l1_custom_domains
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision = "l1_custom_domains"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "linkprofile",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("username", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "customdomain",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("profile_id", UUID(as_uuid=True), sa.ForeignKey("linkprofile.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("domain", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending", index=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verification_token", sa.String(64), nullable=True),
        sa.Column("dns_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ssl_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'verifying', 'active', 'failed')",
            name="ck_customdomain_status",
        ),
    )
    # At most one primary domain per profile
    op.create_index(
        "uq_customdomain_primary_per_profile",
        "customdomain",
        ["profile_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
    )


def downgrade() -> None:
    op.drop_index("uq_customdomain_primary_per_profile", table_name="customdomain")
    op.drop_table("customdomain")
    op.drop_table("linkprofile")
