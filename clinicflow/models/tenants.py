"""Tenant and membership models definition using SQLAlchemy Core."""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)

from clinicflow.models.base import metadata

tenants = Table(
    "tenants",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", Text, nullable=False),
    Column("owner_id", String(128), nullable=False, index=True),
    # Example: {"address": "...", "phone": "...", "email": "...", "logo_url": "..."}
    Column("settings", JSON, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

tenant_members = Table(
    "tenant_members",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "tenant_id",
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("user_id", String(128), nullable=False, index=True),
    Column("role", String(20), nullable=False),
    Column("email", Text, nullable=False),
    Column("display_name", Text, nullable=False),
    Column("joined_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("invited_by", String(128)),
    UniqueConstraint("tenant_id", "user_id", name="tenant_members_tenant_user_key"),
    CheckConstraint("role IN ('owner', 'staff', 'readonly')", name="tenant_members_role_check"),
)

Index("idx_tenant_members_tenant", tenant_members.c.tenant_id)

# At most one owner per clinic
Index(
    "tenant_members_single_owner",
    tenant_members.c.tenant_id,
    unique=True,
    postgresql_where=text("role = 'owner'"),
    sqlite_where=text("role = 'owner'"),
)
