"""User directory models definition using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    String,
    Table,
    Text,
    false,
    func,
)

from clinicflow.models.base import metadata

users = Table(
    "users",
    metadata,
    # Firebase uid (SOURCE OF TRUTH for identity)
    Column("account_id", String(128), primary_key=True),
    Column("email", Text, nullable=False),
    # Canonical email used for invite lookups
    Column("email_lower", Text, nullable=False, index=True),
    Column("display_name", Text, nullable=False),
    Column("photo_url", Text),
    # Account state
    Column("is_active", Boolean, nullable=False, server_default=false()),
    Column("tenant_id", String(36), index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

# Denormalized copy read by directory lookups
user_profiles = Table(
    "user_profiles",
    metadata,
    Column("account_id", String(128), primary_key=True),
    Column("email", Text, nullable=False),
    Column("email_lower", Text, nullable=False, index=True),
    Column("display_name", Text, nullable=False),
    Column("photo_url", Text),
    Column("bio", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
