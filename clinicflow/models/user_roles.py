"""Admin role registry model definition using SQLAlchemy Core."""

from sqlalchemy import CheckConstraint, Column, DateTime, String, Table, func, text

from clinicflow.models.base import metadata

user_roles = Table(
    "user_roles",
    metadata,
    # Keyed by account id, independent of tenant membership
    Column("account_id", String(128), primary_key=True),
    Column("role", String(20), nullable=False, server_default=text("'admin'")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("role IN ('admin', 'user')", name="user_roles_role_check"),
)
