"""Patient model definition using SQLAlchemy Core."""

from sqlalchemy import JSON, Column, Date, DateTime, Index, String, Table, Text, func

from clinicflow.models.base import metadata

patients = Table(
    "patients",
    metadata,
    Column("id", String(36), primary_key=True),
    # Partition key: every query is filtered by it
    Column("tenant_id", String(36), nullable=False),
    Column("name", Text, nullable=False),
    Column("email", Text),
    Column("phone", String(40), nullable=False),
    Column("date_of_birth", Date),
    Column("tags", JSON, nullable=False, default=list),
    Column("notes", Text),
    Column("photo_url", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("created_by", String(128), nullable=False),
)

Index("idx_patients_tenant_created", patients.c.tenant_id, patients.c.created_at)
