"""Medical record model definition using SQLAlchemy Core."""

from sqlalchemy import JSON, Column, DateTime, Index, String, Table, Text, func

from clinicflow.models.base import metadata

# No foreign key to patients: deleting a patient keeps its records.
medical_records = Table(
    "medical_records",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("tenant_id", String(36), nullable=False),
    Column("patient_id", String(36), nullable=False),
    Column("procedure_type", Text, nullable=False),
    Column("chief_complaint", Text, nullable=False),
    Column("professional_assessment", Text, nullable=False),
    Column("procedure_details", Text, nullable=False),
    # [{"name": "...", "batch": "...", "dosage": "..."}]
    Column("products_used", JSON, nullable=False, default=list),
    Column("treated_areas", JSON, nullable=False, default=list),
    Column("post_care_instructions", Text, nullable=False),
    Column("additional_notes", Text),
    Column("attachments", JSON, nullable=False, default=list),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("created_by", String(128), nullable=False),
    Column("updated_by", String(128)),
    # Append-only: [{"id", "timestamp", "user_id", "user_name", "changes"}]
    Column("revision_history", JSON, nullable=False, default=list),
)

Index(
    "idx_medical_records_tenant_patient_created",
    medical_records.c.tenant_id,
    medical_records.c.patient_id,
    medical_records.c.created_at,
)
