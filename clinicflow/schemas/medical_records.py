"""Medical record schemas for request/response validation."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProductUsed(BaseModel):
    """Product applied during a procedure."""

    name: str = Field(..., min_length=1)
    batch: str = ""
    dosage: str = ""


class RecordRevision(BaseModel):
    """Immutable audit entry describing one edit."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    user_id: str
    user_name: str
    changes: str


def _unique_areas(areas: list[str]) -> list[str]:
    seen: list[str] = []
    for area in areas:
        area = area.strip()
        if area and area not in seen:
            seen.append(area)
    return seen


class MedicalRecordCreate(BaseModel):
    """Schema for recording a procedure."""

    procedure_type: str = Field(..., min_length=1, max_length=255)
    chief_complaint: str = ""
    professional_assessment: str = ""
    procedure_details: str = ""
    products_used: list[ProductUsed] = Field(default_factory=list)
    treated_areas: list[str] = Field(default_factory=list)
    post_care_instructions: str = ""
    additional_notes: str | None = None

    @field_validator("treated_areas")
    @classmethod
    def dedupe_areas(cls, v: list[str]) -> list[str]:
        """Treated areas are a set; keep the first occurrence."""
        return _unique_areas(v)


class MedicalRecordUpdate(BaseModel):
    """Fields to change plus a human-readable summary of the change."""

    procedure_type: str | None = Field(None, min_length=1, max_length=255)
    chief_complaint: str | None = None
    professional_assessment: str | None = None
    procedure_details: str | None = None
    products_used: list[ProductUsed] | None = None
    treated_areas: list[str] | None = None
    post_care_instructions: str | None = None
    additional_notes: str | None = None
    change_description: str = Field(..., min_length=1, max_length=1000)

    @field_validator("treated_areas")
    @classmethod
    def dedupe_areas(cls, v: list[str] | None) -> list[str] | None:
        """Treated areas are a set; keep the first occurrence."""
        return None if v is None else _unique_areas(v)


class MedicalRecord(BaseModel):
    """Medical record as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    patient_id: str
    procedure_type: str
    chief_complaint: str
    professional_assessment: str
    procedure_details: str
    products_used: list[ProductUsed]
    treated_areas: list[str]
    post_care_instructions: str
    additional_notes: str | None = None
    attachments: list[dict] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    created_by: str
    updated_by: str | None = None
    revision_history: list[RecordRevision] = Field(default_factory=list)
