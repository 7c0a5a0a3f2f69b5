"""Patient schemas for request/response validation."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


def _clean_tags(tags: list[str]) -> list[str]:
    return [tag.strip() for tag in tags if tag and tag.strip()]


class PatientBase(BaseModel):
    """Base schema for patient."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str = Field(..., min_length=1, max_length=40)
    date_of_birth: date | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None
    photo_url: str | None = None

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: list[str]) -> list[str]:
        """Drop blank tags, keep order."""
        return _clean_tags(v)


class PatientCreate(PatientBase):
    """Schema for creating a patient."""


class PatientUpdate(BaseModel):
    """Schema for updating a patient; only the sent fields are merged."""

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, min_length=1, max_length=40)
    date_of_birth: date | None = None
    tags: list[str] | None = None
    notes: str | None = None
    photo_url: str | None = None

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: list[str] | None) -> list[str] | None:
        """Drop blank tags, keep order."""
        return None if v is None else _clean_tags(v)


class Patient(PatientBase):
    """Patient as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    email: str | None = None
    created_at: datetime
    updated_at: datetime
    created_by: str
