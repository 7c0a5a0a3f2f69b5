"""Tenant and membership schemas for request/response validation."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class TenantMemberRole(StrEnum):
    """Role held by an account inside one clinic."""

    OWNER = "owner"
    STAFF = "staff"
    READONLY = "readonly"


class TenantSettings(BaseModel):
    """Free-form clinic settings."""

    model_config = ConfigDict(extra="allow")

    address: str | None = None
    phone: str | None = None
    email: str | None = None
    logo_url: str | None = None


class Tenant(BaseModel):
    """Clinic record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    owner_id: str
    settings: TenantSettings = Field(default_factory=TenantSettings)
    created_at: datetime
    updated_at: datetime


class TenantUpdate(BaseModel):
    """Partial update of the clinic name and settings."""

    name: str | None = Field(None, min_length=1, max_length=255)
    address: str | None = None
    phone: str | None = Field(None, max_length=40)
    email: EmailStr | None = None
    logo_url: str | None = None


class TenantMember(BaseModel):
    """Role-bearing membership of an account in a clinic."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    user_id: str
    role: TenantMemberRole
    email: str
    display_name: str
    joined_at: datetime
    invited_by: str | None = None


class MemberInvite(BaseModel):
    """Invite an existing account by email."""

    email: EmailStr
    role: TenantMemberRole = Field(
        TenantMemberRole.STAFF,
        description="staff or readonly; a clinic has exactly one owner",
    )


class MemberRoleUpdate(BaseModel):
    """Change a member's role."""

    role: TenantMemberRole
