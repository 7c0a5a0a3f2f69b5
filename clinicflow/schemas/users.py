"""User directory schemas for request/response validation."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserRecord(BaseModel):
    """User directory entry keyed by account id."""

    model_config = ConfigDict(from_attributes=True)

    account_id: str
    email: str
    email_lower: str
    display_name: str
    photo_url: str | None = None
    is_active: bool = False
    tenant_id: str | None = None
    created_at: datetime


class UserProfile(BaseModel):
    """Denormalized public profile."""

    model_config = ConfigDict(from_attributes=True)

    account_id: str
    email: str
    display_name: str
    photo_url: str | None = None
    bio: str | None = None
    created_at: datetime


class UserUpdate(BaseModel):
    """Schema for updating the caller's own profile."""

    display_name: str = Field(..., min_length=2, max_length=120)


class SetActiveRequest(BaseModel):
    """Admin request to activate or deactivate an account."""

    is_active: bool


class AdminUserListResponse(BaseModel):
    """Paginated user list for system administrators."""

    users: list[UserRecord]
    total: int
    page: int
    page_size: int

