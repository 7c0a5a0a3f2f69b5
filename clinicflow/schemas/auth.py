"""Authentication schemas."""

from pydantic import BaseModel, EmailStr, Field

from clinicflow.schemas.access import AccessStateResponse
from clinicflow.schemas.users import UserRecord


class Token(BaseModel):
    """JWT token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    """Token refresh request schema."""

    refresh_token: str


class SignUpRequest(BaseModel):
    """Email and password sign-up."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    display_name: str = Field(..., min_length=2, max_length=120)


class SignInRequest(BaseModel):
    """Email and password sign-in."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class FederatedSignInRequest(BaseModel):
    """Firebase ID token obtained by the client from a federated provider."""

    id_token: str = Field(..., description="Firebase ID token from Google sign-in")


class PasswordResetRequest(BaseModel):
    """Request a password reset email."""

    email: EmailStr


class LoginResponse(BaseModel):
    """Login response with tokens, user record and derived access state."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserRecord
    access: AccessStateResponse
