"""Caller profile and access state endpoints."""

from fastapi import APIRouter, status

from clinicflow.core.exceptions import NotFoundException
from clinicflow.dependencies import Caller, Contexts, CurrentAccount, DatabaseSession
from clinicflow.schemas.access import AccessStateResponse
from clinicflow.schemas.users import UserRecord, UserUpdate

router = APIRouter()


@router.get(
    "/me/access",
    response_model=AccessStateResponse,
    status_code=status.HTTP_200_OK,
    summary="Caller access state",
)
async def get_my_access(ctx: Caller) -> AccessStateResponse:
    """Access level and capability flags derived for the caller."""
    return AccessStateResponse.from_context(ctx)


@router.get(
    "/users/me",
    response_model=UserRecord,
    status_code=status.HTTP_200_OK,
    summary="Caller directory entry",
)
async def get_me(ctx: Caller) -> UserRecord:
    """Return the caller's user record."""
    if ctx.auth.user is None:
        raise NotFoundException("User not found")
    return ctx.auth.user


@router.patch(
    "/users/me",
    response_model=UserRecord,
    status_code=status.HTTP_200_OK,
    summary="Update caller profile",
)
async def update_me(
    user_data: UserUpdate,
    account: CurrentAccount,
    db: DatabaseSession,
    contexts: Contexts,
) -> UserRecord:
    """Change the caller's display name."""
    return await contexts.users.update_display_name(
        db, account.account_id, user_data.display_name.strip()
    )
