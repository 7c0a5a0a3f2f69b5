"""Admin-only endpoints for account activation."""

from fastapi import APIRouter, Query, status

from clinicflow.dependencies import AdminCaller, Contexts, DatabaseSession
from clinicflow.schemas.users import AdminUserListResponse, SetActiveRequest, UserRecord

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get(
    "/users",
    response_model=AdminUserListResponse,
    summary="List all users (admin only)",
)
async def list_all_users(
    db: DatabaseSession,
    contexts: Contexts,
    ctx: AdminCaller,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    is_active: bool | None = Query(None, description="Filter by active status"),
    search: str | None = Query(None, description="Search by name or email"),
) -> AdminUserListResponse:
    """
    Get paginated list of all users with filtering.

    Requires the system administrator role.
    """
    user_list, total = await contexts.users.list_users(
        db, ctx, page=page, page_size=page_size, is_active=is_active, search=search
    )
    return AdminUserListResponse(users=user_list, total=total, page=page, page_size=page_size)


@router.patch(
    "/users/{account_id}/active",
    response_model=UserRecord,
    status_code=status.HTTP_200_OK,
    summary="Activate or deactivate an account (admin only)",
)
async def set_user_active(
    account_id: str,
    request: SetActiveRequest,
    db: DatabaseSession,
    contexts: Contexts,
    ctx: AdminCaller,
) -> UserRecord:
    """Flip the activation flag of an account after purchase."""
    return await contexts.users.set_active(db, ctx, account_id, request.is_active)
