"""Clinic settings and team management endpoints."""

from fastapi import APIRouter, status

from clinicflow.core.exceptions import NotFoundException
from clinicflow.dependencies import ActiveCaller, Contexts, DatabaseSession
from clinicflow.schemas.tenants import (
    MemberInvite,
    MemberRoleUpdate,
    Tenant,
    TenantMember,
    TenantUpdate,
)

router = APIRouter(prefix="/tenant", tags=["Tenant"])


@router.get("", response_model=Tenant, summary="Caller's clinic")
async def get_tenant(ctx: ActiveCaller, db: DatabaseSession, contexts: Contexts) -> Tenant:
    """Return the clinic assigned to the caller."""
    tenant = await contexts.tenants.get_tenant(db, ctx.tenant_id)
    if tenant is None:
        raise NotFoundException("Clinic not found")
    return tenant


@router.patch("/settings", response_model=Tenant, summary="Update clinic settings (owner)")
async def update_tenant_settings(
    tenant_data: TenantUpdate,
    ctx: ActiveCaller,
    db: DatabaseSession,
    contexts: Contexts,
) -> Tenant:
    """Merge name, address, phone, email or logo into the clinic."""
    return await contexts.tenants.update_settings(db, ctx, tenant_data)


@router.get("/members", response_model=list[TenantMember], summary="List members")
async def list_members(
    ctx: ActiveCaller, db: DatabaseSession, contexts: Contexts
) -> list[TenantMember]:
    return await contexts.tenants.list_members(db, ctx.tenant_id)


@router.post(
    "/members",
    response_model=TenantMember,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a member (owner)",
)
async def invite_member(
    invite: MemberInvite,
    ctx: ActiveCaller,
    db: DatabaseSession,
    contexts: Contexts,
) -> TenantMember:
    """
    Add an existing account to the clinic.

    The invitee must have signed up already; their account is assigned
    to this clinic.
    """
    return await contexts.tenants.invite_member(db, ctx, invite.email, invite.role)


@router.patch(
    "/members/{member_id}",
    response_model=TenantMember,
    summary="Change a member's role (owner)",
)
async def update_member_role(
    member_id: str,
    role_update: MemberRoleUpdate,
    ctx: ActiveCaller,
    db: DatabaseSession,
    contexts: Contexts,
) -> TenantMember:
    return await contexts.tenants.update_member_role(db, ctx, member_id, role_update.role)


@router.delete(
    "/members/{member_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member (owner)",
)
async def remove_member(
    member_id: str,
    ctx: ActiveCaller,
    db: DatabaseSession,
    contexts: Contexts,
) -> None:
    """Remove a member; the owner cannot be removed."""
    await contexts.tenants.remove_member(db, ctx, member_id)
