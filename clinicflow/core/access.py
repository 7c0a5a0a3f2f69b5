"""Access control engine.

Pure decision logic: every function here is a deterministic function of the
context values passed in and performs no I/O. Services and route guards call
the ``require_*`` helpers before touching the store.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from clinicflow.core.exceptions import PermissionDeniedException, TenantNotReadyException
from clinicflow.schemas.tenants import Tenant, TenantMember, TenantMemberRole
from clinicflow.schemas.users import UserRecord

EDIT_ROLES = frozenset({TenantMemberRole.OWNER, TenantMemberRole.STAFF})


class AccessLevel(StrEnum):
    """Account access state, in priority order."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED_PENDING = "authenticated_pending"
    AUTHENTICATED_NEEDS_TENANT = "authenticated_needs_tenant"
    AUTHENTICATED_ACTIVE = "authenticated_active"


class Account(BaseModel):
    """External identity produced by the identity provider."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    email: str = ""
    display_name: str | None = None


class AuthContext(BaseModel):
    """Who is calling, and what the user directory says about them."""

    model_config = ConfigDict(frozen=True)

    account: Account | None = None
    user: UserRecord | None = None
    is_system_admin: bool = False

    @property
    def account_id(self) -> str | None:
        return self.account.account_id if self.account else None

    @property
    def display_name(self) -> str:
        if self.user and self.user.display_name:
            return self.user.display_name
        if self.account and self.account.display_name:
            return self.account.display_name
        return ""


class TenantContext(BaseModel):
    """The caller's clinic, its members and the caller's own membership."""

    model_config = ConfigDict(frozen=True)

    tenant: Tenant | None = None
    members: list[TenantMember] = Field(default_factory=list)
    current_member: TenantMember | None = None

    @property
    def tenant_id(self) -> str | None:
        return self.tenant.id if self.tenant else None


class CallerContext(BaseModel):
    """Explicit context threaded through every service call."""

    model_config = ConfigDict(frozen=True)

    auth: AuthContext
    tenant: TenantContext = Field(default_factory=TenantContext)

    @property
    def account_id(self) -> str | None:
        return self.auth.account_id

    @property
    def tenant_id(self) -> str | None:
        # The directory entry is authoritative for partitioning.
        return self.auth.user.tenant_id if self.auth.user else None


class AccessDecision(BaseModel):
    """Every boolean the engine derives for one caller."""

    model_config = ConfigDict(frozen=True)

    level: AccessLevel
    is_authenticated: bool
    is_system_admin: bool
    requires_purchase: bool
    requires_tenant_setup: bool
    can_edit: bool
    can_manage_members: bool


def is_authenticated(auth: AuthContext) -> bool:
    return auth.account is not None


def is_system_admin(auth: AuthContext) -> bool:
    return is_authenticated(auth) and auth.is_system_admin


def requires_purchase(auth: AuthContext) -> bool:
    """Authenticated but not activated (a missing directory entry counts as inactive)."""
    return is_authenticated(auth) and not (auth.user is not None and auth.user.is_active is True)


def requires_tenant_setup(auth: AuthContext) -> bool:
    return (
        is_authenticated(auth)
        and not requires_purchase(auth)
        and auth.user is not None
        and not auth.user.tenant_id
    )


def _member_role(auth: AuthContext, tenant: TenantContext) -> TenantMemberRole | None:
    member = tenant.current_member
    if member is None or auth.account is None:
        return None
    # A membership only counts for the caller, inside the tenant the directory assigns.
    if member.user_id != auth.account.account_id:
        return None
    if auth.user is None or member.tenant_id != auth.user.tenant_id:
        return None
    return member.role


def can_edit(auth: AuthContext, tenant: TenantContext) -> bool:
    return _member_role(auth, tenant) in EDIT_ROLES


def can_manage_members(auth: AuthContext, tenant: TenantContext) -> bool:
    return _member_role(auth, tenant) == TenantMemberRole.OWNER


def access_level(auth: AuthContext) -> AccessLevel:
    """Resolve the account state machine position."""
    if not is_authenticated(auth):
        return AccessLevel.UNAUTHENTICATED
    if requires_purchase(auth):
        return AccessLevel.AUTHENTICATED_PENDING
    if requires_tenant_setup(auth):
        return AccessLevel.AUTHENTICATED_NEEDS_TENANT
    return AccessLevel.AUTHENTICATED_ACTIVE


def evaluate(auth: AuthContext, tenant: TenantContext | None = None) -> AccessDecision:
    """Compute every capability flag at once."""
    tenant = tenant or TenantContext()
    return AccessDecision(
        level=access_level(auth),
        is_authenticated=is_authenticated(auth),
        is_system_admin=is_system_admin(auth),
        requires_purchase=requires_purchase(auth),
        requires_tenant_setup=requires_tenant_setup(auth),
        can_edit=can_edit(auth, tenant),
        can_manage_members=can_manage_members(auth, tenant),
    )


def require_authenticated(ctx: CallerContext) -> str:
    """Return the caller's account id or deny."""
    if ctx.auth.account is None:
        raise PermissionDeniedException("Sign in required")
    return ctx.auth.account.account_id


def require_tenant(ctx: CallerContext) -> str:
    """Return the caller's tenant id once the account is active and provisioned."""
    require_authenticated(ctx)
    level = access_level(ctx.auth)
    if level == AccessLevel.AUTHENTICATED_PENDING:
        raise PermissionDeniedException("Account is not activated")
    if level == AccessLevel.AUTHENTICATED_NEEDS_TENANT or not ctx.tenant_id:
        raise TenantNotReadyException()
    return ctx.tenant_id


def require_can_edit(ctx: CallerContext) -> str:
    """Gate for patient and medical record mutations; returns the tenant id."""
    tenant_id = require_tenant(ctx)
    if not can_edit(ctx.auth, ctx.tenant):
        raise PermissionDeniedException("Your role does not allow editing clinic data")
    return tenant_id


def require_can_manage_members(ctx: CallerContext) -> str:
    """Gate for team and clinic settings management; returns the tenant id."""
    tenant_id = require_tenant(ctx)
    if not can_manage_members(ctx.auth, ctx.tenant):
        raise PermissionDeniedException("Only the clinic owner can manage members")
    return tenant_id


def require_system_admin(ctx: CallerContext) -> str:
    """Gate for system administration; returns the admin's account id."""
    account_id = require_authenticated(ctx)
    if not is_system_admin(ctx.auth):
        raise PermissionDeniedException("Admin access required")
    return account_id
