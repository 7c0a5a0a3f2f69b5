"""Access state schemas."""

from pydantic import BaseModel

from clinicflow.core.access import AccessLevel, CallerContext, evaluate


class AccessStateResponse(BaseModel):
    """Booleans derived by the access control engine for the caller."""

    level: AccessLevel
    is_authenticated: bool
    is_system_admin: bool
    requires_purchase: bool
    requires_tenant_setup: bool
    can_edit: bool
    can_manage_members: bool
    tenant_id: str | None = None

    @classmethod
    def from_context(cls, ctx: CallerContext) -> "AccessStateResponse":
        decision = evaluate(ctx.auth, ctx.tenant)
        return cls(**decision.model_dump(), tenant_id=ctx.tenant_id)
