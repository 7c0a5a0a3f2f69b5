"""First-run bootstrap: the first account becomes admin and owner of a clinic."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import settings
from clinicflow.core.access import CallerContext, require_authenticated
from clinicflow.core.change_feed import admin_topic, members_topic, tenant_topic
from clinicflow.core.exceptions import AdminAlreadyExistsException, BootstrapFailedException
from clinicflow.schemas.tenants import TenantMemberRole
from clinicflow.services.context_service import ContextService

logger = structlog.get_logger(__name__)


class BootstrapService:
    """Promotes the first caller and provisions their clinic.

    Every step checks whether it already happened, so a run that failed
    halfway can simply be repeated: an existing admin entry is kept, the
    oldest clinic owned by the caller is reused and an existing owner
    membership is not duplicated.
    """

    def __init__(self, contexts: ContextService):
        self.contexts = contexts
        self.users = contexts.users
        self.admins = contexts.admins
        self.tenants = contexts.tenants

    def _tenant_name(self, display_name: str | None) -> str:
        return settings.default_tenant_name_template.format(
            display_name=display_name or settings.default_display_name
        )

    async def bootstrap(self, db: AsyncSession, ctx: CallerContext) -> CallerContext:
        """Run the bootstrap procedure for the caller and return a fresh context."""
        account_id = require_authenticated(ctx)
        account = ctx.auth.account

        try:
            caller_is_admin = await self.admins.is_admin(db, account_id)
            if not caller_is_admin and await self.admins.any_admin_exists(db):
                logger.warning("bootstrap_refused_admin_exists", account_id=account_id)
                raise AdminAlreadyExistsException()

            if caller_is_admin and await self._already_complete(db, account_id):
                logger.warning("bootstrap_refused_already_complete", account_id=account_id)
                raise AdminAlreadyExistsException()

            tenant_id = await self._run_steps(db, ctx, caller_is_admin)
        except AdminAlreadyExistsException:
            raise
        except Exception as e:
            await db.rollback()
            logger.exception("bootstrap_failed", account_id=account_id, error=str(e))
            raise BootstrapFailedException() from e

        self.users.after_commit(account_id)
        self.contexts.feed.publish(
            admin_topic(account_id), tenant_topic(tenant_id), members_topic(tenant_id)
        )
        logger.info("bootstrap_completed", account_id=account_id, tenant_id=tenant_id)

        return await self.contexts.load_caller_context(db, account, fresh=True)

    async def _already_complete(self, db: AsyncSession, account_id: str) -> bool:
        user = await self.users.get_user(db, account_id, use_cache=False)
        if user is None or not user.is_active or not user.tenant_id:
            return False
        member = await self.tenants.get_member(db, user.tenant_id, account_id)
        return member is not None and member.role == TenantMemberRole.OWNER

    async def _run_steps(
        self, db: AsyncSession, ctx: CallerContext, caller_is_admin: bool
    ) -> str:
        account = ctx.auth.account
        account_id = account.account_id

        user = await self.users.get_user(db, account_id, use_cache=False)
        if user is None:
            user = await self.users.create_if_absent(
                db,
                account_id,
                display_name=account.display_name or settings.default_display_name,
                email=account.email,
            )

        if not caller_is_admin:
            await self.admins.promote(db, account_id, commit=False)

        tenant = await self.tenants.find_owned_tenant(db, account_id)
        if tenant is None:
            tenant = await self.tenants.create_tenant(
                db, self._tenant_name(user.display_name), owner_id=account_id, commit=False
            )

        if await self.tenants.get_member(db, tenant.id, account_id) is None:
            await self.tenants.add_member(
                db,
                tenant_id=tenant.id,
                user_id=account_id,
                role=TenantMemberRole.OWNER,
                email=user.email,
                display_name=user.display_name,
                commit=False,
            )

        await self.users.activate(db, account_id, tenant.id, commit=False)
        await db.commit()
        return tenant.id
