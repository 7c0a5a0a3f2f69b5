"""Builds the explicit caller contexts consumed by the access engine."""

from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import Account, AuthContext, CallerContext, TenantContext
from clinicflow.core.change_feed import ChangeFeed, admin_topic, get_change_feed, user_topic
from clinicflow.core.observable import LiveQuery
from clinicflow.core.redis_client import CacheManager
from clinicflow.services.admin_role_service import AdminRoleService
from clinicflow.services.tenant_service import TenantService
from clinicflow.services.user_service import UserService


class ContextService:
    """Loads AuthContext and TenantContext values from the stores."""

    def __init__(
        self, cache_manager: CacheManager | None = None, feed: ChangeFeed | None = None
    ):
        """Initialize service with optional cache manager and change feed."""
        self.feed = feed or get_change_feed()
        self.users = UserService(cache_manager, self.feed)
        self.admins = AdminRoleService(self.feed)
        self.tenants = TenantService(cache_manager, self.feed, self.users)

    async def load_auth_context(
        self, db: AsyncSession, account: Account | None, fresh: bool = False
    ) -> AuthContext:
        """Directory entry and admin flag for ``account``."""
        if account is None:
            return AuthContext()

        user = await self.users.get_user(db, account.account_id, use_cache=not fresh)
        is_admin = await self.admins.is_admin(db, account.account_id)
        return AuthContext(account=account, user=user, is_system_admin=is_admin)

    async def load_tenant_context(self, db: AsyncSession, auth: AuthContext) -> TenantContext:
        """Clinic assigned in the directory entry, with its members."""
        if auth.user is None or not auth.user.tenant_id:
            return TenantContext()

        tenant_id = auth.user.tenant_id
        tenant = await self.tenants.get_tenant(db, tenant_id)
        if tenant is None:
            return TenantContext()

        members = await self.tenants.list_members(db, tenant_id)
        current = next((m for m in members if m.user_id == auth.account_id), None)
        return TenantContext(tenant=tenant, members=members, current_member=current)

    async def load_caller_context(
        self, db: AsyncSession, account: Account | None, fresh: bool = False
    ) -> CallerContext:
        """Both contexts at once, as every service call expects."""
        auth = await self.load_auth_context(db, account, fresh=fresh)
        tenant = await self.load_tenant_context(db, auth)
        return CallerContext(auth=auth, tenant=tenant)

    def observe_caller(
        self, session_factory: Callable[[], AsyncSession], account: Account
    ) -> LiveQuery[CallerContext]:
        """Live caller context, refreshed when the user record or admin role changes."""

        async def fetch() -> CallerContext:
            async with session_factory() as session:
                return await self.load_caller_context(session, account, fresh=True)

        return LiveQuery(
            self.feed,
            [user_topic(account.account_id), admin_topic(account.account_id)],
            fetch,
            name="caller_context",
        )
