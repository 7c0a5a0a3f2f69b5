"""Tenant store service: clinics and their members."""

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import CallerContext, require_can_manage_members
from clinicflow.core.change_feed import ChangeFeed, get_change_feed, members_topic, tenant_topic
from clinicflow.core.exceptions import (
    AlreadyExistsException,
    CannotRemoveOwnerException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from clinicflow.core.observable import LiveQuery
from clinicflow.core.redis_client import CacheManager
from clinicflow.models.tenants import tenant_members, tenants
from clinicflow.schemas.tenants import (
    Tenant,
    TenantMember,
    TenantMemberRole,
    TenantUpdate,
)
from clinicflow.services.user_service import UserService

logger = structlog.get_logger(__name__)


class TenantService:
    """Service for clinic and membership operations."""

    # Cache TTL in seconds
    TENANT_CACHE_TTL = 900  # 15 minutes

    def __init__(
        self,
        cache_manager: CacheManager | None = None,
        feed: ChangeFeed | None = None,
        user_service: UserService | None = None,
    ):
        """Initialize service with optional cache manager and change feed."""
        self.cache = cache_manager
        self.feed = feed or get_change_feed()
        self.users = user_service or UserService(cache_manager, self.feed)

    @staticmethod
    def _get_tenant_cache_key(tenant_id: str) -> str:
        """Generate cache key for tenant."""
        return f"tenant:{tenant_id}"

    # ============================================================================
    # Tenants
    # ============================================================================

    async def get_tenant(
        self, db: AsyncSession, tenant_id: str, use_cache: bool = True
    ) -> Tenant | None:
        """Get tenant by ID with caching."""
        if use_cache and self.cache:
            cached = self.cache.get_json(self._get_tenant_cache_key(tenant_id))
            if cached:
                return Tenant.model_validate(cached)

        result = await db.execute(select(tenants).where(tenants.c.id == tenant_id))
        row = result.mappings().first()

        if not row:
            return None

        tenant = Tenant.model_validate(dict(row))

        if self.cache:
            self.cache.set_json(
                self._get_tenant_cache_key(tenant_id),
                tenant.model_dump(mode="json"),
                ttl=self.TENANT_CACHE_TTL,
            )

        return tenant

    async def find_owned_tenant(self, db: AsyncSession, owner_id: str) -> Tenant | None:
        """Oldest tenant created by ``owner_id``, if any."""
        result = await db.execute(
            select(tenants)
            .where(tenants.c.owner_id == owner_id)
            .order_by(tenants.c.created_at.asc())
            .limit(1)
        )
        row = result.mappings().first()
        return Tenant.model_validate(dict(row)) if row else None

    async def create_tenant(
        self,
        db: AsyncSession,
        name: str,
        owner_id: str,
        settings: dict | None = None,
        commit: bool = True,
    ) -> Tenant:
        """Create a clinic with a generated id."""
        now = datetime.now(UTC)
        result = await db.execute(
            tenants.insert()
            .values(
                id=str(uuid4()),
                name=name,
                owner_id=owner_id,
                settings=settings or {},
                created_at=now,
                updated_at=now,
            )
            .returning(tenants)
        )
        row = result.mappings().first()

        if not row:
            raise ValueError("Failed to create tenant")

        tenant = Tenant.model_validate(dict(row))

        if commit:
            await db.commit()
            self.feed.publish(tenant_topic(tenant.id))

        logger.info("tenant_created", tenant_id=tenant.id, owner_id=owner_id)
        return tenant

    async def update_settings(
        self, db: AsyncSession, ctx: CallerContext, tenant_data: TenantUpdate
    ) -> Tenant:
        """Merge name and settings fields into the caller's clinic (owner only)."""
        tenant_id = require_can_manage_members(ctx)

        existing = await self.get_tenant(db, tenant_id, use_cache=False)
        if not existing:
            raise NotFoundException("Clinic not found")

        changes = tenant_data.model_dump(exclude_unset=True)
        update_values: dict = {"updated_at": datetime.now(UTC)}

        if "name" in changes and changes["name"] is not None:
            update_values["name"] = changes.pop("name")
        changes.pop("name", None)

        if changes:
            merged = existing.settings.model_dump(exclude_none=True)
            merged.update(changes)
            update_values["settings"] = merged

        result = await db.execute(
            update(tenants)
            .where(tenants.c.id == tenant_id)
            .values(**update_values)
            .returning(tenants)
        )
        row = result.mappings().first()
        await db.commit()

        if self.cache:
            self.cache.delete(self._get_tenant_cache_key(tenant_id))
        self.feed.publish(tenant_topic(tenant_id))

        return Tenant.model_validate(dict(row))

    def observe_tenant(
        self, session_factory: Callable[[], AsyncSession], tenant_id: str
    ) -> LiveQuery[Tenant | None]:
        """Live view of the clinic record."""

        async def fetch() -> Tenant | None:
            async with session_factory() as session:
                return await self.get_tenant(session, tenant_id, use_cache=False)

        return LiveQuery(self.feed, [tenant_topic(tenant_id)], fetch, name="tenant")

    # ============================================================================
    # Members
    # ============================================================================

    async def list_members(self, db: AsyncSession, tenant_id: str) -> list[TenantMember]:
        """All members of a clinic, oldest first."""
        result = await db.execute(
            select(tenant_members)
            .where(tenant_members.c.tenant_id == tenant_id)
            .order_by(tenant_members.c.joined_at.asc())
        )
        return [TenantMember.model_validate(dict(row)) for row in result.mappings().all()]

    async def get_member(
        self, db: AsyncSession, tenant_id: str, user_id: str
    ) -> TenantMember | None:
        """Membership of ``user_id`` in ``tenant_id``."""
        result = await db.execute(
            select(tenant_members).where(
                tenant_members.c.tenant_id == tenant_id,
                tenant_members.c.user_id == user_id,
            )
        )
        row = result.mappings().first()
        return TenantMember.model_validate(dict(row)) if row else None

    async def _get_member_by_id(
        self, db: AsyncSession, tenant_id: str, member_id: str
    ) -> TenantMember:
        result = await db.execute(
            select(tenant_members).where(
                tenant_members.c.id == member_id,
                tenant_members.c.tenant_id == tenant_id,
            )
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Member not found")
        return TenantMember.model_validate(dict(row))

    async def add_member(
        self,
        db: AsyncSession,
        tenant_id: str,
        user_id: str,
        role: TenantMemberRole,
        email: str,
        display_name: str,
        invited_by: str | None = None,
        commit: bool = True,
    ) -> TenantMember:
        """Add a membership; one per (tenant, user) and one owner per tenant."""
        if await self.get_member(db, tenant_id, user_id):
            raise AlreadyExistsException("This user is already a member of the clinic")

        if role == TenantMemberRole.OWNER:
            owner = await db.execute(
                select(tenant_members.c.id)
                .where(
                    tenant_members.c.tenant_id == tenant_id,
                    tenant_members.c.role == TenantMemberRole.OWNER.value,
                )
                .limit(1)
            )
            if owner.first() is not None:
                raise ConflictException("The clinic already has an owner")

        try:
            result = await db.execute(
                tenant_members.insert()
                .values(
                    id=str(uuid4()),
                    tenant_id=tenant_id,
                    user_id=user_id,
                    role=role.value,
                    email=email,
                    display_name=display_name,
                    joined_at=datetime.now(UTC),
                    invited_by=invited_by,
                )
                .returning(tenant_members)
            )
        except IntegrityError as e:
            await db.rollback()
            raise AlreadyExistsException("This user is already a member of the clinic") from e

        member = TenantMember.model_validate(dict(result.mappings().one()))

        if commit:
            await db.commit()
            self.feed.publish(members_topic(tenant_id))

        return member

    async def invite_member(
        self, db: AsyncSession, ctx: CallerContext, email: str, role: TenantMemberRole
    ) -> TenantMember:
        """Add an existing account to the caller's clinic and assign it the clinic."""
        tenant_id = require_can_manage_members(ctx)

        if role == TenantMemberRole.OWNER:
            raise ValidationException("Invited members can be staff or readonly")

        invitee = await self.users.find_by_email(db, email)
        if invitee is None:
            raise NotFoundException("User not found. They need to create an account first.")

        if invitee.tenant_id and invitee.tenant_id != tenant_id:
            raise AlreadyExistsException("This user already belongs to another clinic")

        member = await self.add_member(
            db,
            tenant_id=tenant_id,
            user_id=invitee.account_id,
            role=role,
            email=invitee.email,
            display_name=invitee.display_name,
            invited_by=ctx.account_id,
            commit=False,
        )
        await self.users.set_tenant(db, invitee.account_id, tenant_id, commit=False)
        await db.commit()

        self.feed.publish(members_topic(tenant_id))
        self.users.after_commit(invitee.account_id)

        logger.info(
            "member_invited",
            tenant_id=tenant_id,
            user_id=invitee.account_id,
            role=role.value,
            invited_by=ctx.account_id,
        )
        return member

    async def update_member_role(
        self, db: AsyncSession, ctx: CallerContext, member_id: str, role: TenantMemberRole
    ) -> TenantMember:
        """Switch a member between staff and readonly (owner only)."""
        tenant_id = require_can_manage_members(ctx)
        member = await self._get_member_by_id(db, tenant_id, member_id)

        if member.role == TenantMemberRole.OWNER:
            raise CannotRemoveOwnerException("The clinic owner's role cannot be changed")
        if role == TenantMemberRole.OWNER:
            raise ValidationException("A clinic has exactly one owner")

        result = await db.execute(
            update(tenant_members)
            .where(tenant_members.c.id == member_id)
            .values(role=role.value)
            .returning(tenant_members)
        )
        row = result.mappings().one()
        await db.commit()

        self.feed.publish(members_topic(tenant_id))
        # The member's own access state depends on the role
        self.users.after_commit(member.user_id)
        return TenantMember.model_validate(dict(row))

    async def remove_member(self, db: AsyncSession, ctx: CallerContext, member_id: str) -> None:
        """Remove a member and clear their clinic assignment; the owner stays."""
        tenant_id = require_can_manage_members(ctx)
        member = await self._get_member_by_id(db, tenant_id, member_id)

        if member.role == TenantMemberRole.OWNER:
            raise CannotRemoveOwnerException()

        await db.execute(delete(tenant_members).where(tenant_members.c.id == member_id))

        user = await self.users.get_user(db, member.user_id, use_cache=False)
        cleared = user is not None and user.tenant_id == tenant_id
        if cleared:
            await self.users.set_tenant(db, member.user_id, None, commit=False)

        await db.commit()

        self.feed.publish(members_topic(tenant_id))
        if cleared:
            self.users.after_commit(member.user_id)

        logger.info("member_removed", tenant_id=tenant_id, user_id=member.user_id)

    def observe_members(
        self, session_factory: Callable[[], AsyncSession], tenant_id: str
    ) -> LiveQuery[list[TenantMember]]:
        """Live view of the member set."""

        async def fetch() -> list[TenantMember]:
            async with session_factory() as session:
                return await self.list_members(session, tenant_id)

        return LiveQuery(self.feed, [members_topic(tenant_id)], fetch, name="tenant_members")
