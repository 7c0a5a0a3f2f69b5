"""User directory service."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import CallerContext, require_system_admin
from clinicflow.core.change_feed import ChangeFeed, get_change_feed, user_topic
from clinicflow.core.exceptions import NotFoundException
from clinicflow.core.observable import LiveQuery
from clinicflow.core.redis_client import CacheManager
from clinicflow.models.users import user_profiles, users
from clinicflow.schemas.users import UserProfile, UserRecord

logger = structlog.get_logger(__name__)


class UserService:
    """Service for user directory operations."""

    # Cache TTL in seconds (5 minutes; activation must show up quickly)
    USER_CACHE_TTL = 300

    def __init__(self, cache_manager: CacheManager | None = None, feed: ChangeFeed | None = None):
        """Initialize service with optional cache manager and change feed."""
        self.cache = cache_manager
        self.feed = feed or get_change_feed()

    @staticmethod
    def _get_user_cache_key(account_id: str) -> str:
        """Generate cache key for user."""
        return f"user:{account_id}"

    def _invalidate(self, account_id: str) -> None:
        if self.cache:
            self.cache.delete(self._get_user_cache_key(account_id))

    async def get_user(
        self, db: AsyncSession, account_id: str, use_cache: bool = True
    ) -> UserRecord | None:
        """Point lookup by account id."""
        if use_cache and self.cache:
            cached = self.cache.get_json(self._get_user_cache_key(account_id))
            if cached:
                return UserRecord.model_validate(cached)

        result = await db.execute(select(users).where(users.c.account_id == account_id))
        row = result.mappings().first()

        if not row:
            return None

        user = UserRecord.model_validate(dict(row))

        if self.cache:
            self.cache.set_json(
                self._get_user_cache_key(account_id),
                user.model_dump(mode="json"),
                ttl=self.USER_CACHE_TTL,
            )

        return user

    async def create_if_absent(
        self,
        db: AsyncSession,
        account_id: str,
        display_name: str,
        email: str,
        photo_url: str | None = None,
    ) -> UserRecord:
        """Create the directory entry on first sign-in; an existing entry is returned as is."""
        existing = await self.get_user(db, account_id, use_cache=False)
        if existing:
            return existing

        now = datetime.now(UTC)
        email_lower = email.lower()

        try:
            await db.execute(
                users.insert().values(
                    account_id=account_id,
                    email=email,
                    email_lower=email_lower,
                    display_name=display_name,
                    photo_url=photo_url,
                    # New accounts always wait for activation
                    is_active=False,
                    tenant_id=None,
                    created_at=now,
                )
            )
            profile = await db.execute(
                select(user_profiles.c.account_id).where(user_profiles.c.account_id == account_id)
            )
            if profile.first() is None:
                await db.execute(
                    user_profiles.insert().values(
                        account_id=account_id,
                        email=email,
                        email_lower=email_lower,
                        display_name=display_name,
                        photo_url=photo_url,
                        created_at=now,
                    )
                )
            await db.commit()
        except IntegrityError:
            # Another request created it first
            await db.rollback()
            existing = await self.get_user(db, account_id, use_cache=False)
            if existing:
                return existing
            raise

        logger.info("user_record_created", account_id=account_id)
        self.feed.publish(user_topic(account_id))

        user = await self.get_user(db, account_id, use_cache=False)
        if user is None:
            raise NotFoundException("User not found")
        return user

    async def _update(
        self, db: AsyncSession, account_id: str, commit: bool = True, **values
    ) -> UserRecord:
        result = await db.execute(
            update(users).where(users.c.account_id == account_id).values(**values).returning(users)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("User not found")

        user = UserRecord.model_validate(dict(row))

        if commit:
            await db.commit()
            self.after_commit(account_id)

        return user

    def after_commit(self, account_id: str) -> None:
        """Invalidate cache and notify observers once a write is committed."""
        self._invalidate(account_id)
        self.feed.publish(user_topic(account_id))

    async def set_active(
        self, db: AsyncSession, ctx: CallerContext, account_id: str, active: bool
    ) -> UserRecord:
        """Activate or deactivate an account (system admins only)."""
        admin_id = require_system_admin(ctx)
        user = await self._update(db, account_id, is_active=active)
        logger.info(
            "user_activation_changed", account_id=account_id, is_active=active, by=admin_id
        )
        return user

    async def set_tenant(
        self, db: AsyncSession, account_id: str, tenant_id: str | None, commit: bool = True
    ) -> UserRecord:
        """Assign or clear the account's clinic."""
        return await self._update(db, account_id, commit=commit, tenant_id=tenant_id)

    async def activate(
        self, db: AsyncSession, account_id: str, tenant_id: str, commit: bool = True
    ) -> UserRecord:
        """Activate the account and assign its clinic in one write."""
        return await self._update(
            db, account_id, commit=commit, is_active=True, tenant_id=tenant_id
        )

    async def update_display_name(
        self, db: AsyncSession, account_id: str, display_name: str
    ) -> UserRecord:
        """Rename the caller in both the directory and the public profile."""
        await db.execute(
            update(user_profiles)
            .where(user_profiles.c.account_id == account_id)
            .values(display_name=display_name)
        )
        return await self._update(db, account_id, display_name=display_name)

    async def get_profile(self, db: AsyncSession, account_id: str) -> UserProfile | None:
        """Public profile lookup."""
        result = await db.execute(
            select(user_profiles).where(user_profiles.c.account_id == account_id)
        )
        row = result.mappings().first()
        return UserProfile.model_validate(dict(row)) if row else None

    async def find_by_email(self, db: AsyncSession, email: str) -> UserRecord | None:
        """Case-insensitive lookup through the canonical email."""
        result = await db.execute(
            select(users).where(users.c.email_lower == email.strip().lower()).limit(1)
        )
        row = result.mappings().first()
        return UserRecord.model_validate(dict(row)) if row else None

    async def list_users(
        self,
        db: AsyncSession,
        ctx: CallerContext,
        page: int = 1,
        page_size: int = 20,
        is_active: bool | None = None,
        search: str | None = None,
    ) -> tuple[list[UserRecord], int]:
        """Paginated directory listing for system administrators."""
        require_system_admin(ctx)

        conditions: list = []
        if is_active is not None:
            conditions.append(users.c.is_active == is_active)
        if search:
            term = f"%{search.lower()}%"
            conditions.append(
                or_(users.c.email_lower.like(term), func.lower(users.c.display_name).like(term))
            )

        count_query = select(func.count()).select_from(users)
        query = select(users)
        if conditions:
            count_query = count_query.where(*conditions)
            query = query.where(*conditions)

        total = (await db.execute(count_query)).scalar_one()
        result = await db.execute(
            query.order_by(users.c.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        return [UserRecord.model_validate(dict(row)) for row in result.mappings().all()], total

    def observe(
        self, session_factory: Callable[[], AsyncSession], account_id: str
    ) -> LiveQuery[UserRecord | None]:
        """Live view of one directory entry."""

        async def fetch() -> UserRecord | None:
            async with session_factory() as session:
                return await self.get_user(session, account_id, use_cache=False)

        return LiveQuery(self.feed, [user_topic(account_id)], fetch, name="user_record")
