"""Admin role registry service."""

from datetime import UTC, datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.change_feed import ChangeFeed, admin_topic, get_change_feed
from clinicflow.models.user_roles import user_roles

logger = structlog.get_logger(__name__)

ADMIN_ROLE = "admin"


class AdminRoleService:
    """System administrator registry, independent of tenant membership."""

    def __init__(self, feed: ChangeFeed | None = None):
        """Initialize service with optional change feed."""
        self.feed = feed or get_change_feed()

    async def is_admin(self, db: AsyncSession, account_id: str | None) -> bool:
        """True only when the registry positively says so; any failure means no."""
        if not account_id:
            return False
        try:
            result = await db.execute(
                select(user_roles.c.role).where(user_roles.c.account_id == account_id)
            )
            role = result.scalar_one_or_none()
        except Exception as e:
            logger.warning("admin_role_lookup_failed", account_id=account_id, error=str(e))
            await db.rollback()
            return False
        return role == ADMIN_ROLE

    async def any_admin_exists(self, db: AsyncSession) -> bool:
        """Existence probe (LIMIT 1), not a full count."""
        result = await db.execute(
            select(user_roles.c.account_id).where(user_roles.c.role == ADMIN_ROLE).limit(1)
        )
        return result.first() is not None

    async def promote(self, db: AsyncSession, account_id: str, commit: bool = True) -> bool:
        """Grant the admin role. Returns False when the account already had it."""
        now = datetime.now(UTC)
        result = await db.execute(
            select(user_roles.c.role).where(user_roles.c.account_id == account_id)
        )
        current = result.scalar_one_or_none()

        if current == ADMIN_ROLE:
            return False

        if current is None:
            await db.execute(
                user_roles.insert().values(
                    account_id=account_id, role=ADMIN_ROLE, created_at=now, updated_at=now
                )
            )
        else:
            await db.execute(
                update(user_roles)
                .where(user_roles.c.account_id == account_id)
                .values(role=ADMIN_ROLE, updated_at=now)
            )

        if commit:
            await db.commit()
            self.feed.publish(admin_topic(account_id))

        logger.info("admin_role_granted", account_id=account_id)
        return True
