"""Authentication service: identity provider login plus session JWTs."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import settings
from clinicflow.core.access import Account
from clinicflow.core.exceptions import UnauthorizedException
from clinicflow.core.redis_client import CacheManager
from clinicflow.core.security import issue_token, read_token
from clinicflow.schemas.auth import Token
from clinicflow.schemas.users import UserRecord
from clinicflow.services.identity_service import IdentityService, email_local_part
from clinicflow.services.user_service import UserService

logger = structlog.get_logger(__name__)


class AuthService:
    """Authentication service for handling identity provider and JWT operations."""

    def __init__(
        self,
        cache_manager: CacheManager | None = None,
        identity: IdentityService | None = None,
        user_service: UserService | None = None,
    ):
        """Initialize auth service with cache manager and collaborators."""
        self.cache = cache_manager
        self.identity = identity or IdentityService()
        self.users = user_service or UserService(cache_manager)

    async def sign_up(
        self, db: AsyncSession, email: str, password: str, display_name: str
    ) -> tuple[Account, UserRecord, Token]:
        """Create the provider account, then the directory entry (inactive)."""
        account = await self.identity.sign_up(email, password, display_name)
        return await self._complete_login(db, account, display_name)

    async def sign_in(
        self, db: AsyncSession, email: str, password: str
    ) -> tuple[Account, UserRecord, Token]:
        """Email/password login; a missing directory entry is created."""
        account = await self.identity.sign_in(email, password)
        return await self._complete_login(
            db, account, account.display_name or email_local_part(account.email)
        )

    async def sign_in_federated(
        self, db: AsyncSession, id_token: str
    ) -> tuple[Account, UserRecord, Token]:
        """Federated login from a Firebase ID token."""
        account = await self.identity.sign_in_federated(id_token)
        return await self._complete_login(
            db, account, account.display_name or settings.default_display_name
        )

    async def _complete_login(
        self, db: AsyncSession, account: Account, display_name: str
    ) -> tuple[Account, UserRecord, Token]:
        user = await self.users.create_if_absent(
            db,
            account_id=account.account_id,
            display_name=display_name or settings.default_display_name,
            email=account.email,
        )
        account = account.model_copy(update={"display_name": user.display_name})

        logger.info("user_signed_in", account_id=account.account_id)
        return account, user, self.create_tokens(account)

    def create_tokens(self, account: Account) -> Token:
        """
        Create access and refresh tokens for an account.

        Args:
            account: Authenticated account; its id becomes the ``sub`` claim

        Returns:
            Token pair (access and refresh)
        """
        claims = {"sub": account.account_id, "email": account.email, "name": account.display_name}

        return Token(
            access_token=issue_token(claims, "access"),
            refresh_token=issue_token(claims, "refresh"),
            token_type="bearer",
        )

    def refresh_access_token(self, refresh_token: str) -> Token:
        """
        Create new access token from refresh token.

        Raises:
            UnauthorizedException: If refresh token is invalid or revoked
        """
        payload = read_token(refresh_token, "refresh")

        if payload is None:
            raise UnauthorizedException("Invalid refresh token")

        account = account_from_claims(payload)
        if account is None:
            raise UnauthorizedException("Invalid refresh token")

        if self.cache and self.cache.is_revoked(refresh_token):
            raise UnauthorizedException("Token has been revoked")

        return self.create_tokens(account)

    def revoke_token(self, token: str) -> None:
        """Refuse ``token`` for the rest of its lifetime (needs the cache)."""
        if self.cache:
            self.cache.revoke(token, ttl=settings.refresh_token_expire_days * 86400)

    async def sign_out(self, account_id: str, refresh_token: str | None = None) -> None:
        """Revoke the session refresh token and the provider's tokens."""
        if refresh_token:
            self.revoke_token(refresh_token)
        await self.identity.sign_out(account_id)
        logger.info("user_signed_out", account_id=account_id)


def account_from_claims(payload: dict) -> Account | None:
    """Rebuild the Account carried by a session token."""
    account_id = payload.get("sub")
    if not account_id or not isinstance(account_id, str):
        return None
    return Account(
        account_id=account_id,
        email=payload.get("email") or "",
        display_name=payload.get("name"),
    )


def validate_access_token(token: str) -> Account | None:
    """Account of a valid access token, None otherwise."""
    payload = read_token(token, "access")
    if payload is None:
        return None
    return account_from_claims(payload)
