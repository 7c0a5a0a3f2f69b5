"""FastAPI dependencies."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.access import Account, CallerContext, require_system_admin, require_tenant
from clinicflow.core.change_feed import ChangeFeed, get_change_feed
from clinicflow.core.redis_client import CacheManager, get_redis_client
from clinicflow.database import get_db, get_session_factory
from clinicflow.services.auth_service import validate_access_token
from clinicflow.services.context_service import ContextService

# Security
security = HTTPBearer()


async def get_current_account(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Account:
    """
    Extract and validate the account from the JWT access token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    account = validate_access_token(credentials.credentials)

    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return account


def get_cache_manager() -> CacheManager | None:
    """Cache manager over the shared Redis client."""
    return CacheManager(get_redis_client())


def get_feed() -> ChangeFeed:
    """Process-wide change feed."""
    return get_change_feed()


def get_context_service(
    cache_manager: Annotated[CacheManager | None, Depends(get_cache_manager)],
    feed: Annotated[ChangeFeed, Depends(get_feed)],
) -> ContextService:
    """Context loader wired to the request's cache and feed."""
    return ContextService(cache_manager, feed)


async def get_caller_context(
    account: Annotated[Account, Depends(get_current_account)],
    db: Annotated[AsyncSession, Depends(get_db)],
    contexts: Annotated[ContextService, Depends(get_context_service)],
) -> CallerContext:
    """Auth and tenant context of the caller, loaded once per request."""
    return await contexts.load_caller_context(db, account)


async def get_active_caller(
    ctx: Annotated[CallerContext, Depends(get_caller_context)],
) -> CallerContext:
    """Gate for clinic routes: the account must be active with a clinic."""
    require_tenant(ctx)
    return ctx


async def get_admin_caller(
    ctx: Annotated[CallerContext, Depends(get_caller_context)],
) -> CallerContext:
    """Gate for system administration routes."""
    require_system_admin(ctx)
    return ctx


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[Callable[[], AsyncSession], Depends(get_session_factory)]
CacheManagerDep = Annotated[CacheManager | None, Depends(get_cache_manager)]
FeedDep = Annotated[ChangeFeed, Depends(get_feed)]
Contexts = Annotated[ContextService, Depends(get_context_service)]
CurrentAccount = Annotated[Account, Depends(get_current_account)]
Caller = Annotated[CallerContext, Depends(get_caller_context)]
ActiveCaller = Annotated[CallerContext, Depends(get_active_caller)]
AdminCaller = Annotated[CallerContext, Depends(get_admin_caller)]
