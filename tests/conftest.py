import os
from collections.abc import AsyncGenerator, Callable

# Settings are read at import time; point them at a throwaway store first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from clinicflow.core.access import Account, CallerContext
from clinicflow.core.change_feed import ChangeFeed
from clinicflow.database import get_db, get_session_factory
from clinicflow.dependencies import get_cache_manager, get_feed
from clinicflow.main import app
from clinicflow.models import metadata
from clinicflow.schemas.tenants import TenantMemberRole
from clinicflow.services.bootstrap_service import BootstrapService
from clinicflow.services.context_service import ContextService

from factories import join_clinic, make_account, signed_up


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[Callable[[], AsyncSession], None]:
    """Fresh SQLite database file per test; every session gets its own connection."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'clinicflow_test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    await test_engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def feed() -> ChangeFeed:
    """Isolated change feed."""
    return ChangeFeed()


@pytest.fixture
def contexts(feed: ChangeFeed) -> ContextService:
    """Context service without a cache."""
    return ContextService(None, feed)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, session_factory, feed: ChangeFeed
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: None
    app.dependency_overrides[get_feed] = lambda: feed
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def owner_account() -> Account:
    return make_account("owner", "Ana")


@pytest_asyncio.fixture
async def owner_ctx(
    db_session: AsyncSession, contexts: ContextService, owner_account: Account
) -> CallerContext:
    """First user after bootstrap: admin, active, owner of a clinic."""
    ctx = await signed_up(db_session, contexts, owner_account)
    return await BootstrapService(contexts).bootstrap(db_session, ctx)


@pytest_asyncio.fixture
async def staff_ctx(
    db_session: AsyncSession, contexts: ContextService, owner_ctx: CallerContext
) -> CallerContext:
    """Active staff member of the owner's clinic."""
    return await join_clinic(db_session, contexts, owner_ctx, make_account("staff"))


@pytest_asyncio.fixture
async def readonly_ctx(
    db_session: AsyncSession, contexts: ContextService, owner_ctx: CallerContext
) -> CallerContext:
    """Active readonly member of the owner's clinic."""
    return await join_clinic(
        db_session, contexts, owner_ctx, make_account("reader"), role=TenantMemberRole.READONLY
    )
