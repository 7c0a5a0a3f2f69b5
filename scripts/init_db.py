"""Script to create every table on the configured database (development only)."""

import asyncio

from clinicflow.database import engine
from clinicflow.models import metadata


async def init_db() -> None:
    """Create all tables; production databases are migrated with alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
