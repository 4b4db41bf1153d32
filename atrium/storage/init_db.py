# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Database Initialization — Create tables and seed the system permissions.
"""

import asyncio
import logging

from atrium.core.logging import setup_logging
from atrium.identity.catalog import SYSTEM_PERMISSIONS
from atrium.storage.database import close_db, create_all_tables, get_session_factory
from atrium.storage.repositories import PermissionRepository

# Ensure models are imported so Base.metadata knows about them
import atrium.storage.models  # noqa: F401

logger = logging.getLogger("atrium.init_db")


async def seed_system_permissions(session_factory=None) -> int:
    """Insert any missing built-in permission. Returns how many were present afterwards."""
    factory = session_factory or get_session_factory()
    async with factory() as session:
        repo = PermissionRepository(session)
        for name, description in SYSTEM_PERMISSIONS:
            await repo.ensure_system(name, description)
        await session.commit()
    return len(SYSTEM_PERMISSIONS)


async def main():
    setup_logging()
    logger.info("[init_db] Creating tables...")
    await create_all_tables()
    count = await seed_system_permissions()
    logger.info("[init_db] Seeded %d system permissions. Done.", count)
    await close_db()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
