# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.
"""Unit tests for engine lifecycle and schema bootstrap."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine

from atrium.identity.catalog import SYSTEM_PERMISSIONS
from atrium.storage import database
from atrium.storage.database import close_db, create_all_tables, init_db, override_engine_for_test
from atrium.storage.init_db import seed_system_permissions
from atrium.storage.models import Permission


class TestDatabaseLifecycle:
    @pytest.mark.asyncio
    async def test_bootstrap_fresh_database(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}")
        factory = override_engine_for_test(engine)

        await init_db()
        await create_all_tables()
        assert await seed_system_permissions() == len(SYSTEM_PERMISSIONS)
        # Seeding is idempotent.
        await seed_system_permissions()

        async with factory() as session:
            count = (await session.execute(select(func.count()).select_from(Permission))).scalar()
        assert count == len(SYSTEM_PERMISSIONS)

        await close_db()
        assert database._engine is None
        assert database._session_factory is None

    def test_sessions_come_only_from_the_factory(self):
        # Data access goes through UnitOfWorkFactory; no raw session dependency.
        assert not hasattr(database, "get_db")
