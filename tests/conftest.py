# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Shared test fixtures for all Atrium tests.

Storage tests run against a file-backed SQLite database per test
(aiosqlite), so separate sessions get separate connections the way
they do against PostgreSQL.
"""

from dataclasses import dataclass

import pytest
import pytest_asyncio
import fakeredis.aioredis
from sqlalchemy.ext.asyncio import create_async_engine

from atrium.core.redis_client import inject_redis_for_test
from atrium.core.tenant import TenantContext
from atrium.storage.database import Base, override_engine_for_test
from atrium.storage.init_db import seed_system_permissions
from atrium.storage.models import Tenant
from atrium.storage.unit_of_work import UnitOfWorkFactory

import atrium.storage.models  # noqa: F401


@pytest.fixture
def mock_redis():
    """Provide a FakeRedis async instance."""
    r = fakeredis.aioredis.FakeRedis(decode_responses=True)
    inject_redis_for_test(r)
    return r


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'atrium.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = override_engine_for_test(engine)
    await seed_system_permissions(factory)
    return factory


@pytest.fixture
def uow_factory(session_factory):
    return UnitOfWorkFactory(session_factory)


@dataclass
class TwoTenants:
    acme: TenantContext
    globex: TenantContext


@pytest_asyncio.fixture
async def tenants(session_factory) -> TwoTenants:
    """Two active tenants, 'acme' and 'globex'."""
    async with session_factory() as session:
        acme = Tenant(name="Acme Corp", identifier="acme", is_active=True)
        globex = Tenant(name="Globex", identifier="globex", is_active=True)
        session.add_all([acme, globex])
        await session.commit()
    return TwoTenants(
        acme=TenantContext.for_tenant(acme.id, "acme"),
        globex=TenantContext.for_tenant(globex.id, "globex"),
    )
