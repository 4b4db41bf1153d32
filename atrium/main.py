# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Atrium Application Entry Point.

FastAPI app with lifespan, tenant resolution middleware and the tenancy
router. create_app() accepts an injected session factory and Redis
client so tests can wire an in-memory stack without the lifespan hook.

Entry point: uvicorn atrium.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as aioredis
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atrium.api.errors import APIError, api_error_handler, atrium_error_handler
from atrium.api.middleware import TenantResolutionMiddleware, TraceMiddleware
from atrium.api.tenancy import router as tenancy_router
from atrium.core.config import AtriumSettings, settings
from atrium.core.errors import AtriumError
from atrium.core.logging import setup_logging
from atrium.core.redis_client import close_redis, get_redis
from atrium.storage.database import close_db, get_session_factory, init_db
from atrium.storage.unit_of_work import UnitOfWorkFactory
from atrium.tenancy.directory import TenantDirectory
from atrium.tenancy.resolver import ResolutionStrategy, TenantResolver

logger = logging.getLogger("atrium.main")


def wire_components(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    redis: Optional[aioredis.Redis],
    cfg: AtriumSettings,
) -> None:
    """Attach directory, resolver and unit-of-work factory to app.state."""
    directory = TenantDirectory(session_factory, redis=redis, cache_ttl=cfg.TENANT_CACHE_TTL)
    app.state.directory = directory
    app.state.resolver = TenantResolver(
        directory,
        strategy=ResolutionStrategy(cfg.TENANT_RESOLUTION_STRATEGY),
        default_tenant_id=cfg.DEFAULT_TENANT_ID or None,
    )
    app.state.uow_factory = UnitOfWorkFactory(
        session_factory, allow_system_fallback=cfg.ALLOW_SYSTEM_FALLBACK,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup/shutdown of database and cache connections."""
    cfg: AtriumSettings = app.state.settings
    setup_logging(cfg.LOG_LEVEL)
    owned = getattr(app.state, "uow_factory", None) is None
    if owned:
        await init_db()
        redis = await get_redis() if cfg.TENANT_CACHE_ENABLED else None
        wire_components(app, get_session_factory(), redis, cfg)
    logger.info("[Atrium] ready (strategy=%s)", cfg.TENANT_RESOLUTION_STRATEGY)
    yield
    if owned:
        await close_redis()
        await close_db()
    logger.info("[Atrium] Shutdown complete")


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    redis: Optional[aioredis.Redis] = None,
    app_settings: Optional[AtriumSettings] = None,
) -> FastAPI:
    cfg = app_settings or settings
    app = FastAPI(
        title="Atrium",
        description="Multi-tenant data access and RBAC core",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    if session_factory is not None:
        wire_components(app, session_factory, redis, cfg)

    # ── Middleware (last added runs first) ──────────────────────
    app.add_middleware(TenantResolutionMiddleware)
    app.add_middleware(TraceMiddleware)

    # ── Error Handlers ──────────────────────────────────────────
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(AtriumError, atrium_error_handler)

    # ── Routes ──────────────────────────────────────────────────
    app.include_router(tenancy_router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok", "env": cfg.ATRIUM_ENV}

    return app


app = create_app()
