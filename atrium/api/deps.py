# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
API Dependencies — FastAPI dependency injection.
"""

from __future__ import annotations

import uuid
from typing import AsyncGenerator, Callable

from fastapi import Depends, Request

from atrium.api.errors import APIError
from atrium.core.errors import TenantResolutionError
from atrium.core.tenant import TenantContext
from atrium.storage.unit_of_work import UnitOfWork
from atrium.tenancy.resolver import RequestInfo


async def get_tenant_context(request: Request) -> TenantContext:
    """
    The TenantContext resolved by TenantResolutionMiddleware.

    Resolves on the spot when the middleware skipped this path.
    """
    ctx = getattr(request.state, "tenant", None)
    if ctx is None:
        ctx = await request.app.state.resolver.resolve(RequestInfo.from_request(request))
        request.state.tenant = ctx
    return ctx


async def require_tenant_context(
    ctx: TenantContext = Depends(get_tenant_context),
) -> TenantContext:
    """A resolved tenant; system scope is rejected with TENANT_UNRESOLVED."""
    if ctx.is_system:
        raise TenantResolutionError("No tenant could be resolved for this request")
    return ctx


async def get_current_user_id(request: Request) -> uuid.UUID:
    """
    User id from the ``sub`` claim placed on request.state.claims by the
    token layer in front of this service.
    """
    claims = getattr(request.state, "claims", None) or {}
    try:
        return uuid.UUID(str(claims["sub"]))
    except (KeyError, ValueError):
        raise APIError(
            code="UNAUTHENTICATED", message="Missing or invalid subject claim", status_code=401,
        )


async def get_unit_of_work(
    request: Request,
    ctx: TenantContext = Depends(get_tenant_context),
) -> AsyncGenerator[UnitOfWork, None]:
    """Yields a tenant-bound UnitOfWork: committed on success, rolled back on error."""
    factory = request.app.state.uow_factory
    async with factory(ctx) as uow:
        yield uow
        await uow.commit()


def require_permission(permission_name: str) -> Callable:
    """
    Dependency factory guarding a route with one permission.

        @router.get("/users", dependencies=[Depends(require_permission(VIEW_USERS))])
    """

    async def _check(
        ctx: TenantContext = Depends(get_tenant_context),
        user_id: uuid.UUID = Depends(get_current_user_id),
        uow: UnitOfWork = Depends(get_unit_of_work),
    ) -> uuid.UUID:
        await uow.permission_resolver.require_permission(ctx, user_id, permission_name)
        return user_id

    return _check
