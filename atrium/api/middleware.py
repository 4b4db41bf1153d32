# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
API Middleware — Trace ID propagation and per-request tenant resolution.
"""

from __future__ import annotations

import uuid
import time
import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from atrium.tenancy.resolver import RequestInfo

logger = logging.getLogger("atrium.api")

TENANT_HEADER = "X-Resolved-Tenant"


class TraceMiddleware(BaseHTTPMiddleware):
    """
    Generates or propagates X-Trace-Id header for every request.
    Also logs request duration.
    """

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get("X-Trace-Id", str(uuid.uuid4()))
        request.state.trace_id = trace_id

        start = time.time()
        response: Response = await call_next(request)
        elapsed = (time.time() - start) * 1000

        response.headers["X-Trace-Id"] = trace_id
        tenant = getattr(request.state, "tenant", None)
        logger.info(
            "[api] %s %s → %d (%.0fms) trace=%s",
            request.method, request.url.path,
            response.status_code, elapsed, trace_id,
            extra={"trace_id": trace_id, "tenant_id": tenant.tenant_id if tenant else None},
        )
        return response


class TenantResolutionMiddleware(BaseHTTPMiddleware):
    """
    Resolves the TenantContext once and stores it on request.state.tenant.

    The resolver is read from app.state at request time so tests and the
    lifespan hook can wire it after the middleware stack is built.
    Paths in ``skip_paths`` (health probes) are not resolved.
    """

    def __init__(self, app, skip_paths=("/health",)):
        super().__init__(app)
        self.skip_paths = tuple(skip_paths)

    async def dispatch(self, request: Request, call_next):
        if request.url.path not in self.skip_paths:
            resolver = request.app.state.resolver
            request.state.tenant = await resolver.resolve(RequestInfo.from_request(request))

        response: Response = await call_next(request)

        tenant = getattr(request.state, "tenant", None)
        if tenant is not None and tenant.identifier:
            response.headers[TENANT_HEADER] = tenant.identifier
        return response
