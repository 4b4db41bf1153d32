# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
API Error Handling — Unified error structure for AtriumError kinds.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from atrium.core.errors import AtriumError

logger = logging.getLogger("atrium.api")

# NotFound and cross-tenant access share 404 on purpose; see NotFoundError.
STATUS_BY_CODE: Dict[str, int] = {
    "NOT_FOUND": 404,
    "TENANT_MISMATCH": 403,
    "ACCESS_DENIED": 403,
    "VALIDATION_ERROR": 422,
    "TENANT_UNRESOLVED": 400,
}


class APIError(Exception):
    """Transport-level error raised directly by route code."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
        trace_id: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.trace_id = trace_id
        super().__init__(message)


def _trace_id(request: Request, explicit: Optional[str] = None) -> str:
    return explicit or getattr(request.state, "trace_id", None) or str(uuid.uuid4())


def _body(code: str, message: str, trace_id: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {"code": code, "message": message, "trace_id": trace_id, "details": details}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Global exception handler for APIError."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_body(exc.code, exc.message, _trace_id(request, exc.trace_id), exc.details),
    )


async def atrium_error_handler(request: Request, exc: AtriumError) -> JSONResponse:
    """Map core error kinds onto HTTP status codes."""
    status_code = STATUS_BY_CODE.get(exc.code, 500)
    trace_id = _trace_id(request)
    if exc.code == "TENANT_MISMATCH":
        logger.error(
            "[api] tenant mismatch on %s %s: %s", request.method, request.url.path, exc.message,
            extra={"trace_id": trace_id},
        )
    # Mismatch details name the other tenant; they stay in the log.
    details = {} if exc.code == "TENANT_MISMATCH" else exc.details
    return JSONResponse(
        status_code=status_code,
        content=_body(exc.code, exc.message, trace_id, details),
    )
