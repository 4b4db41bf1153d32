# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Error Taxonomy — Typed failures raised by the data-access and RBAC core.

Each error carries a stable ``code`` so callers can tell kinds apart
without string matching. Translating them into transport responses is
done by the API adapter (see atrium.api.errors).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AtriumError(Exception):
    """Base error with a machine-readable code."""

    code = "ATRIUM_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AtriumError):
    """Entity absent, or outside the caller's tenant scope.

    Both cases produce the same error so a caller cannot probe for rows
    that belong to another tenant.
    """

    code = "NOT_FOUND"

    def __init__(self, entity: str, key: Any):
        super().__init__(
            f"{entity} '{key}' not found",
            details={"entity": entity, "key": str(key)},
        )
        self.entity = entity
        self.key = key


class TenantMismatchError(AtriumError):
    """A write targets a tenant other than the active context. Always fatal."""

    code = "TENANT_MISMATCH"

    def __init__(self, message: str = "Entity belongs to a different tenant", **details: Any):
        super().__init__(message, details={k: str(v) for k, v in details.items()})


class AccessDeniedError(AtriumError):
    code = "ACCESS_DENIED"

    def __init__(self, message: str = "Access denied", **details: Any):
        super().__init__(message, details={k: str(v) for k, v in details.items()})


class ValidationError(AtriumError):
    """Uniqueness or shape violation within a tenant scope."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class TenantResolutionError(AtriumError):
    code = "TENANT_UNRESOLVED"
