# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Tenant Context — Multi-tenancy support.

Every data-access call in Atrium is scoped by a TenantContext.
The context is passed explicitly through the call chain; nothing reads it
from ambient state.

A context without a tenant_id is the system (super-admin) scope: it sees
rows of every tenant and must only be entered on purpose.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Union


def coerce_tenant_id(value: Union[str, uuid.UUID, None]) -> Optional[uuid.UUID]:
    """Parse a tenant id from a UUID or its string form. Returns None if unparseable."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError):
        return None


@dataclass(frozen=True)
class TenantContext:
    """Immutable tenant identity for request-scoped operations."""

    tenant_id: Optional[uuid.UUID] = None
    identifier: Optional[str] = None

    @classmethod
    def system(cls) -> "TenantContext":
        """The unscoped context (all tenants visible)."""
        return cls()

    @classmethod
    def for_tenant(
        cls,
        tenant_id: Union[str, uuid.UUID],
        identifier: Optional[str] = None,
    ) -> "TenantContext":
        parsed = coerce_tenant_id(tenant_id)
        if parsed is None:
            raise ValueError(f"Invalid tenant_id: {tenant_id!r}")
        return cls(tenant_id=parsed, identifier=identifier)

    @property
    def is_system(self) -> bool:
        return self.tenant_id is None

    def __repr__(self) -> str:
        if self.is_system:
            return "TenantContext(system)"
        return f"TenantContext(tenant={self.tenant_id}, identifier={self.identifier!r})"
