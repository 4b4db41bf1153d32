# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Repository Layer — Typed access to the global and tenant-scoped tables.

Tenants and permissions are global: reads need no context, writes
require the system scope. Tenant-scoped tables go through
ScopedRepository (see atrium.storage.scoped).
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from atrium.core.errors import AccessDeniedError, NotFoundError, ValidationError
from atrium.core.tenant import TenantContext
from atrium.identity.catalog import validate_permission_name
from atrium.identity.normalize import normalize_section_name
from atrium.storage.models import (
    Permission,
    Role,
    RolePermission,
    SectionDefinition,
    Tenant,
    User,
    UserRole,
)
from atrium.storage.scoped import ScopedRepository

logger = logging.getLogger("atrium.repository")


def _require_system(ctx: TenantContext, action: str) -> None:
    if not ctx.is_system:
        raise AccessDeniedError(f"{action} requires system scope", tenant_id=ctx.tenant_id)


# ── Tenant Repository ───────────────────────────────────────

class TenantRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, tenant_id: uuid.UUID) -> Optional[Tenant]:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        return result.scalar_one_or_none()

    async def require(self, tenant_id: uuid.UUID) -> Tenant:
        tenant = await self.get(tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)
        return tenant

    async def get_by_identifier(self, identifier: str) -> Optional[Tenant]:
        result = await self.db.execute(
            select(Tenant).where(Tenant.identifier == identifier.strip().lower())
        )
        return result.scalar_one_or_none()

    async def is_identifier_available(self, identifier: str) -> bool:
        return await self.get_by_identifier(identifier) is None

    async def list_page(
        self,
        include_inactive: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Tenant], int]:
        """Return one page of tenants (ordered by creation) and the total count."""
        if page < 1:
            raise ValidationError("page must be >= 1", field="page")
        if page_size < 1:
            raise ValidationError("page_size must be >= 1", field="page_size")

        query = select(Tenant)
        count_query = select(func.count()).select_from(Tenant)
        if not include_inactive:
            query = query.where(Tenant.is_active.is_(True))
            count_query = count_query.where(Tenant.is_active.is_(True))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(Tenant.created_at, Tenant.identifier)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        return list(result.scalars().all()), int(total)

    async def add(self, ctx: TenantContext, tenant: Tenant) -> Tenant:
        _require_system(ctx, "Creating a tenant")
        self.db.add(tenant)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ValidationError(
                f"Tenant identifier '{tenant.identifier}' is already in use", field="identifier",
            ) from e
        logger.warning("[tenant] created %s (%s)", tenant.identifier, tenant.id)
        return tenant

    async def flush(self, ctx: TenantContext, tenant: Tenant) -> Tenant:
        _require_system(ctx, "Modifying a tenant")
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ValidationError(
                f"Tenant identifier '{tenant.identifier}' is already in use", field="identifier",
            ) from e
        return tenant

    async def remove(self, ctx: TenantContext, tenant: Tenant) -> None:
        _require_system(ctx, "Deleting a tenant")
        await self.db.delete(tenant)
        await self.db.flush()
        logger.warning("[tenant] deleted %s (%s)", tenant.identifier, tenant.id)

    async def purge_scoped_rows(self, ctx: TenantContext, tenant_id: uuid.UUID) -> int:
        """Delete every tenant-scoped row of one tenant. Returns rows removed."""
        _require_system(ctx, "Purging tenant data")
        user_ids = select(User.id).where(User.tenant_id == tenant_id)
        role_ids = select(Role.id).where(Role.tenant_id == tenant_id)
        removed = 0
        for stmt in (
            delete(UserRole).where(
                UserRole.user_id.in_(user_ids) | UserRole.role_id.in_(role_ids)
            ),
            delete(RolePermission).where(RolePermission.tenant_id == tenant_id),
            delete(SectionDefinition).where(SectionDefinition.tenant_id == tenant_id),
            delete(Role).where(Role.tenant_id == tenant_id),
            delete(User).where(User.tenant_id == tenant_id),
        ):
            result = await self.db.execute(stmt.execution_options(synchronize_session=False))
            removed += result.rowcount or 0
        logger.warning("[tenant] purged %d scoped rows of %s", removed, tenant_id)
        return removed


# ── Permission Repository ───────────────────────────────────

class PermissionRepository:
    """Global permission catalogue. Names are unique across all tenants."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, permission_id: uuid.UUID) -> Optional[Permission]:
        result = await self.db.execute(select(Permission).where(Permission.id == permission_id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[Permission]:
        if not name or not name.strip():
            raise ValidationError("Permission name must not be empty", field="name")
        result = await self.db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def list_all(self) -> List[Permission]:
        result = await self.db.execute(select(Permission).order_by(Permission.name))
        return list(result.scalars().all())

    async def add(self, ctx: TenantContext, permission: Permission) -> Permission:
        _require_system(ctx, "Creating a permission")
        validate_permission_name(permission.name)
        self.db.add(permission)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ValidationError(
                f"Permission '{permission.name}' already exists", field="name",
            ) from e
        return permission

    async def ensure_system(self, name: str, description: str = "") -> Permission:
        """
        Return the named built-in permission, creating it if missing.

        Only catalogue-derived names (system and section permissions) go
        through here, which is why no system scope is demanded.
        """
        existing = await self.get_by_name(name)
        if existing is not None:
            return existing
        validate_permission_name(name)
        permission = Permission(name=name, description=description, is_system=True)
        self.db.add(permission)
        await self.db.flush()
        return permission

    async def rename(self, ctx: TenantContext, permission_id: uuid.UUID, name: str) -> Permission:
        _require_system(ctx, "Renaming a permission")
        permission = await self.get(permission_id)
        if permission is None:
            raise NotFoundError("Permission", permission_id)
        if permission.is_system:
            raise ValidationError("System permissions cannot be renamed", field="name")
        validate_permission_name(name)
        permission.name = name
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ValidationError(f"Permission '{name}' already exists", field="name") from e
        return permission

    async def is_assigned(self, permission_id: uuid.UUID) -> bool:
        stmt = select(RolePermission.role_id).where(RolePermission.permission_id == permission_id)
        result = await self.db.execute(select(stmt.exists()))
        return bool(result.scalar())

    async def remove(self, ctx: TenantContext, permission_id: uuid.UUID) -> None:
        _require_system(ctx, "Deleting a permission")
        permission = await self.get(permission_id)
        if permission is None:
            raise NotFoundError("Permission", permission_id)
        if permission.is_system:
            raise ValidationError("System permissions cannot be deleted")
        if await self.is_assigned(permission_id):
            raise ValidationError("Permission is still assigned to roles")
        await self.db.delete(permission)
        await self.db.flush()


# ── Section Definition Repository ───────────────────────────

class SectionRepository(ScopedRepository[SectionDefinition]):
    def __init__(self, db: AsyncSession):
        super().__init__(db, SectionDefinition)

    async def get_by_name(self, ctx: TenantContext, name: str) -> Optional[SectionDefinition]:
        return await self.first(
            ctx, SectionDefinition.normalized_name == normalize_section_name(name),
        )

    async def exists_by_name(
        self, ctx: TenantContext, name: str, exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        criteria = [SectionDefinition.normalized_name == normalize_section_name(name)]
        if exclude_id is not None:
            criteria.append(SectionDefinition.id != exclude_id)
        return await self.exists(ctx, *criteria)

    async def list_for_tenant(
        self, ctx: TenantContext, active_only: bool = False,
    ) -> List[SectionDefinition]:
        criteria = [SectionDefinition.is_active.is_(True)] if active_only else []
        return await self.find_all(ctx, *criteria, order_by=SectionDefinition.normalized_name)
