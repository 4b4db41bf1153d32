# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Tenant Administration — Cross-tenant lifecycle, system scope only.

    async with uow_factory.system(reason="provision acme") as uow:
        admin = TenantAdminService(uow, directory)
        tenant = await admin.create_tenant("Acme Corp", "acme")
        await admin.provision_admin(tenant.id, "root", "root@acme.test")
        await admin.commit()

commit() commits the unit of work and only then evicts the affected
directory cache entries, so a concurrent resolution cannot re-cache
the pre-commit state.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from atrium.core.errors import AccessDeniedError, ValidationError
from atrium.core.tenant import TenantContext
from atrium.identity.catalog import ADMIN_ROLE_NAME, SYSTEM_PERMISSIONS
from atrium.identity.normalize import (
    normalize_key,
    validate_tenant_identifier,
    validate_tenant_name,
)
from atrium.storage.models import Role, SectionDefinition, Tenant, User
from atrium.storage.scoped import ScopedRepository
from atrium.storage.unit_of_work import UnitOfWork
from atrium.tenancy.directory import TenantDirectory

logger = logging.getLogger("atrium.tenant_admin")


@dataclass
class TenantPage:
    items: List[Tenant]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


class TenantAdminService:
    def __init__(self, uow: UnitOfWork, directory: Optional[TenantDirectory] = None):
        if not uow.ctx.is_system:
            raise AccessDeniedError("Tenant administration requires system scope")
        self.uow = uow
        self.directory = directory
        self.ctx = uow.ctx
        self._evictions: Set[Tuple[uuid.UUID, str]] = set()

    # ── Queries ─────────────────────────────────────────────────

    async def get_tenant(self, tenant_id: uuid.UUID) -> Tenant:
        return await self.uow.tenants.require(tenant_id)

    async def is_identifier_available(self, identifier: str) -> bool:
        return await self.uow.tenants.is_identifier_available(identifier)

    async def list_tenants(
        self, include_inactive: bool = False, page: int = 1, page_size: int = 20,
    ) -> TenantPage:
        items, total = await self.uow.tenants.list_page(include_inactive, page, page_size)
        return TenantPage(items=items, total=total, page=page, page_size=page_size)

    async def can_delete(self, tenant_id: uuid.UUID) -> bool:
        """A tenant is deletable once it has neither users nor sections."""
        tenant = await self.get_tenant(tenant_id)
        scope = TenantContext.for_tenant(tenant.id, tenant.identifier)
        users = await ScopedRepository(self.uow.session, User).exists(scope)
        sections = await ScopedRepository(self.uow.session, SectionDefinition).exists(scope)
        return not users and not sections

    # ── Lifecycle ───────────────────────────────────────────────

    async def create_tenant(self, name: str, identifier: str) -> Tenant:
        name = validate_tenant_name(name)
        identifier = validate_tenant_identifier(identifier)
        if not await self.uow.tenants.is_identifier_available(identifier):
            raise ValidationError(
                f"Tenant identifier '{identifier}' is already in use", field="identifier",
            )
        tenant = Tenant(name=name, identifier=identifier, is_active=True)
        await self.uow.tenants.add(self.ctx, tenant)
        self._evict(tenant)
        return tenant

    async def rename_tenant(self, tenant_id: uuid.UUID, name: str) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        tenant.name = validate_tenant_name(name)
        return await self.uow.tenants.flush(self.ctx, tenant)

    async def change_identifier(self, tenant_id: uuid.UUID, identifier: str) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        identifier = validate_tenant_identifier(identifier)
        if identifier == tenant.identifier:
            return tenant
        if not await self.uow.tenants.is_identifier_available(identifier):
            raise ValidationError(
                f"Tenant identifier '{identifier}' is already in use", field="identifier",
            )
        self._evict(tenant)
        tenant.identifier = identifier
        await self.uow.tenants.flush(self.ctx, tenant)
        self._evict(tenant)
        logger.warning("[tenant] %s now identified as %s", tenant.id, identifier)
        return tenant

    async def activate(self, tenant_id: uuid.UUID) -> Tenant:
        return await self._set_active(tenant_id, True)

    async def deactivate(self, tenant_id: uuid.UUID) -> Tenant:
        return await self._set_active(tenant_id, False)

    async def _set_active(self, tenant_id: uuid.UUID, active: bool) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        if tenant.is_active == active:
            return tenant
        tenant.is_active = active
        await self.uow.tenants.flush(self.ctx, tenant)
        self._evict(tenant)
        logger.warning(
            "[tenant] %s %s", tenant.identifier, "activated" if active else "deactivated",
        )
        return tenant

    async def delete_tenant(self, tenant_id: uuid.UUID, cascade: bool = False) -> int:
        """
        Delete a tenant. Refused while it still has users or sections,
        unless cascade is set. Returns the number of scoped rows removed.
        """
        tenant = await self.get_tenant(tenant_id)
        if not cascade and not await self.can_delete(tenant.id):
            raise ValidationError(
                f"Tenant '{tenant.identifier}' still has users or sections; "
                "delete them first or pass cascade=True"
            )
        removed = await self.uow.tenants.purge_scoped_rows(self.ctx, tenant.id)
        self._evict(tenant)
        await self.uow.tenants.remove(self.ctx, tenant)
        return removed

    # ── Provisioning ────────────────────────────────────────────

    async def provision_admin(
        self,
        tenant_id: uuid.UUID,
        username: str,
        email: str,
        full_name: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> Tuple[User, Role]:
        """
        Create the tenant's first user and give it the Administrator role,
        which holds every system permission.
        """
        tenant = await self.get_tenant(tenant_id)
        scope = TenantContext.for_tenant(tenant.id, tenant.identifier)

        role = await self.ensure_admin_role(scope)
        user = await self.uow.users.create(scope, User(
            username=username,
            email=email,
            full_name=full_name,
            password_hash=password_hash,
        ))
        await self.uow.permission_resolver.assign_role_to_user(scope, user.id, role.id)
        logger.warning(
            "[tenant] provisioned administrator %s for %s", user.username, tenant.identifier,
            extra={"tenant_id": tenant.id, "user_id": user.id},
        )
        return user, role

    async def ensure_admin_role(self, scope: TenantContext) -> Role:
        role = await self.uow.roles.find_by_normalized_name(scope, normalize_key(ADMIN_ROLE_NAME))
        if role is None:
            role = await self.uow.roles.create(scope, Role(
                name=ADMIN_ROLE_NAME,
                description="Full administrative access to the tenant",
            ))
        for name, description in SYSTEM_PERMISSIONS:
            permission = await self.uow.permissions.ensure_system(name, description)
            await self.uow.permission_resolver.assign_permission_to_role(
                scope, role.id, permission.id,
            )
        return role

    # ── Commit & cache ──────────────────────────────────────────

    def _evict(self, tenant: Tenant) -> None:
        self._evictions.add((tenant.id, tenant.identifier))

    async def commit(self) -> int:
        written = await self.uow.commit()
        evictions, self._evictions = self._evictions, set()
        if self.directory is not None:
            for tenant_id, identifier in evictions:
                await self.directory.invalidate(tenant_id, identifier)
        return written
