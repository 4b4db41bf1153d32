# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Section Definitions — Tenant-defined data areas and their permissions.

Each section owns four global permissions derived from its normalized
name (CanCreateDataInSection{Name} and so on). They are created on
demand and granted to the tenant's Administrator role, so an
administrator can always reach a section it just defined.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, select

from atrium.core.errors import ValidationError
from atrium.core.tenant import TenantContext
from atrium.identity.catalog import (
    ADMIN_ROLE_NAME,
    SECTION_OPERATIONS,
    VIEW_ALL_SECTIONS,
    section_permission_name,
    section_permissions,
)
from atrium.identity.normalize import (
    normalize_key,
    normalize_section_name,
    validate_description,
    validate_section_name,
)
from atrium.identity.store import owner_scope
from atrium.storage.models import Permission, RolePermission, SectionDefinition
from atrium.storage.unit_of_work import UnitOfWork

logger = logging.getLogger("atrium.sections")


class SectionService:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    async def get(self, ctx: TenantContext, section_id: uuid.UUID) -> SectionDefinition:
        return await self.uow.sections.require(ctx, section_id)

    async def list_sections(self, ctx: TenantContext, active_only: bool = False) -> List[SectionDefinition]:
        return await self.uow.sections.list_for_tenant(ctx, active_only=active_only)

    async def is_name_available(
        self, ctx: TenantContext, name: str, exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        return not await self.uow.sections.exists_by_name(ctx, name, exclude_id=exclude_id)

    async def create_section(
        self,
        ctx: TenantContext,
        name: str,
        description: Optional[str] = None,
        tenant_id: Optional[uuid.UUID] = None,
    ) -> SectionDefinition:
        """Define a section. In system scope ``tenant_id`` names the owning tenant."""
        name = validate_section_name(name)
        if ctx.is_system and tenant_id is None:
            raise ValidationError(
                "tenant_id is required to define a section in system scope", field="tenant_id",
            )

        section = SectionDefinition(
            tenant_id=tenant_id,
            name=name,
            normalized_name=normalize_section_name(name),
            description=validate_description(description),
            is_active=True,
        )
        owner = owner_scope(ctx, section)
        if not await self.is_name_available(owner, name):
            raise ValidationError(f"Section '{name}' already exists in this tenant", field="name")
        await self.uow.sections.add(ctx, section)
        await self._grant_to_admin(owner, section)
        logger.info(
            "[sections] created %s", section.normalized_name,
            extra={"tenant_id": section.tenant_id},
        )
        return section

    async def rename_section(
        self, ctx: TenantContext, section_id: uuid.UUID, name: str,
    ) -> SectionDefinition:
        section = await self.get(ctx, section_id)
        name = validate_section_name(name)
        owner = owner_scope(ctx, section)
        if not await self.is_name_available(owner, name, exclude_id=section.id):
            raise ValidationError(f"Section '{name}' already exists in this tenant", field="name")

        previous = section.normalized_name
        section.name = name
        section.normalized_name = normalize_section_name(name)
        await self.uow.sections.save(ctx, section)
        if section.normalized_name != previous:
            await self._grant_to_admin(owner, section)
        return section

    async def update_description(
        self, ctx: TenantContext, section_id: uuid.UUID, description: Optional[str],
    ) -> SectionDefinition:
        return await self.uow.sections.update(
            ctx, section_id, description=validate_description(description),
        )

    async def set_active(
        self, ctx: TenantContext, section_id: uuid.UUID, active: bool,
    ) -> SectionDefinition:
        return await self.uow.sections.update(ctx, section_id, is_active=active)

    async def delete_section(self, ctx: TenantContext, section_id: uuid.UUID) -> None:
        """Remove the section and this tenant's grants of its permissions."""
        section = await self.get(ctx, section_id)
        names = [section.permission_name(op) for op in SECTION_OPERATIONS]
        permission_ids = select(Permission.id).where(Permission.name.in_(names))
        await self.uow.session.execute(
            delete(RolePermission)
            .where(RolePermission.tenant_id == section.tenant_id)
            .where(RolePermission.permission_id.in_(permission_ids))
            .execution_options(synchronize_session=False)
        )
        await self.uow.sections.remove(ctx, section.id)
        logger.info(
            "[sections] deleted %s", section.normalized_name,
            extra={"tenant_id": section.tenant_id},
        )

    async def list_accessible_sections(
        self, ctx: TenantContext, user_id: uuid.UUID,
    ) -> List[SectionDefinition]:
        """Active sections the user may read. Administrators see all of them."""
        user = await self.uow.users.repository.require(ctx, user_id)
        if not user.is_active:
            return []
        sections = await self.uow.sections.list_for_tenant(ctx, active_only=True)
        roles = await self.uow.roles.get_roles_for_user(ctx, user_id)
        admin_key = normalize_key(ADMIN_ROLE_NAME)
        if any(r.is_active and r.normalized_name == admin_key for r in roles):
            return sections

        granted = await self.uow.permission_resolver.get_user_permission_names(ctx, user_id)
        if VIEW_ALL_SECTIONS in granted:
            return sections
        return [
            s for s in sections
            if section_permission_name("Read", s.normalized_name) in granted
        ]

    async def _grant_to_admin(self, scope: TenantContext, section: SectionDefinition) -> None:
        permissions = self.uow.permissions
        admin = await self.uow.roles.find_by_normalized_name(scope, normalize_key(ADMIN_ROLE_NAME))
        for name, description in section_permissions(section.normalized_name, section.name):
            permission = await permissions.ensure_system(name, description)
            if admin is not None:
                await self.uow.permission_resolver.assign_permission_to_role(
                    scope, admin.id, permission.id,
                )
