# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Tenancy API — Current context, the caller's permissions, users and sections.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from atrium.api.deps import (
    get_current_user_id,
    get_tenant_context,
    get_unit_of_work,
    require_permission,
    require_tenant_context,
)
from atrium.core.tenant import TenantContext
from atrium.identity.catalog import DEFINE_SECTIONS, VIEW_USERS
from atrium.services.sections import SectionService
from atrium.storage.unit_of_work import UnitOfWork

router = APIRouter(tags=["tenancy"])


class SectionCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None


def _section_out(section) -> dict:
    return {
        "id": str(section.id),
        "name": section.name,
        "normalized_name": section.normalized_name,
        "description": section.description,
        "is_active": section.is_active,
    }


@router.get("/context")
async def get_context(tenant: TenantContext = Depends(get_tenant_context)):
    """The tenant this request was resolved to."""
    return {
        "tenant_id": str(tenant.tenant_id) if tenant.tenant_id else None,
        "identifier": tenant.identifier,
        "system": tenant.is_system,
    }


@router.get("/me/permissions")
async def get_my_permissions(
    tenant: TenantContext = Depends(get_tenant_context),
    user_id: uuid.UUID = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
):
    names = await uow.permission_resolver.get_user_permission_names(tenant, user_id)
    return {"user_id": str(user_id), "permissions": sorted(names)}


@router.get("/users")
async def list_users(
    tenant: TenantContext = Depends(get_tenant_context),
    _: uuid.UUID = Depends(require_permission(VIEW_USERS)),
    uow: UnitOfWork = Depends(get_unit_of_work),
):
    users = await uow.users.list_users(tenant)
    return {
        "users": [
            {"id": str(u.id), "username": u.username, "email": u.email, "is_active": u.is_active}
            for u in users
        ]
    }


@router.get("/sections")
async def list_sections(
    tenant: TenantContext = Depends(get_tenant_context),
    user_id: uuid.UUID = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
):
    """Sections the caller is allowed to read."""
    sections = await SectionService(uow).list_accessible_sections(tenant, user_id)
    return {"sections": [_section_out(s) for s in sections]}


@router.post("/sections", status_code=201)
async def create_section(
    req: SectionCreateRequest,
    tenant: TenantContext = Depends(require_tenant_context),
    _: uuid.UUID = Depends(require_permission(DEFINE_SECTIONS)),
    uow: UnitOfWork = Depends(get_unit_of_work),
):
    section = await SectionService(uow).create_section(tenant, req.name, req.description)
    return _section_out(section)
