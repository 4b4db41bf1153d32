# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Permission Resolver — RBAC decisions over three flat relations.

    users ─(user_roles)→ roles ─(role_permissions)→ permissions

Users, roles and role_permissions are filtered to the caller's tenant;
permissions are global and never filtered. Inactive users and roles
grant nothing.

user_has_permission() is a single EXISTS query: it runs on most
authorized requests, so the full permission set is never materialized
for a yes/no answer.
"""

from __future__ import annotations

import logging
import uuid
from typing import Set

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from atrium.core.errors import AccessDeniedError, NotFoundError, TenantMismatchError
from atrium.core.tenant import TenantContext
from atrium.storage.models import Permission, Role, RolePermission, User, UserRole
from atrium.storage.scoped import ScopedRepository, apply_scope

logger = logging.getLogger("atrium.permissions")


class PermissionResolver:
    def __init__(self, db: AsyncSession):
        self.db = db
        self._users: ScopedRepository[User] = ScopedRepository(db, User)
        self._roles: ScopedRepository[Role] = ScopedRepository(db, Role)

    # ── Queries ─────────────────────────────────────────────────

    def _user_grants(self, ctx: TenantContext, user_id: uuid.UUID, *columns) -> Select:
        stmt = (
            select(*columns)
            .select_from(UserRole)
            .join(User, User.id == UserRole.user_id)
            .join(Role, Role.id == UserRole.role_id)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(UserRole.user_id == user_id)
            .where(User.is_active.is_(True), Role.is_active.is_(True))
            .where(Role.tenant_id == User.tenant_id)
            .where(RolePermission.tenant_id == Role.tenant_id)
        )
        return apply_scope(
            ctx, stmt, User.tenant_id, Role.tenant_id, RolePermission.tenant_id,
            label="user_permissions",
        )

    async def user_has_permission(
        self, ctx: TenantContext, user_id: uuid.UUID, permission_name: str,
    ) -> bool:
        """True if any of the user's active roles in ctx's tenant grants the permission."""
        if not permission_name:
            return False
        grants = self._user_grants(ctx, user_id, Permission.id).where(
            Permission.name == permission_name
        )
        result = await self.db.execute(select(grants.exists()))
        return bool(result.scalar())

    async def require_permission(
        self, ctx: TenantContext, user_id: uuid.UUID, permission_name: str,
    ) -> None:
        if not await self.user_has_permission(ctx, user_id, permission_name):
            logger.info(
                "[rbac] denied %s", permission_name,
                extra={"tenant_id": ctx.tenant_id, "user_id": user_id},
            )
            raise AccessDeniedError(
                f"Missing permission '{permission_name}'",
                permission=permission_name,
                user_id=user_id,
            )

    async def get_user_permissions(
        self, ctx: TenantContext, user_id: uuid.UUID,
    ) -> Set[Permission]:
        stmt = self._user_grants(ctx, user_id, Permission).distinct()
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def get_user_permission_names(
        self, ctx: TenantContext, user_id: uuid.UUID,
    ) -> Set[str]:
        stmt = self._user_grants(ctx, user_id, Permission.name).distinct()
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def get_role_permissions(
        self, ctx: TenantContext, role_id: uuid.UUID,
    ) -> Set[Permission]:
        stmt = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(RolePermission.role_id == role_id)
            .where(RolePermission.tenant_id == Role.tenant_id)
        )
        stmt = apply_scope(
            ctx, stmt, Role.tenant_id, RolePermission.tenant_id, label="role_permissions",
        )
        result = await self.db.execute(stmt.distinct())
        return set(result.scalars().all())

    # ── Assignments (idempotent) ────────────────────────────────

    async def _require_permission_row(self, permission_id: uuid.UUID) -> Permission:
        result = await self.db.execute(select(Permission).where(Permission.id == permission_id))
        permission = result.scalar_one_or_none()
        if permission is None:
            raise NotFoundError("Permission", permission_id)
        return permission

    async def _find_link(self, role: Role, permission_id: uuid.UUID):
        result = await self.db.execute(
            select(RolePermission).where(
                RolePermission.role_id == role.id,
                RolePermission.permission_id == permission_id,
            )
        )
        return result.scalar_one_or_none()

    async def assign_permission_to_role(
        self, ctx: TenantContext, role_id: uuid.UUID, permission_id: uuid.UUID,
    ) -> bool:
        """Link a permission to a role. Returns False if the link already existed."""
        role = await self._roles.require(ctx, role_id)
        await self._require_permission_row(permission_id)

        existing = await self._find_link(role, permission_id)
        if existing is not None:
            if existing.tenant_id != role.tenant_id:
                raise TenantMismatchError(
                    "Role permission link is stamped for another tenant",
                    role_tenant=role.tenant_id,
                    link_tenant=existing.tenant_id,
                )
            return False

        self.db.add(RolePermission(
            role_id=role.id, permission_id=permission_id, tenant_id=role.tenant_id,
        ))
        await self.db.flush()
        logger.info(
            "[rbac] granted permission %s to role %s", permission_id, role.id,
            extra={"tenant_id": role.tenant_id},
        )
        return True

    async def remove_permission_from_role(
        self, ctx: TenantContext, role_id: uuid.UUID, permission_id: uuid.UUID,
    ) -> bool:
        """Unlink a permission from a role. Returns False if there was no link."""
        role = await self._roles.require(ctx, role_id)
        existing = await self._find_link(role, permission_id)
        if existing is None or existing.tenant_id != role.tenant_id:
            return False
        await self.db.delete(existing)
        await self.db.flush()
        return True

    async def _require_pair(
        self, ctx: TenantContext, user_id: uuid.UUID, role_id: uuid.UUID,
    ):
        user = await self._users.require(ctx, user_id)
        role = await self._roles.require(ctx, role_id)
        if user.tenant_id != role.tenant_id:
            raise TenantMismatchError(
                "User and role belong to different tenants",
                user_tenant=user.tenant_id,
                role_tenant=role.tenant_id,
            )
        return user, role

    async def assign_role_to_user(
        self, ctx: TenantContext, user_id: uuid.UUID, role_id: uuid.UUID,
    ) -> bool:
        """Give a user a role. Returns False if already assigned."""
        user, role = await self._require_pair(ctx, user_id, role_id)
        result = await self.db.execute(
            select(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == role.id)
        )
        if result.scalar_one_or_none() is not None:
            return False
        self.db.add(UserRole(user_id=user.id, role_id=role.id))
        await self.db.flush()
        logger.info(
            "[rbac] assigned role %s to user %s", role.id, user.id,
            extra={"tenant_id": role.tenant_id, "user_id": user.id},
        )
        return True

    async def remove_role_from_user(
        self, ctx: TenantContext, user_id: uuid.UUID, role_id: uuid.UUID,
    ) -> bool:
        """Take a role away from a user. Returns False if it was not assigned."""
        user, role = await self._require_pair(ctx, user_id, role_id)
        result = await self.db.execute(
            select(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == role.id)
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            return False
        await self.db.delete(assignment)
        await self.db.flush()
        return True
