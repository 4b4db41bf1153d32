# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Identity Stores — Tenant-aware lookup and lifecycle of users and roles.

Both stores wrap a ScopedRepository rather than extending one, so the
tenant filter stays the single contract every lookup goes through.
In system scope the lookups search every tenant.

Uniqueness of usernames, emails and role names is per tenant and is
checked on the normalized key before insert; the composite unique
constraints in the schema back it up.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, List, Optional, Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atrium.core.errors import ValidationError
from atrium.core.tenant import TenantContext
from atrium.identity.catalog import ADMIN_ROLE_NAME
from atrium.identity.normalize import (
    normalize_key,
    validate_description,
    validate_email,
    validate_role_name,
)
from atrium.storage.models import Role, RolePermission, User, UserRole
from atrium.storage.scoped import ScopedRepository, apply_scope, stamp_tenant

logger = logging.getLogger("atrium.identity")

T_co = TypeVar("T_co", covariant=True)


class IdentityLookup(Protocol[T_co]):
    """Lookup capability shared by the identity stores."""

    async def find_by_id(self, ctx: TenantContext, entity_id: uuid.UUID) -> Optional[T_co]:
        ...


def owner_scope(ctx: TenantContext, entity: Any) -> TenantContext:
    """The single-tenant scope a new entity will live in."""
    if ctx.is_system:
        return TenantContext.for_tenant(entity.tenant_id)
    return ctx


# ── Users ───────────────────────────────────────────────────

class UserStore:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.repository: ScopedRepository[User] = ScopedRepository(db, User)

    async def find_by_id(self, ctx: TenantContext, user_id: uuid.UUID) -> Optional[User]:
        return await self.repository.get_by_id(ctx, user_id)

    async def find_by_normalized_username(
        self, ctx: TenantContext, normalized_username: str,
    ) -> Optional[User]:
        return await self.repository.first(
            ctx, User.normalized_username == normalized_username,
        )

    async def find_by_normalized_email(
        self, ctx: TenantContext, normalized_email: str,
    ) -> Optional[User]:
        return await self.repository.first(ctx, User.normalized_email == normalized_email)

    async def find_all_by_normalized_email(
        self, ctx: TenantContext, normalized_email: str,
    ) -> List[User]:
        """Every match visible to ctx (several tenants in system scope)."""
        return await self.repository.find_all(
            ctx, User.normalized_email == normalized_email, order_by=User.created_at,
        )

    async def list_users(self, ctx: TenantContext, active_only: bool = False) -> List[User]:
        criteria = [User.is_active.is_(True)] if active_only else []
        return await self.repository.find_all(ctx, *criteria, order_by=User.normalized_username)

    async def get_users_in_role(
        self, ctx: TenantContext, normalized_role_name: str,
    ) -> List[User]:
        stmt = (
            select(User)
            .join(UserRole, UserRole.user_id == User.id)
            .join(Role, Role.id == UserRole.role_id)
            .where(Role.normalized_name == normalized_role_name)
            .where(Role.tenant_id == User.tenant_id)
        )
        stmt = apply_scope(ctx, stmt, User.tenant_id, Role.tenant_id, label="users_in_role")
        result = await self.db.execute(stmt.order_by(User.normalized_username))
        return list(result.scalars().unique().all())

    async def create(self, ctx: TenantContext, user: User) -> User:
        """Insert a user after checking per-tenant username and email uniqueness."""
        if not user.username or not user.username.strip():
            raise ValidationError("Username must not be empty", field="username")
        user.username = user.username.strip()
        user.email = validate_email(user.email)
        user.normalized_username = normalize_key(user.username)
        user.normalized_email = normalize_key(user.email)
        if user.is_active is None:
            user.is_active = True

        stamp_tenant(ctx, user)
        owner = owner_scope(ctx, user)
        await self._check_unique(owner, user)

        await self.repository.add(ctx, user)
        logger.info(
            "[identity] created user %s", user.id,
            extra={"tenant_id": user.tenant_id, "user_id": user.id},
        )
        return user

    async def update(
        self,
        ctx: TenantContext,
        user_id: uuid.UUID,
        *,
        username: Optional[str] = None,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> User:
        user = await self.repository.require(ctx, user_id)
        if username is not None:
            if not username.strip():
                raise ValidationError("Username must not be empty", field="username")
            user.username = username.strip()
            user.normalized_username = normalize_key(user.username)
        if email is not None:
            user.email = validate_email(email)
            user.normalized_email = normalize_key(user.email)
        if full_name is not None:
            user.full_name = full_name.strip() or None
        if is_active is not None:
            user.is_active = is_active

        if username is not None or email is not None:
            await self._check_unique(owner_scope(ctx, user), user, exclude_id=user.id)
        return await self.repository.save(ctx, user)

    async def delete(self, ctx: TenantContext, user_id: uuid.UUID) -> None:
        user = await self.repository.require(ctx, user_id)
        result = await self.db.execute(select(UserRole).where(UserRole.user_id == user.id))
        for assignment in result.scalars().all():
            await self.db.delete(assignment)
        await self.repository.remove(ctx, user.id)

    async def _check_unique(
        self, owner: TenantContext, user: User, exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        extra = [User.id != exclude_id] if exclude_id is not None else []
        if await self.repository.exists(
            owner, User.normalized_username == user.normalized_username, *extra,
        ):
            raise ValidationError(
                f"Username '{user.username}' is already taken in this tenant", field="username",
            )
        if await self.repository.exists(
            owner, User.normalized_email == user.normalized_email, *extra,
        ):
            raise ValidationError(
                f"Email '{user.email}' is already registered in this tenant", field="email",
            )


# ── Roles ───────────────────────────────────────────────────

def is_admin_role(role: Role) -> bool:
    return role.normalized_name == normalize_key(ADMIN_ROLE_NAME)


class RoleStore:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.repository: ScopedRepository[Role] = ScopedRepository(db, Role)

    async def find_by_id(self, ctx: TenantContext, role_id: uuid.UUID) -> Optional[Role]:
        return await self.repository.get_by_id(ctx, role_id)

    async def find_by_normalized_name(
        self, ctx: TenantContext, normalized_name: str,
    ) -> Optional[Role]:
        return await self.repository.first(ctx, Role.normalized_name == normalized_name)

    async def list_roles(self, ctx: TenantContext, active_only: bool = False) -> List[Role]:
        criteria = [Role.is_active.is_(True)] if active_only else []
        return await self.repository.find_all(ctx, *criteria, order_by=Role.normalized_name)

    async def get_roles_for_user(self, ctx: TenantContext, user_id: uuid.UUID) -> List[Role]:
        stmt = (
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .join(User, User.id == UserRole.user_id)
            .where(UserRole.user_id == user_id)
            .where(Role.tenant_id == User.tenant_id)
        )
        stmt = apply_scope(ctx, stmt, Role.tenant_id, User.tenant_id, label="roles_for_user")
        result = await self.db.execute(stmt.order_by(Role.normalized_name))
        return list(result.scalars().unique().all())

    async def has_users(self, ctx: TenantContext, role_id: uuid.UUID) -> bool:
        role = await self.repository.require(ctx, role_id)
        stmt = select(UserRole.user_id).where(UserRole.role_id == role.id)
        result = await self.db.execute(select(stmt.exists()))
        return bool(result.scalar())

    async def create(self, ctx: TenantContext, role: Role) -> Role:
        role.name = validate_role_name(role.name)
        role.description = validate_description(role.description)
        role.normalized_name = normalize_key(role.name)
        if role.is_active is None:
            role.is_active = True

        stamp_tenant(ctx, role)
        await self._check_unique(owner_scope(ctx, role), role)
        return await self.repository.add(ctx, role)

    async def rename(self, ctx: TenantContext, role_id: uuid.UUID, name: str) -> Role:
        role = await self.repository.require(ctx, role_id)
        name = validate_role_name(name)
        if is_admin_role(role) and normalize_key(name) != role.normalized_name:
            raise ValidationError("The administrator role cannot be renamed", field="name")
        role.name = name
        role.normalized_name = normalize_key(name)
        await self._check_unique(owner_scope(ctx, role), role, exclude_id=role.id)
        return await self.repository.save(ctx, role)

    async def update_description(
        self, ctx: TenantContext, role_id: uuid.UUID, description: Optional[str],
    ) -> Role:
        return await self.repository.update(
            ctx, role_id, description=validate_description(description),
        )

    async def activate(self, ctx: TenantContext, role_id: uuid.UUID) -> Role:
        return await self.repository.update(ctx, role_id, is_active=True)

    async def deactivate(self, ctx: TenantContext, role_id: uuid.UUID) -> Role:
        role = await self.repository.require(ctx, role_id)
        if is_admin_role(role):
            raise ValidationError("The administrator role cannot be deactivated")
        role.is_active = False
        return await self.repository.save(ctx, role)

    async def delete(self, ctx: TenantContext, role_id: uuid.UUID) -> None:
        role = await self.repository.require(ctx, role_id)
        if is_admin_role(role):
            raise ValidationError("The administrator role cannot be deleted")
        if await self.has_users(ctx, role.id):
            raise ValidationError("Role still has users assigned")
        result = await self.db.execute(
            select(RolePermission).where(
                RolePermission.role_id == role.id,
                RolePermission.tenant_id == role.tenant_id,
            )
        )
        for link in result.scalars().all():
            await self.db.delete(link)
        await self.repository.remove(ctx, role.id)

    async def _check_unique(
        self, owner: TenantContext, role: Role, exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        extra = [Role.id != exclude_id] if exclude_id is not None else []
        if await self.repository.exists(
            owner, Role.normalized_name == role.normalized_name, *extra,
        ):
            raise ValidationError(
                f"Role '{role.name}' already exists in this tenant", field="name",
            )
