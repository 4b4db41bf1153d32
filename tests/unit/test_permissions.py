# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.
"""Unit tests for PermissionResolver RBAC decisions and assignments."""

import uuid

import pytest
from sqlalchemy import func, select

from atrium.core.errors import AccessDeniedError, NotFoundError
from atrium.identity.catalog import CREATE_USER, DELETE_USER, VIEW_USERS
from atrium.storage.models import Role, RolePermission, User


async def _setup(uow, ctx, username="bob"):
    user = await uow.users.create(ctx, User(username=username, email=f"{username}@x.test"))
    role = await uow.roles.create(ctx, Role(name="Editor"))
    view = await uow.permissions.get_by_name(VIEW_USERS)
    return user, role, view


class TestPermissionChecks:
    @pytest.mark.asyncio
    async def test_grant_through_role(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            user, role, view = await _setup(uow, ctx)
            rbac = uow.permission_resolver
            assert not await rbac.user_has_permission(ctx, user.id, VIEW_USERS)

            await rbac.assign_role_to_user(ctx, user.id, role.id)
            await rbac.assign_permission_to_role(ctx, role.id, view.id)

            assert await rbac.user_has_permission(ctx, user.id, VIEW_USERS)
            assert not await rbac.user_has_permission(ctx, user.id, DELETE_USER)
            assert await rbac.get_user_permission_names(ctx, user.id) == {VIEW_USERS}
            assert {p.name for p in await rbac.get_user_permissions(ctx, user.id)} == {VIEW_USERS}
            assert {p.name for p in await rbac.get_role_permissions(ctx, role.id)} == {VIEW_USERS}

    @pytest.mark.asyncio
    async def test_revoking_either_link_removes_access(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            user, role, view = await _setup(uow, ctx)
            rbac = uow.permission_resolver
            await rbac.assign_role_to_user(ctx, user.id, role.id)
            await rbac.assign_permission_to_role(ctx, role.id, view.id)

            assert await rbac.remove_permission_from_role(ctx, role.id, view.id)
            assert not await rbac.user_has_permission(ctx, user.id, VIEW_USERS)

            await rbac.assign_permission_to_role(ctx, role.id, view.id)
            assert await rbac.remove_role_from_user(ctx, user.id, role.id)
            assert not await rbac.user_has_permission(ctx, user.id, VIEW_USERS)

    @pytest.mark.asyncio
    async def test_inactive_role_or_user_grants_nothing(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            user, role, view = await _setup(uow, ctx)
            rbac = uow.permission_resolver
            await rbac.assign_role_to_user(ctx, user.id, role.id)
            await rbac.assign_permission_to_role(ctx, role.id, view.id)

            await uow.roles.deactivate(ctx, role.id)
            assert not await rbac.user_has_permission(ctx, user.id, VIEW_USERS)
            await uow.roles.activate(ctx, role.id)
            await uow.users.update(ctx, user.id, is_active=False)
            assert not await rbac.user_has_permission(ctx, user.id, VIEW_USERS)

    @pytest.mark.asyncio
    async def test_other_tenant_sees_nothing(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            user, role, view = await _setup(uow, ctx)
            rbac = uow.permission_resolver
            await rbac.assign_role_to_user(ctx, user.id, role.id)
            await rbac.assign_permission_to_role(ctx, role.id, view.id)

            assert not await rbac.user_has_permission(tenants.globex, user.id, VIEW_USERS)
            assert await rbac.get_user_permission_names(tenants.globex, user.id) == set()

    @pytest.mark.asyncio
    async def test_require_permission(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            user, _, _ = await _setup(uow, ctx)
            with pytest.raises(AccessDeniedError) as exc:
                await uow.permission_resolver.require_permission(ctx, user.id, CREATE_USER)
            assert exc.value.details["permission"] == CREATE_USER


class TestAssignments:
    @pytest.mark.asyncio
    async def test_idempotent_permission_assignment(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            _, role, view = await _setup(uow, ctx)
            rbac = uow.permission_resolver
            assert await rbac.assign_permission_to_role(ctx, role.id, view.id) is True
            assert await rbac.assign_permission_to_role(ctx, role.id, view.id) is False

            count = (await uow.session.execute(
                select(func.count()).select_from(RolePermission)
                .where(RolePermission.role_id == role.id)
            )).scalar()
            assert count == 1
            assert await rbac.remove_permission_from_role(ctx, role.id, view.id) is True
            assert await rbac.remove_permission_from_role(ctx, role.id, view.id) is False

    @pytest.mark.asyncio
    async def test_idempotent_role_assignment(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            user, role, _ = await _setup(uow, ctx)
            rbac = uow.permission_resolver
            assert await rbac.assign_role_to_user(ctx, user.id, role.id) is True
            assert await rbac.assign_role_to_user(ctx, user.id, role.id) is False
            assert await rbac.remove_role_from_user(ctx, user.id, role.id) is True
            assert await rbac.remove_role_from_user(ctx, user.id, role.id) is False

    @pytest.mark.asyncio
    async def test_cross_tenant_role_is_not_found(self, uow_factory, tenants):
        async with uow_factory(tenants.globex) as uow:
            foreign = await uow.roles.create(tenants.globex, Role(name="Spy"))
            await uow.commit()

        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            user, _, view = await _setup(uow, ctx)
            rbac = uow.permission_resolver
            with pytest.raises(NotFoundError):
                await rbac.assign_role_to_user(ctx, user.id, foreign.id)
            with pytest.raises(NotFoundError):
                await rbac.assign_permission_to_role(ctx, foreign.id, view.id)

    @pytest.mark.asyncio
    async def test_unknown_permission(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            _, role, _ = await _setup(uow, ctx)
            with pytest.raises(NotFoundError):
                await uow.permission_resolver.assign_permission_to_role(ctx, role.id, uuid.uuid4())
