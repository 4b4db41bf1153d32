# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.
"""Unit tests for the tenant-aware user and role stores."""

import pytest

from atrium.core.errors import NotFoundError, ValidationError
from atrium.core.tenant import TenantContext
from atrium.identity.normalize import normalize_key
from atrium.storage.models import Role, User


def _user(username, email, **kw):
    return User(username=username, email=email, **kw)


class TestUserStore:
    @pytest.mark.asyncio
    async def test_same_email_in_two_tenants(self, uow_factory, tenants):
        async with uow_factory(tenants.acme) as uow:
            await uow.users.create(tenants.acme, _user("bob", "Bob@Example.com"))
            await uow.commit()
        async with uow_factory(tenants.globex) as uow:
            await uow.users.create(tenants.globex, _user("robert", "bob@example.com"))
            await uow.commit()

        key = normalize_key("bob@example.com")
        async with uow_factory(tenants.acme) as uow:
            found = await uow.users.find_by_normalized_email(tenants.acme, key)
            assert found.username == "bob"
            assert found.tenant_id == tenants.acme.tenant_id

        async with uow_factory(tenants.globex) as uow:
            found = await uow.users.find_by_normalized_email(tenants.globex, key)
            assert found.username == "robert"

        async with uow_factory.system(reason="test lookup") as uow:
            matches = await uow.users.find_all_by_normalized_email(uow.ctx, key)
            assert {u.username for u in matches} == {"bob", "robert"}

    @pytest.mark.asyncio
    async def test_username_unique_per_tenant(self, uow_factory, tenants):
        async with uow_factory(tenants.acme) as uow:
            await uow.users.create(tenants.acme, _user("bob", "bob@acme.test"))
            with pytest.raises(ValidationError) as exc:
                await uow.users.create(tenants.acme, _user("BOB", "other@acme.test"))
            assert exc.value.field == "username"

    @pytest.mark.asyncio
    async def test_email_unique_per_tenant(self, uow_factory, tenants):
        async with uow_factory(tenants.acme) as uow:
            await uow.users.create(tenants.acme, _user("bob", "bob@acme.test"))
            with pytest.raises(ValidationError) as exc:
                await uow.users.create(tenants.acme, _user("bobby", "BOB@acme.test"))
            assert exc.value.field == "email"

    @pytest.mark.asyncio
    async def test_normalized_fields_are_set(self, uow_factory, tenants):
        async with uow_factory(tenants.acme) as uow:
            user = await uow.users.create(tenants.acme, _user(" Alice ", "Alice@Acme.test"))
            assert user.username == "Alice"
            assert user.normalized_username == "ALICE"
            assert user.normalized_email == "ALICE@ACME.TEST"
            assert user.is_active is True

    @pytest.mark.asyncio
    async def test_system_scope_create_needs_tenant(self, uow_factory):
        async with uow_factory.system(reason="test") as uow:
            with pytest.raises(ValidationError):
                await uow.users.create(uow.ctx, _user("bob", "bob@x.test"))

    @pytest.mark.asyncio
    async def test_system_scope_create_with_tenant(self, uow_factory, tenants):
        async with uow_factory.system(reason="test") as uow:
            user = await uow.users.create(
                uow.ctx, _user("bob", "bob@x.test", tenant_id=tenants.globex.tenant_id),
            )
            await uow.commit()
        async with uow_factory(tenants.globex) as uow:
            assert await uow.users.find_by_id(tenants.globex, user.id) is not None
        async with uow_factory(tenants.acme) as uow:
            assert await uow.users.find_by_id(tenants.acme, user.id) is None

    @pytest.mark.asyncio
    async def test_update_and_delete(self, uow_factory, tenants):
        async with uow_factory(tenants.acme) as uow:
            user = await uow.users.create(tenants.acme, _user("bob", "bob@acme.test"))
            await uow.users.update(tenants.acme, user.id, email="robert@acme.test", is_active=False)
            assert user.normalized_email == "ROBERT@ACME.TEST"
            assert user.is_active is False

            with pytest.raises(NotFoundError):
                await uow.users.update(tenants.globex, user.id, full_name="X")

            await uow.users.delete(tenants.acme, user.id)
            assert await uow.users.find_by_id(tenants.acme, user.id) is None

    @pytest.mark.asyncio
    async def test_users_in_role(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            bob = await uow.users.create(ctx, _user("bob", "bob@acme.test"))
            await uow.users.create(ctx, _user("eve", "eve@acme.test"))
            role = await uow.roles.create(ctx, Role(name="Editor"))
            await uow.permission_resolver.assign_role_to_user(ctx, bob.id, role.id)

            users = await uow.users.get_users_in_role(ctx, "EDITOR")
            assert [u.username for u in users] == ["bob"]
            assert await uow.users.get_users_in_role(tenants.globex, "EDITOR") == []


class TestRoleStore:
    @pytest.mark.asyncio
    async def test_role_names_unique_per_tenant_only(self, uow_factory, tenants):
        async with uow_factory(tenants.acme) as uow:
            await uow.roles.create(tenants.acme, Role(name="Editor"))
            with pytest.raises(ValidationError):
                await uow.roles.create(tenants.acme, Role(name="editor"))
            await uow.commit()
        async with uow_factory(tenants.globex) as uow:
            role = await uow.roles.create(tenants.globex, Role(name="Editor"))
            assert role.tenant_id == tenants.globex.tenant_id

    @pytest.mark.asyncio
    async def test_admin_role_guards(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            admin = await uow.roles.create(ctx, Role(name="Administrator"))
            with pytest.raises(ValidationError):
                await uow.roles.rename(ctx, admin.id, "Boss")
            with pytest.raises(ValidationError):
                await uow.roles.deactivate(ctx, admin.id)
            with pytest.raises(ValidationError):
                await uow.roles.delete(ctx, admin.id)

    @pytest.mark.asyncio
    async def test_delete_refused_while_assigned(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            bob = await uow.users.create(ctx, _user("bob", "bob@acme.test"))
            role = await uow.roles.create(ctx, Role(name="Editor"))
            await uow.permission_resolver.assign_role_to_user(ctx, bob.id, role.id)
            with pytest.raises(ValidationError):
                await uow.roles.delete(ctx, role.id)

            await uow.permission_resolver.remove_role_from_user(ctx, bob.id, role.id)
            await uow.roles.delete(ctx, role.id)
            assert await uow.roles.find_by_id(ctx, role.id) is None

    @pytest.mark.asyncio
    async def test_rename_and_lookup(self, uow_factory, tenants):
        ctx = tenants.acme
        async with uow_factory(ctx) as uow:
            role = await uow.roles.create(ctx, Role(name="Editor", description="edits"))
            await uow.roles.rename(ctx, role.id, "Writer")
            assert await uow.roles.find_by_normalized_name(ctx, "WRITER") is role
            assert await uow.roles.find_by_normalized_name(ctx, "EDITOR") is None
            assert await uow.roles.find_by_normalized_name(tenants.globex, "WRITER") is None

    @pytest.mark.asyncio
    async def test_system_scope_lists_every_tenant(self, uow_factory, tenants):
        for ctx in (tenants.acme, tenants.globex):
            async with uow_factory(ctx) as uow:
                await uow.roles.create(ctx, Role(name="Editor"))
                await uow.commit()
        async with uow_factory.system(reason="report") as uow:
            roles = await uow.roles.list_roles(TenantContext.system())
            assert len(roles) == 2
