# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.
"""Unit tests for ScopedRepository tenant isolation."""

import uuid

import pytest
from sqlalchemy import select

from atrium.core.errors import NotFoundError, TenantMismatchError, ValidationError
from atrium.core.tenant import TenantContext
from atrium.storage.models import Role, SectionDefinition
from atrium.storage.scoped import ScopedRepository, stamp_tenant


def _section(name, tenant_id=None):
    return SectionDefinition(name=name, normalized_name=name, tenant_id=tenant_id, is_active=True)


class TestStamping:
    acme = TenantContext.for_tenant(uuid.uuid4(), "acme")
    globex = TenantContext.for_tenant(uuid.uuid4(), "globex")

    def test_unset_takes_context_tenant(self):
        s = _section("Invoices")
        stamp_tenant(self.acme, s)
        assert s.tenant_id == self.acme.tenant_id

    def test_nil_uuid_counts_as_unset(self):
        s = _section("Invoices", tenant_id=uuid.UUID(int=0))
        stamp_tenant(self.acme, s)
        assert s.tenant_id == self.acme.tenant_id

    def test_other_tenant_rejected(self):
        s = _section("Invoices", tenant_id=self.globex.tenant_id)
        with pytest.raises(TenantMismatchError):
            stamp_tenant(self.acme, s)

    def test_malformed_tenant_id_is_never_restamped(self):
        s = _section("Invoices", tenant_id="globex")
        with pytest.raises(ValidationError) as exc:
            stamp_tenant(self.acme, s)
        assert exc.value.field == "tenant_id"
        assert s.tenant_id == "globex"

    def test_malformed_tenant_id_rejected_in_system_scope(self):
        with pytest.raises(ValidationError):
            stamp_tenant(TenantContext.system(), _section("Invoices", tenant_id="acme"))

    def test_string_form_of_own_tenant_is_accepted(self):
        s = _section("Invoices", tenant_id=str(self.acme.tenant_id))
        stamp_tenant(self.acme, s)
        assert s.tenant_id == self.acme.tenant_id

    def test_string_form_of_other_tenant_rejected(self):
        s = _section("Invoices", tenant_id=str(self.globex.tenant_id))
        with pytest.raises(TenantMismatchError):
            stamp_tenant(self.acme, s)

    def test_system_scope_requires_explicit_tenant(self):
        with pytest.raises(ValidationError):
            stamp_tenant(TenantContext.system(), _section("Invoices"))

    def test_system_scope_keeps_explicit_tenant(self):
        s = _section("Invoices", tenant_id=self.globex.tenant_id)
        stamp_tenant(TenantContext.system(), s)
        assert s.tenant_id == self.globex.tenant_id


class TestScopedRepository:
    @pytest.mark.asyncio
    async def test_reads_are_isolated(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            a = await repo.add(tenants.acme, _section("Invoices"))
            await repo.add(tenants.globex, _section("Orders"))
            await db.commit()

            assert [s.name for s in await repo.find_all(tenants.acme)] == ["Invoices"]
            assert await repo.get_by_id(tenants.globex, a.id) is None
            assert await repo.count(tenants.globex) == 1
            assert not await repo.exists(tenants.globex, SectionDefinition.id == a.id)

    @pytest.mark.asyncio
    async def test_system_scope_sees_everything(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            await repo.add(tenants.acme, _section("Invoices"))
            await repo.add(tenants.globex, _section("Orders"))
            await db.commit()

            assert await repo.count(TenantContext.system()) == 2

    @pytest.mark.asyncio
    async def test_mismatched_add_writes_nothing(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            with pytest.raises(TenantMismatchError):
                await repo.add(tenants.acme, _section("Invoices", tenants.globex.tenant_id))
            await db.commit()

        async with session_factory() as db:
            rows = (await db.execute(select(SectionDefinition))).scalars().all()
            assert rows == []

    @pytest.mark.asyncio
    async def test_update_and_remove_across_tenants_are_not_found(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            s = await repo.add(tenants.acme, _section("Invoices"))

            with pytest.raises(NotFoundError) as exc:
                await repo.update(tenants.globex, s.id, description="stolen")
            # Same error as a genuinely missing id.
            with pytest.raises(NotFoundError) as missing:
                await repo.update(tenants.globex, uuid.uuid4(), description="x")
            assert exc.value.code == missing.value.code

            with pytest.raises(NotFoundError):
                await repo.remove(tenants.globex, s.id)
            assert await repo.get_by_id(tenants.acme, s.id) is not None

    @pytest.mark.asyncio
    async def test_update_cannot_move_tenant(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            s = await repo.add(tenants.acme, _section("Invoices"))
            with pytest.raises(TenantMismatchError):
                await repo.update(tenants.acme, s.id, tenant_id=tenants.globex.tenant_id)

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            s = await repo.add(tenants.acme, _section("Invoices"))
            with pytest.raises(ValidationError):
                await repo.update(tenants.acme, s.id, colour="red")

    @pytest.mark.asyncio
    async def test_remove(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            s = await repo.add(tenants.acme, _section("Invoices"))
            await repo.remove(tenants.acme, s.id)
            assert await repo.get_by_id(tenants.acme, s.id) is None

    @pytest.mark.asyncio
    async def test_stream(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, Role)
            for name in ("A1", "A2"):
                await repo.add(tenants.acme, Role(name=name, normalized_name=name))
            await repo.add(tenants.globex, Role(name="G1", normalized_name="G1"))
            await db.commit()

            names = sorted([r.name async for r in repo.stream(tenants.acme)])
            assert names == ["A1", "A2"]

    @pytest.mark.asyncio
    async def test_unique_violation_becomes_validation_error(self, session_factory, tenants):
        async with session_factory() as db:
            repo = ScopedRepository(db, SectionDefinition)
            await repo.add(tenants.acme, _section("Invoices"))
            with pytest.raises(ValidationError):
                await repo.add(tenants.acme, _section("Invoices"))
