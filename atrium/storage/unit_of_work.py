# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Unit of Work — One session, one transaction, one TenantContext.

All repositories and stores handed out by a UnitOfWork share its
AsyncSession and its context, so their writes commit or roll back
together. Every flush is checked against the context: a tenant-scoped
row stamped for another tenant aborts the flush, and save_changes()
then rolls the whole unit back.

Usage:
    async with uow_factory(ctx) as uow:
        role = await uow.roles.create(ctx, Role(name="Editor"))
        await uow.permission_resolver.assign_permission_to_role(ctx, role.id, perm.id)
        await uow.commit()

Leaving the block without commit(), on an exception, or on cancellation
rolls back.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction, async_sessionmaker

from atrium.core.errors import AccessDeniedError, TenantMismatchError, ValidationError
from atrium.core.tenant import TenantContext
from atrium.identity.permissions import PermissionResolver
from atrium.identity.store import RoleStore, UserStore
from atrium.storage.models import TenantScoped
from atrium.storage.repositories import PermissionRepository, SectionRepository, TenantRepository

logger = logging.getLogger("atrium.uow")


class UnitOfWork:
    def __init__(self, session: AsyncSession, ctx: TenantContext):
        self.session = session
        self.ctx = ctx
        self._transaction: Optional[AsyncSessionTransaction] = None
        self._pending_rows = 0
        self._closed = False

        self._users: Optional[UserStore] = None
        self._roles: Optional[RoleStore] = None
        self._sections: Optional[SectionRepository] = None
        self._tenants: Optional[TenantRepository] = None
        self._permissions: Optional[PermissionRepository] = None
        self._permission_resolver: Optional[PermissionResolver] = None

        event.listen(self.session.sync_session, "before_flush", self._before_flush)

    # ── Repositories (lazy, shared session + context) ───────────

    @property
    def users(self) -> UserStore:
        if self._users is None:
            self._users = UserStore(self.session)
        return self._users

    @property
    def roles(self) -> RoleStore:
        if self._roles is None:
            self._roles = RoleStore(self.session)
        return self._roles

    @property
    def sections(self) -> SectionRepository:
        if self._sections is None:
            self._sections = SectionRepository(self.session)
        return self._sections

    @property
    def tenants(self) -> TenantRepository:
        if self._tenants is None:
            self._tenants = TenantRepository(self.session)
        return self._tenants

    @property
    def permissions(self) -> PermissionRepository:
        if self._permissions is None:
            self._permissions = PermissionRepository(self.session)
        return self._permissions

    @property
    def permission_resolver(self) -> PermissionResolver:
        if self._permission_resolver is None:
            self._permission_resolver = PermissionResolver(self.session)
        return self._permission_resolver

    # ── Flush guard ─────────────────────────────────────────────

    def _before_flush(self, session, flush_context, instances) -> None:
        for obj in list(session.new) + list(session.dirty):
            if isinstance(obj, TenantScoped) and not self.ctx.is_system:
                if obj.tenant_id != self.ctx.tenant_id:
                    raise TenantMismatchError(
                        f"{type(obj).__name__} is stamped for another tenant",
                        entity_tenant=obj.tenant_id,
                        context_tenant=self.ctx.tenant_id,
                    )
        dirty = sum(1 for obj in session.dirty if session.is_modified(obj))
        self._pending_rows += len(session.new) + dirty + len(session.deleted)

    # ── Transaction control ─────────────────────────────────────

    async def begin_transaction(self) -> AsyncSessionTransaction:
        if self._transaction is not None and self._transaction.is_active:
            return self._transaction
        current = self.session.get_transaction()
        if current is not None:
            self._transaction = current
        else:
            self._transaction = await self.session.begin()
        return self._transaction

    async def save_changes(self) -> int:
        """Flush pending writes. Returns rows written since the last call."""
        try:
            await self.session.flush()
        except TenantMismatchError:
            logger.error(
                "[uow] tenant mismatch during save, rolling back",
                extra={"tenant_id": self.ctx.tenant_id},
            )
            await self.rollback()
            raise
        except IntegrityError as e:
            await self.rollback()
            raise ValidationError("Pending changes violate an integrity constraint") from e
        written, self._pending_rows = self._pending_rows, 0
        return written

    async def commit(self) -> int:
        written = await self.save_changes()
        await self.session.commit()
        self._transaction = None
        return written

    async def rollback(self) -> None:
        await self.session.rollback()
        self._transaction = None
        self._pending_rows = 0

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        event.remove(self.session.sync_session, "before_flush", self._before_flush)
        await self.session.close()

    async def __aenter__(self) -> "UnitOfWork":
        await self.begin_transaction()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            if self.session.in_transaction():
                if exc_type is not None:
                    logger.warning(
                        "[uow] rolling back after %s", exc_type.__name__,
                        extra={"tenant_id": self.ctx.tenant_id},
                    )
                await self.rollback()
        finally:
            await self.close()


class UnitOfWorkFactory:
    """
    Opens units of work keyed by TenantContext.

    A system context is refused unless it is requested through system(),
    which logs the elevation, or the deployment allows falling back to
    system scope when no tenant was resolved.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        allow_system_fallback: bool = False,
    ):
        self.session_factory = session_factory
        self.allow_system_fallback = allow_system_fallback

    def __call__(self, ctx: TenantContext) -> UnitOfWork:
        if ctx.is_system:
            if not self.allow_system_fallback:
                raise AccessDeniedError("No tenant resolved; system scope must be requested explicitly")
            logger.warning("[uow] no tenant resolved, falling back to system scope", extra={"scope": "system"})
        return UnitOfWork(self.session_factory(), ctx)

    def system(self, reason: str) -> UnitOfWork:
        """Open an unscoped unit of work for cross-tenant administration."""
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to enter system scope", field="reason")
        logger.warning("[uow] entering system scope: %s", reason, extra={"scope": "system"})
        return UnitOfWork(self.session_factory(), TenantContext.system())
