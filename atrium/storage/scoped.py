# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Scoped Repository — Generic tenant-filtered CRUD.

Every operation takes the TenantContext explicitly. Reads are filtered
by ``tenant_id = ctx.tenant_id``; a system context skips the filter on
a separate, logged code path. Writes stamp or validate tenant ownership
before anything reaches the database.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Generic, List, Optional, Type, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from atrium.core.errors import NotFoundError, TenantMismatchError, ValidationError
from atrium.core.tenant import TenantContext, coerce_tenant_id
from atrium.storage.models import TenantScoped

logger = logging.getLogger("atrium.scope")

T = TypeVar("T", bound=TenantScoped)

_NIL_UUID = uuid.UUID(int=0)


def stamp_tenant(ctx: TenantContext, entity: TenantScoped) -> None:
    """
    Stamp or validate entity.tenant_id against ctx.

    Unset (None or the nil UUID) takes ctx.tenant_id. A value that is not
    a tenant id raises ValidationError, a different tenant raises
    TenantMismatchError. In system scope the entity must already name
    its tenant.
    """
    raw = entity.tenant_id
    current = coerce_tenant_id(raw)
    if current is None and raw is not None:
        raise ValidationError(
            f"{type(entity).__name__} has a malformed tenant_id: {raw!r}", field="tenant_id",
        )
    if current == _NIL_UUID:
        current = None

    if ctx.is_system:
        if current is None:
            raise ValidationError(
                "tenant_id must be set explicitly in system scope", field="tenant_id",
            )
        entity.tenant_id = current
        logger.info(
            "[scope] system-scope write of %s for tenant %s",
            type(entity).__name__, current,
            extra={"scope": "system", "tenant_id": current},
        )
        return

    if current is None:
        entity.tenant_id = ctx.tenant_id
    elif current != ctx.tenant_id:
        raise TenantMismatchError(
            f"{type(entity).__name__} is stamped for another tenant",
            entity_tenant=current,
            context_tenant=ctx.tenant_id,
        )
    else:
        entity.tenant_id = current


def apply_scope(ctx: TenantContext, stmt: Select, *tenant_columns: Any, label: str = "") -> Select:
    """
    Restrict stmt to ctx's tenant on every given tenant_id column.

    Used for joins where more than one tenant-scoped table participates.
    """
    if ctx.is_system:
        logger.info(
            "[scope] unscoped read of %s in system scope", label or "join",
            extra={"scope": "system"},
        )
        return stmt
    return stmt.where(*(column == ctx.tenant_id for column in tenant_columns))


class ScopedRepository(Generic[T]):
    """
    Tenant-filtered repository over one ORM model.

    The model must mix in TenantScoped and, for the id-based methods,
    expose an ``id`` primary key.
    """

    def __init__(self, db: AsyncSession, model: Type[T]):
        self.db = db
        self.model = model

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    # ── Filtering ───────────────────────────────────────────────

    def scope(self, ctx: TenantContext, stmt: Select) -> Select:
        """Apply the tenant filter for ctx to an existing statement."""
        return apply_scope(ctx, stmt, self.model.tenant_id, label=self.entity_name)

    def select(self, ctx: TenantContext, *criteria: Any) -> Select:
        stmt = select(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        return self.scope(ctx, stmt)

    # ── Reads ───────────────────────────────────────────────────

    async def get_by_id(self, ctx: TenantContext, entity_id: Any) -> Optional[T]:
        """Return the entity, or None if absent or owned by another tenant."""
        result = await self.db.execute(self.select(ctx, self.model.id == entity_id))
        return result.scalar_one_or_none()

    async def require(self, ctx: TenantContext, entity_id: Any) -> T:
        entity = await self.get_by_id(ctx, entity_id)
        if entity is None:
            raise NotFoundError(self.entity_name, entity_id)
        return entity

    async def find_all(
        self,
        ctx: TenantContext,
        *criteria: Any,
        order_by: Any = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        stmt = self.select(ctx, *criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def stream(self, ctx: TenantContext, *criteria: Any) -> AsyncIterator[T]:
        """Lazily iterate matching rows."""
        result = await self.db.stream_scalars(self.select(ctx, *criteria))
        async for entity in result:
            yield entity

    async def first(self, ctx: TenantContext, *criteria: Any) -> Optional[T]:
        result = await self.db.execute(self.select(ctx, *criteria).limit(1))
        return result.scalars().first()

    async def exists(self, ctx: TenantContext, *criteria: Any) -> bool:
        inner = select(self.model.tenant_id)
        if criteria:
            inner = inner.where(*criteria)
        inner = self.scope(ctx, inner)
        result = await self.db.execute(select(inner.exists()))
        return bool(result.scalar())

    async def count(self, ctx: TenantContext, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await self.db.execute(self.scope(ctx, stmt))
        return int(result.scalar() or 0)

    # ── Writes ──────────────────────────────────────────────────

    async def add(self, ctx: TenantContext, entity: T) -> T:
        """Stamp tenant ownership and insert. Mismatches never reach the DB."""
        stamp_tenant(ctx, entity)
        self.db.add(entity)
        await self._flush(entity)
        return entity

    async def save(self, ctx: TenantContext, entity: T) -> T:
        """Flush in-place modifications of an entity loaded through this scope."""
        stamp_tenant(ctx, entity)
        await self.require(ctx, entity.id)
        await self._flush(entity)
        return entity

    async def update(self, ctx: TenantContext, entity_id: Any, **changes: Any) -> T:
        entity = await self.require(ctx, entity_id)
        if "tenant_id" in changes:
            target = coerce_tenant_id(changes.pop("tenant_id"))
            if target != entity.tenant_id:
                raise TenantMismatchError(
                    f"{self.entity_name} cannot move between tenants",
                    entity_tenant=entity.tenant_id,
                    requested_tenant=target,
                )
        for field, value in changes.items():
            if not hasattr(self.model, field):
                raise ValidationError(f"Unknown field '{field}' on {self.entity_name}", field=field)
            setattr(entity, field, value)
        await self._flush(entity)
        return entity

    async def remove(self, ctx: TenantContext, entity_id: Any) -> None:
        entity = await self.require(ctx, entity_id)
        await self.db.delete(entity)
        await self.db.flush()

    async def _flush(self, entity: T) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ValidationError(
                f"{self.entity_name} violates a uniqueness or integrity constraint"
            ) from e
