# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Tenant Directory — identifier/id → tenant lookups for resolution.

Lookups hit the tenants table through a short-lived session of their
own. When a Redis client is supplied, records are cached under

    atrium:tenant:ident:{identifier}
    atrium:tenant:id:{tenant_id}

with a TTL, and the admin service invalidates them on every tenant
mutation. Callers receive an immutable TenantRecord snapshot.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from atrium.storage.models import Tenant
from atrium.storage.repositories import TenantRepository

logger = logging.getLogger("atrium.tenant_directory")

DEFAULT_CACHE_TTL = 60


def identifier_key(identifier: str) -> str:
    return f"atrium:tenant:ident:{identifier}"


def id_key(tenant_id: uuid.UUID) -> str:
    return f"atrium:tenant:id:{tenant_id}"


@dataclass(frozen=True)
class TenantRecord:
    tenant_id: uuid.UUID
    identifier: str
    is_active: bool

    @classmethod
    def from_model(cls, tenant: Tenant) -> "TenantRecord":
        return cls(tenant_id=tenant.id, identifier=tenant.identifier, is_active=bool(tenant.is_active))

    def to_json(self) -> str:
        return json.dumps({
            "tenant_id": str(self.tenant_id),
            "identifier": self.identifier,
            "is_active": self.is_active,
        })

    @classmethod
    def from_json(cls, raw: str) -> "TenantRecord":
        data = json.loads(raw)
        return cls(
            tenant_id=uuid.UUID(data["tenant_id"]),
            identifier=data["identifier"],
            is_active=bool(data["is_active"]),
        )


class TenantDirectory:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Optional[aioredis.Redis] = None,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis
        self._cache_ttl = cache_ttl

    async def by_identifier(self, identifier: str) -> Optional[TenantRecord]:
        identifier = (identifier or "").strip().lower()
        if not identifier:
            return None
        cached = await self._cache_get(identifier_key(identifier))
        if cached is not None:
            return cached
        async with self._session_factory() as session:
            tenant = await TenantRepository(session).get_by_identifier(identifier)
            record = TenantRecord.from_model(tenant) if tenant else None
        if record is not None:
            await self._cache_put(record)
        return record

    async def by_id(self, tenant_id: uuid.UUID) -> Optional[TenantRecord]:
        cached = await self._cache_get(id_key(tenant_id))
        if cached is not None:
            return cached
        async with self._session_factory() as session:
            tenant = await TenantRepository(session).get(tenant_id)
            record = TenantRecord.from_model(tenant) if tenant else None
        if record is not None:
            await self._cache_put(record)
        return record

    async def invalidate(self, tenant_id: uuid.UUID, *identifiers: str) -> None:
        """Drop cached entries for a tenant (call after any tenant mutation)."""
        if self._redis is None:
            return
        keys = [id_key(tenant_id)] + [identifier_key(i) for i in identifiers if i]
        try:
            await self._redis.delete(*keys)
        except RedisError as e:
            logger.warning("[directory] cache invalidation failed for %s: %s", tenant_id, e)

    # ── Cache ───────────────────────────────────────────────────

    async def _cache_get(self, key: str) -> Optional[TenantRecord]:
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            logger.warning("[directory] cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return TenantRecord.from_json(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("[directory] dropping malformed cache entry %s", key)
            return None

    async def _cache_put(self, record: TenantRecord) -> None:
        if self._redis is None:
            return
        payload = record.to_json()
        try:
            await self._redis.set(identifier_key(record.identifier), payload, ex=self._cache_ttl)
            await self._redis.set(id_key(record.tenant_id), payload, ex=self._cache_ttl)
        except RedisError as e:
            logger.warning("[directory] cache write failed for %s: %s", record.identifier, e)
