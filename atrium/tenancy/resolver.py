# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Tenant Resolver — Derive a TenantContext from an inbound request.

Resolution order, stopping at the first candidate that maps to a known,
active tenant:

  1. the primary strategy (subdomain | path | header)
  2. tenant_id / tenant_identifier claims of the authenticated principal
  3. the configured default tenant id
  4. the system context

Every candidate goes through the TenantDirectory; an unknown, inactive
or unparseable candidate counts as unresolved and the chain continues.
resolve() never raises for a well-formed request.
"""

from __future__ import annotations

import ipaddress
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from atrium.core.errors import TenantResolutionError
from atrium.core.tenant import TenantContext, coerce_tenant_id
from atrium.tenancy.directory import TenantDirectory, TenantRecord

logger = logging.getLogger("atrium.tenant_resolver")

TENANT_ID_HEADER = "X-TenantId"
TENANT_IDENTIFIER_HEADER = "X-TenantIdentifier"
TENANT_ID_CLAIM = "tenant_id"
TENANT_IDENTIFIER_CLAIM = "tenant_identifier"
PATH_PREFIX = "tenant"


class ResolutionStrategy(str, Enum):
    SUBDOMAIN = "subdomain"
    PATH = "path"
    HEADER = "header"


@dataclass(frozen=True)
class RequestInfo:
    """The parts of an HTTP request tenant resolution looks at."""

    host: str = ""
    path: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    claims: Optional[Mapping[str, Any]] = None

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @classmethod
    def from_request(cls, request: Any) -> "RequestInfo":
        """Adapt a Starlette/FastAPI request. Claims come from request.state.claims."""
        claims = getattr(request.state, "claims", None)
        return cls(
            host=request.headers.get("host", "") or (request.url.hostname or ""),
            path=request.url.path,
            headers=dict(request.headers),
            claims=claims,
        )


# A candidate is (tenant_id, identifier); at most one side is set.
Candidate = Tuple[Optional[uuid.UUID], Optional[str]]


def _clean(value: Optional[Any]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def subdomain_candidate(host: str) -> Optional[str]:
    """First label of a host with at least three labels; never localhost or an IP."""
    host = (host or "").strip().lower()
    if not host:
        return None
    if host.startswith("["):
        return None  # IPv6 literal
    host = host.split(":", 1)[0].rstrip(".")
    if host == "localhost" or host.endswith(".localhost"):
        return None
    try:
        ipaddress.ip_address(host)
        return None
    except ValueError:
        pass
    labels = host.split(".")
    if len(labels) < 3 or not labels[0]:
        return None
    return labels[0]


def path_candidate(path: str) -> Optional[str]:
    """The segment after /tenant/ in /tenant/{id-or-identifier}/..."""
    segments = [s for s in (path or "").split("/") if s]
    if len(segments) >= 2 and segments[0].lower() == PATH_PREFIX:
        return segments[1]
    return None


def _split(value: Optional[str]) -> Candidate:
    """Treat a UUID-shaped value as an id, anything else as an identifier."""
    if value is None:
        return None, None
    parsed = coerce_tenant_id(value)
    if parsed is not None:
        return parsed, None
    return None, value.lower()


class TenantResolver:
    def __init__(
        self,
        directory: TenantDirectory,
        strategy: ResolutionStrategy = ResolutionStrategy.SUBDOMAIN,
        default_tenant_id: Optional[Any] = None,
    ) -> None:
        self.directory = directory
        self.strategy = ResolutionStrategy(strategy)
        self.default_tenant_id = coerce_tenant_id(_clean(default_tenant_id))
        if _clean(default_tenant_id) and self.default_tenant_id is None:
            logger.warning("[resolver] ignoring unparseable default tenant id %r", default_tenant_id)

    # ── Candidates ──────────────────────────────────────────────

    def primary_candidates(self, request: RequestInfo) -> list:
        if self.strategy is ResolutionStrategy.SUBDOMAIN:
            return [_split(subdomain_candidate(request.host))]
        if self.strategy is ResolutionStrategy.PATH:
            return [_split(_clean(path_candidate(request.path)))]

        candidates = []
        raw_id = _clean(request.header(TENANT_ID_HEADER))
        if raw_id is not None:
            parsed = coerce_tenant_id(raw_id)
            if parsed is None:
                logger.info("[resolver] ignoring unparseable %s header", TENANT_ID_HEADER)
            candidates.append((parsed, None))
        identifier = _clean(request.header(TENANT_IDENTIFIER_HEADER))
        candidates.append((None, identifier.lower() if identifier else None))
        return candidates

    def claim_candidates(self, request: RequestInfo) -> list:
        claims = request.claims or {}
        candidates = []
        raw_id = _clean(claims.get(TENANT_ID_CLAIM))
        if raw_id is not None:
            candidates.append((coerce_tenant_id(raw_id), None))
        identifier = _clean(claims.get(TENANT_IDENTIFIER_CLAIM))
        candidates.append((None, identifier.lower() if identifier else None))
        return candidates

    # ── Resolution ──────────────────────────────────────────────

    async def _lookup(self, candidate: Candidate) -> Optional[TenantRecord]:
        tenant_id, identifier = candidate
        if tenant_id is not None:
            record = await self.directory.by_id(tenant_id)
        elif identifier:
            record = await self.directory.by_identifier(identifier)
        else:
            return None
        if record is None:
            logger.info("[resolver] unknown tenant candidate %s", tenant_id or identifier)
            return None
        if not record.is_active:
            logger.info("[resolver] tenant %s is inactive", record.identifier)
            return None
        return record

    async def resolve(self, request: RequestInfo) -> TenantContext:
        stages = [
            (self.strategy.value, self.primary_candidates(request)),
            ("claims", self.claim_candidates(request)),
            ("default", [(self.default_tenant_id, None)]),
        ]
        for source, candidates in stages:
            for candidate in candidates:
                record = await self._lookup(candidate)
                if record is not None:
                    logger.debug(
                        "[resolver] resolved %s via %s", record.identifier, source,
                        extra={"tenant_id": record.tenant_id},
                    )
                    return TenantContext(tenant_id=record.tenant_id, identifier=record.identifier)

        logger.info("[resolver] no tenant resolved for host=%s path=%s", request.host, request.path)
        return TenantContext.system()

    async def resolve_required(self, request: RequestInfo) -> TenantContext:
        """Like resolve(), but a request that resolves to no tenant is an error."""
        ctx = await self.resolve(request)
        if ctx.is_system:
            raise TenantResolutionError("No tenant could be resolved for this request")
        return ctx
