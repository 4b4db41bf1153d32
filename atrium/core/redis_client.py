# Copyright (c) 2026 Atrium Contributors. All Rights Reserved.

"""
Redis Connection Factory — Async client backing the tenant directory cache.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry
from redis.exceptions import (
    ConnectionError,
    TimeoutError,
    BusyLoadingError,
)

from atrium.core.config import settings

_client: Optional[aioredis.Redis] = None

_RETRY = Retry(ExponentialBackoff(cap=1, base=0.05), retries=2)
_RETRY_ERRORS = [ConnectionError, TimeoutError, BusyLoadingError, OSError]


async def get_redis() -> aioredis.Redis:
    """
    Return the singleton async Redis client.

    Cache lookups sit on the request path, so timeouts are short and a
    failing Redis degrades to direct database lookups in the directory.
    """
    global _client
    if _client is None:
        _client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=20,
            health_check_interval=15,
            retry_on_error=_RETRY_ERRORS,
            retry=_RETRY,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


def inject_redis_for_test(redis_instance: aioredis.Redis) -> None:
    """Inject a fake Redis instance (for testing only)."""
    global _client
    _client = redis_instance
