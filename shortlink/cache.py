"""Redis client management and the ``FastCache`` adapter.

This module provides a lazily created Redis client with connection management
and the thin adapter the resolver uses for cache-aside lookups.

How to Use
===========
**Step 1 — Wrap the shared client**::
    cache = RedisCache(await get_redis())

**Step 2 — Read and write**::
    destination = await cache.get("url:abc123")
    await cache.set("url:abc123", "https://example.com", ttl_seconds=3600)

**Step 3 — Cleanup on shutdown**::
    await close_redis()

Key Behaviours
===============
- Redis client is created lazily on first access and reused.
- UTF-8 encoding with decode_responses for string operations.
- ``RedisCache`` lets Redis errors propagate; the resolver absorbs them.

Functions:
    get_redis():  Shared Redis client.
    close_redis():  Cleanup function for shutdown.
"""

import redis.asyncio as redis
from prometheus_client import Counter

from shortlink.config import get_settings

__all__ = ["RedisCache", "close_redis", "get_redis"]

settings = get_settings()

REDIS_OPERATIONS_TOTAL = Counter(
    "shortlink_redis_operations_total",
    "Total Redis operations",
    ["operation"],
)

redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None


class RedisCache:
    def __init__(self, client: redis.Redis):
        self._client = client

    async def get(self, key: str) -> str | None:
        REDIS_OPERATIONS_TOTAL.labels(operation="get").inc()
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        REDIS_OPERATIONS_TOTAL.labels(operation="set").inc()
        await self._client.set(key, value, ex=ttl_seconds)

    async def ping(self) -> bool:
        return bool(await self._client.ping())
