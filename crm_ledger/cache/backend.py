"""
Key/value cache backends.

Backends raise on failure; ``LedgerCache`` is the layer that swallows and
logs. Values are opaque bytes.
"""
import time
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

import redis.asyncio as aioredis
import structlog

from crm_ledger.config import Settings

logger = structlog.get_logger(__name__)

SCAN_BATCH_SIZE = 200


@runtime_checkable
class CacheBackend(Protocol):
    """Minimal key/value store used by the read-through cache."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def delete_by_prefix(self, prefix: str) -> int:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class RedisCacheBackend:
    """Cache backend on Redis. Prefix deletes walk the keyspace with SCAN, never KEYS."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCacheBackend":
        client = aioredis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[bytes]:
        return await self.client.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self.client.set(key, value, ex=ttl_seconds)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.client.delete(*keys)

    async def delete_by_prefix(self, prefix: str) -> int:
        deleted = 0
        batch: list = []
        async for key in self.client.scan_iter(match=f"{prefix}*", count=SCAN_BATCH_SIZE):
            batch.append(key)
            if len(batch) >= SCAN_BATCH_SIZE:
                deleted += await self.client.delete(*batch)
                batch = []
        if batch:
            deleted += await self.client.delete(*batch)
        return deleted

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryCacheBackend:
    """
    Process-local backend with TTL support.

    Used in tests and single-process deployments without Redis.
    """

    def __init__(self) -> None:
        self._store: Dict[str, Tuple[bytes, float]] = {}

    def _alive(self, key: str) -> bool:
        entry = self._store.get(key)
        if entry is None:
            return False
        if entry[1] <= time.monotonic():
            del self._store[key]
            return False
        return True

    async def get(self, key: str) -> Optional[bytes]:
        if not self._alive(key):
            return None
        return self._store[key][0]

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._store[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def delete_by_prefix(self, prefix: str) -> int:
        keys = [key for key in self._store if key.startswith(prefix)]
        return await self.delete(*keys)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._store.clear()

    def keys(self) -> list[str]:
        return [key for key in list(self._store) if self._alive(key)]


class NullCacheBackend:
    """Backend that stores nothing; every read is a miss."""

    async def get(self, key: str) -> Optional[bytes]:
        return None

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        return None

    async def delete(self, *keys: str) -> int:
        return 0

    async def delete_by_prefix(self, prefix: str) -> int:
        return 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


def build_cache_backend(settings: Settings) -> CacheBackend:
    """Return a Redis backend when Redis is configured and caching is on, else the null backend."""
    if not settings.cache_enabled or not settings.redis_url:
        logger.info("cache_disabled", cache_enabled=settings.cache_enabled)
        return NullCacheBackend()
    logger.info("cache_backend_configured", backend="redis")
    return RedisCacheBackend.from_settings(settings)
