"""
Read-through cache for ledger projections.

Every backend call runs in its own error boundary: a failing cache is
logged and counted, then treated as a miss (reads) or ignored (writes and
invalidations). The relational store stays the source of truth.
"""
import json
from typing import Any, Awaitable, Callable, Iterable, Optional

import structlog

from crm_ledger.cache.backend import CacheBackend, NullCacheBackend
from crm_ledger.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

CLIENT_PAYMENTS_FAMILY = "client-product-payments"
PRODUCT_PAYMENT_FAMILY = "product-payment"
PENDING_APPROVALS_KEY = "all-finance:pending"

# Key families owned by other services that embed ledger data
MUTATION_PREFIXES = ("dashboard:", "leaderboard:", "all-finance:")


def cache_key(family: str, scope: Any = None, **filters: Any) -> str:
    """
    Build a deterministic cache key.

    ``cache_key("client-product-payments", 12)`` gives
    ``client-product-payments:12``; filters are appended sorted by name and
    ``None`` filters are skipped.
    """
    parts = [family]
    if scope is not None:
        parts.append(str(scope))
    for name in sorted(filters):
        value = filters[name]
        if value is not None:
            parts.append(f"{name}={value}")
    return ":".join(parts)


def client_payments_key(client_id: int) -> str:
    return cache_key(CLIENT_PAYMENTS_FAMILY, client_id)


def product_payment_key(product_payment_id: int) -> str:
    return cache_key(PRODUCT_PAYMENT_FAMILY, product_payment_id)


def _family(key: str) -> str:
    return key.split(":", 1)[0]


class LedgerCache:
    """JSON read-through cache over a ``CacheBackend``."""

    def __init__(self, backend: Optional[CacheBackend] = None):
        self.backend = backend or NullCacheBackend()

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or ``None`` on a miss or backend error."""
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            metrics.record_cache_error("get")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("cache_value_corrupt", key=key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.backend.set(key, json.dumps(value).encode("utf-8"), ttl_seconds)
        except Exception as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            metrics.record_cache_error("set")

    async def read_through(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl_seconds: int,
    ) -> Any:
        """
        Return the cached value for ``key`` or load, store and return it.

        Loader errors propagate; cache errors never do.
        """
        cached = await self.get(key)
        if cached is not None:
            metrics.record_cache_lookup(_family(key), hit=True)
            logger.debug("cache_hit", key=key)
            return cached

        metrics.record_cache_lookup(_family(key), hit=False)
        value = await loader()
        await self.set(key, value, ttl_seconds)
        return value

    async def write_through(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a freshly computed value after a committed write."""
        await self.set(key, value, ttl_seconds)

    async def invalidate(
        self,
        keys: Iterable[str] = (),
        prefixes: Iterable[str] = (),
    ) -> None:
        """Delete exact keys, then every key under each prefix."""
        keys = [key for key in keys if key]
        if keys:
            try:
                await self.backend.delete(*keys)
                for key in keys:
                    metrics.record_cache_invalidation(_family(key))
            except Exception as e:
                logger.warning("cache_delete_failed", keys=keys, error=str(e))
                metrics.record_cache_error("delete")

        for prefix in prefixes:
            try:
                deleted = await self.backend.delete_by_prefix(prefix)
                metrics.record_cache_invalidation(prefix.rstrip(":"))
                logger.debug("cache_prefix_invalidated", prefix=prefix, deleted=deleted)
            except Exception as e:
                logger.warning("cache_prefix_delete_failed", prefix=prefix, error=str(e))
                metrics.record_cache_error("delete_by_prefix")
