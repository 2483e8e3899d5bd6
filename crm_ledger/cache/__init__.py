"""Read cache for ledger projections."""
from .backend import (
    CacheBackend,
    InMemoryCacheBackend,
    NullCacheBackend,
    RedisCacheBackend,
    build_cache_backend,
)
from .coherency import (
    MUTATION_PREFIXES,
    PENDING_APPROVALS_KEY,
    LedgerCache,
    cache_key,
    client_payments_key,
    product_payment_key,
)

__all__ = [
    "CacheBackend",
    "InMemoryCacheBackend",
    "NullCacheBackend",
    "RedisCacheBackend",
    "build_cache_backend",
    "LedgerCache",
    "MUTATION_PREFIXES",
    "PENDING_APPROVALS_KEY",
    "cache_key",
    "client_payments_key",
    "product_payment_key",
]
