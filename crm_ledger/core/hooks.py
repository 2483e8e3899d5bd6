"""
Post-commit side effects of ledger mutations.

Run after the database transaction has committed: cache invalidation
first, then an optional write-through refresh, then real-time fan-out.
Each step is its own error boundary; nothing here can fail the mutation
that triggered it, and nothing is retried.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence, Tuple

import structlog

from crm_ledger.cache.coherency import MUTATION_PREFIXES, LedgerCache
from crm_ledger.realtime.fanout import EventFanout, Publication

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheRefresh:
    key: str
    value: Any
    ttl_seconds: int


@dataclass
class PostCommitWork:
    """Side effects collected while a mutation runs."""

    invalidate_keys: Tuple[str, ...] = ()
    invalidate_prefixes: Tuple[str, ...] = MUTATION_PREFIXES
    refresh: Optional[CacheRefresh] = None
    publications: Sequence[Publication] = field(default_factory=tuple)


class PostCommitHooks:
    """Runs ``PostCommitWork`` against the cache and the fan-out."""

    def __init__(self, cache: Optional[LedgerCache] = None, fanout: Optional[EventFanout] = None):
        self.cache = cache or LedgerCache()
        self.fanout = fanout or EventFanout()

    async def run(self, work: PostCommitWork) -> None:
        await self._invalidate(work.invalidate_keys, work.invalidate_prefixes)
        if work.refresh is not None:
            await self._refresh(work.refresh)
        for publication in work.publications:
            await self._publish(publication)

    async def _invalidate(self, keys: Iterable[str], prefixes: Iterable[str]) -> None:
        try:
            await self.cache.invalidate(keys=keys, prefixes=prefixes)
        except Exception as e:
            logger.error("post_commit_invalidation_failed", error=str(e))

    async def _refresh(self, refresh: CacheRefresh) -> None:
        try:
            await self.cache.write_through(refresh.key, refresh.value, refresh.ttl_seconds)
        except Exception as e:
            logger.error("post_commit_refresh_failed", key=refresh.key, error=str(e))

    async def _publish(self, publication: Publication) -> None:
        try:
            await self.fanout.publish(publication)
        except Exception as e:
            logger.error(
                "post_commit_publish_failed",
                event_name=publication.event,
                error=str(e),
            )
