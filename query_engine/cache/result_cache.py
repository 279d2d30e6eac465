"""
Result Cache

In-memory, TTL-bounded cache of query outcomes keyed by a digest of the
query identity. Owned by the QueryExecutionService that constructs it (or
injected), so each service/test has its own.

Usage:
    cache = ResultCache()
    key = ResultCache.make_key(system_id=1, query="status = open", parameters={}, method="search")
    entry = cache.get(key)
    if entry is None:
        cache.set(key, {"data": rows}, ttl=300, system_id=1, query_id=7)
"""

import copy
import hashlib
import json
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from query_engine.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """A cached value with its freshness window and invalidation tags."""

    value: Any
    stored_at: float
    ttl: float
    system_id: str | None = None
    query_id: int | None = None

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl


class ResultCache:
    """TTL cache of query results with per-system and per-query invalidation."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic seconds source; injectable for tests
        """
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(
        system_id: int | str,
        query: str,
        parameters: dict[str, Any] | None = None,
        method: str | None = None,
        transformations: Sequence[str] | None = None,
    ) -> str:
        """SHA-256 over the canonical JSON of the query identity."""
        identity = {
            "system_id": str(system_id),
            "query": query,
            "parameters": parameters or {},
            "method": method,
            "transformations": list(transformations or []),
        }
        canonical = json.dumps(identity, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def get(self, key: str, max_age: float | None = None) -> CacheEntry | None:
        """
        Fresh entry for key, or None. Expired entries are evicted.

        Args:
            key: Digest from make_key()
            max_age: Reader's freshness window in seconds. When given it
                replaces the TTL the entry was written with, so a query with a
                short refresh interval never reuses an older entry written by
                a caller with a longer one. Non-positive means no cache hit.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self.clock()
        if not entry.is_fresh(now):
            del self._entries[key]
            logger.debug("Evicted expired cache entry", extra={"cache_key": key[:12]})
            return None

        if max_age is not None and entry.age(now) >= max_age:
            logger.debug(
                "Cache entry older than reader's refresh interval",
                extra={"cache_key": key[:12], "age_seconds": round(entry.age(now), 2), "max_age": max_age},
            )
            return None

        return CacheEntry(
            value=copy.deepcopy(entry.value),
            stored_at=entry.stored_at,
            ttl=entry.ttl,
            system_id=entry.system_id,
            query_id=entry.query_id,
        )

    def set(
        self,
        key: str,
        value: Any,
        ttl: float,
        system_id: int | str | None = None,
        query_id: int | None = None,
    ) -> None:
        """Store (or overwrite) an entry. A non-positive TTL stores nothing."""
        if ttl <= 0:
            self._entries.pop(key, None)
            return

        self._entries[key] = CacheEntry(
            value=copy.deepcopy(value),
            stored_at=self.clock(),
            ttl=float(ttl),
            system_id=None if system_id is None else str(system_id),
            query_id=query_id,
        )

    def _evict(self, predicate: Callable[[CacheEntry], bool]) -> int:
        keys = [key for key, entry in self._entries.items() if predicate(entry)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def invalidate_query(self, query_id: int) -> int:
        """Drop every entry produced by a saved query. Returns the number evicted."""
        evicted = self._evict(lambda entry: entry.query_id == query_id)
        logger.info("Invalidated cached results for query", extra={"query_id": query_id, "evicted": evicted})
        return evicted

    def invalidate_system(self, system_id: int | str) -> int:
        """Drop every entry for a system. Returns the number evicted."""
        evicted = self._evict(lambda entry: entry.system_id == str(system_id))
        logger.info("Invalidated cached results for system", extra={"system_id": system_id, "evicted": evicted})
        return evicted

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.info("Cleared result cache", extra={"evicted": count})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_fresh(self.clock())
