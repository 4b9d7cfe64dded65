"""Bounded in-memory content cache with fixed time-to-live.

Entries age from insertion time only: ``get`` refreshes neither recency nor
age, so an entry expires on a predictable wall-clock schedule no matter how
often it is read. Capacity eviction therefore always removes the oldest
insertion, which is also the entry closest to expiry.

All operations are synchronous and never suspend, so the cache is safe to
share between concurrent request handlers on one event loop.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

import structlog

from rescontent.models.cache import CacheEntry, CacheStats

log = structlog.get_logger()


def make_cache_key(prefix: str, params: Mapping[str, object]) -> str:
    """Build ``prefix:k1=v1&k2=v2`` with keys sorted for stability."""
    joined = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return f"{prefix}:{joined}"


class ContentCache:
    """Process-local cache shared by every fetcher; implements CacheProtocol."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 3600,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.stored_at >= self._ttl

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` on miss or expiry."""
        entry = self._live_entry(key)
        if entry is None:
            self._misses += 1
            log.debug("cache_miss", key=key)
            return None
        self._hits += 1
        log.debug("cache_hit", key=key)
        return entry.value

    def set(self, key: str, value: Any, content_type: str = "unknown") -> None:
        # Re-inserting moves the key to the newest position and restarts its age.
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            value=value,
            content_type=content_type,
            cached_at=datetime.now(UTC),
            stored_at=self._clock(),
        )
        while len(self._entries) > self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("cache_evicted", key=evicted)
        log.debug("cache_set", key=key, content_type=content_type)

    def has(self, key: str) -> bool:
        """Membership check that does not count towards hit/miss statistics."""
        return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        deleted = self._entries.pop(key, None) is not None
        if deleted:
            log.debug("cache_deleted", key=key)
        return deleted

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        log.info("cache_cleared")

    def keys_by_prefix(self, prefix: str) -> list[str]:
        self.purge_expired()
        return [key for key in self._entries if key.startswith(prefix)]

    def delete_by_prefix(self, prefix: str) -> int:
        keys = self.keys_by_prefix(prefix)
        for key in keys:
            del self._entries[key]
        log.info("cache_deleted_by_prefix", prefix=prefix, count=len(keys))
        return len(keys)

    def remaining_ttl(self, key: str) -> float | None:
        """Seconds until ``key`` expires, or ``None`` if it is not cached."""
        entry = self._live_entry(key)
        if entry is None:
            return None
        return max(0.0, self._ttl - (self._clock() - entry.stored_at))

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        removed = 0
        # Insertion order == age order, so expired entries form a prefix.
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if not self._is_expired(entry, now):
                break
            del self._entries[key]
            removed += 1
        return removed

    def stats(self) -> CacheStats:
        self.purge_expired()
        total = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            max_size=self._max_size,
            hit_rate=self._hits / total if total else 0.0,
            hits=self._hits,
            misses=self._misses,
        )
