"""
cache.py — Time-expiring, size-bounded cache shared by all service callers.

Keys carry their kind as a prefix ("grade_stats:1:2024", "student_history:S01"),
so one timestamp table covers every kind of cached value and the size sweep
evicts across all of them.

get, set, the sweep and invalidate never await; each completes within one
event-loop step. Only get_or_fetch suspends, while the producer runs.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float


def make_key(kind: str, *parts: Any) -> str:
    return ":".join([kind, *(str(p) for p in parts)])


def key_kind(key: str) -> str:
    return key.split(":", 1)[0]


class TTLCache:
    """
    Memoizing store with per-read TTL validation and oldest-first sweeping.

    Args:
        ttl: Default validity window in seconds.
        max_entries: Entry count above which the sweep runs.
        evict_fraction: Share of entries (oldest first) removed by a sweep.
        clock: Callable returning the current time in seconds.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        max_entries: int = 1000,
        evict_fraction: float = 0.2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self.evict_fraction = evict_fraction
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self._lookup(key, self.ttl) is not _MISSING

    def _lookup(self, key: str, ttl: float) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        if self._clock() - entry.inserted_at >= ttl:
            return _MISSING
        return entry.value

    def get(self, key: str, default: Any = None, ttl: Optional[float] = None) -> Any:
        """Return a live value, or default when absent or stale."""
        value = self._lookup(key, self.ttl if ttl is None else ttl)
        if value is _MISSING:
            self.misses += 1
            logger.debug("Cache miss: %s", key)
            return default
        self.hits += 1
        logger.debug("Cache hit: %s", key)
        return value

    def set(self, key: str, value: Any) -> None:
        """Insert or overwrite an entry with a fresh timestamp."""
        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())
        self._sweep()

    async def get_or_fetch(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        cacheable: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Return the cached value for key, or await producer() and cache it.

        cacheable, when given, decides whether a produced value is stored;
        values it rejects are still returned to the caller.
        """
        value = self.get(key, default=_MISSING, ttl=ttl)
        if value is not _MISSING:
            return value
        value = await producer()
        if cacheable is None or cacheable(value):
            self.set(key, value)
        return value

    def _sweep(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        ordered = sorted(self._entries.values(), key=lambda e: e.inserted_at)
        count = max(1, int(len(ordered) * self.evict_fraction))
        for entry in ordered[:count]:
            del self._entries[entry.key]
        self.evictions += count
        logger.info("Cache sweep evicted %d of %d entries", count, len(ordered))

    def invalidate(self, scope: Optional[str] = None) -> int:
        """
        Drop entries and return how many were removed.

        scope=None clears everything; otherwise the exact key and every key
        below it ("grade_stats:1" also drops "grade_stats:1:2024").
        """
        if scope is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            prefix = scope + ":"
            doomed = [k for k in self._entries if k == scope or k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            removed = len(doomed)
        logger.info("Cache invalidated (scope=%s, removed=%d)", scope or "all", removed)
        return removed

    def stats(self) -> Dict[str, Any]:
        """Entry counts per kind, hit/miss counters and the oldest entry's age."""
        now = self._clock()
        by_kind: Dict[str, int] = {}
        oldest_age = 0.0
        for entry in self._entries.values():
            kind = key_kind(entry.key)
            by_kind[kind] = by_kind.get(kind, 0) + 1
            oldest_age = max(oldest_age, now - entry.inserted_at)
        lookups = self.hits + self.misses
        return {
            "total_entries": len(self._entries),
            "entries_by_kind": by_kind,
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl,
            "oldest_entry_age_seconds": int(oldest_age),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
        }
