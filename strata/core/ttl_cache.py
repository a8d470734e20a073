"""TTL Cache — per-instance in-memory key/value store with lazy expiry.

Invariants:
    - An entry whose expiry <= now is absent: get() deletes it and returns None
    - No background sweep; eviction happens only on read or explicit invalidation
    - Instances never share state (one cache per repository/service instance)
    - None is never stored as a value (a miss and a stored None would be indistinguishable)

Design Decisions:
    - Clock injected (defaults to time.monotonic): tests advance time without sleeping
    - Hit/miss counters kept for stats(); cheap and useful when tuning TTLs
    - Unbounded; bounded stores plug in behind the same Cache Protocol
"""

import time
from dataclasses import dataclass
from typing import Any, Callable

DEFAULT_TTL_SECONDS = 300.0  # 5 minutes


@dataclass
class CacheEntry:
    key: str
    data: Any
    expiry: float


class TTLCache:
    """In-memory TTL store satisfying the Cache Protocol."""

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        """Return the live value for key, purging it first if expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expiry > self._clock():
            self._hits += 1
            return entry.data
        del self._entries[key]
        self._misses += 1
        return None

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        if value is None:
            return
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        self._entries[key] = CacheEntry(key, value, self._clock() + ttl)

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix. Returns count removed."""
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        rate = (self._hits / total * 100) if total else 0.0
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{rate:.1f}%",
        }
