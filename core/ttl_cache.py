"""
core/ttl_cache.py

Instance-owned, in-process cache with lazy expiry.

Policy:
  - An entry older than `ttl_seconds` is treated as absent and deleted
    on the read that discovers it.
  - A full sweep of expired entries runs only when the cache grows past
    `sweep_threshold` entries, never on every write.
  - No cross-request locking: two concurrent misses for the same key
    may both fetch.

Each orchestrator owns its own caches, so instances never share state.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterator, Optional, Tuple, TypeVar

from loguru import logger

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value:     V
    cached_at: float


@dataclass
class CacheStats:
    hits:      int = 0
    misses:    int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups served from the cache, 0..1."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


class TTLCache(Generic[V]):
    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        sweep_threshold: int,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.sweep_threshold = sweep_threshold
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._is_expired(entry)

    def _is_expired(self, entry: CacheEntry[V]) -> bool:
        return self._clock() - entry.cached_at >= self.ttl_seconds

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> Optional[V]:
        """Return the live value for key, or None. Expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None
        if self._is_expired(entry):
            del self._entries[key]
            self.stats.misses += 1
            self.stats.evictions += 1
            logger.debug(f"{self.name}: expired entry dropped ({key[:16]})")
            return None
        self.stats.hits += 1
        return entry.value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = CacheEntry(value=value, cached_at=self._clock())
        if len(self._entries) > self.sweep_threshold:
            self.sweep()

    def sweep(self) -> int:
        """Delete every expired entry. Returns the number removed."""
        expired = [k for k, e in self._entries.items() if self._is_expired(e)]
        for key in expired:
            del self._entries[key]
        self.stats.evictions += len(expired)
        if expired:
            logger.debug(
                f"{self.name}: swept {len(expired)} expired entries, "
                f"{len(self._entries)} remain"
            )
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def values(self) -> Iterator[V]:
        """Iterate live values without touching hit/miss counters."""
        for entry in list(self._entries.values()):
            if not self._is_expired(entry):
                yield entry.value

    def items(self) -> Iterator[Tuple[str, V]]:
        for key, entry in list(self._entries.items()):
            if not self._is_expired(entry):
                yield key, entry.value

    def status(self) -> Dict[str, Any]:
        """Return current cache usage summary."""
        return {
            "name":        self.name,
            "size":        len(self._entries),
            "ttl_seconds": self.ttl_seconds,
            "hits":        self.stats.hits,
            "misses":      self.stats.misses,
            "evictions":   self.stats.evictions,
            "hit_rate":    round(self.stats.hit_rate, 4),
        }
