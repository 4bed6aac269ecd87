"""In-memory detection cache with a time-to-live and a capacity bound."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fieldfill.config import ScanOptions

logger = logging.getLogger(__name__)

CacheKey = Tuple[Tuple[str, ...], str, str]


def make_cache_key(selectors: Sequence[str], key: str, options: ScanOptions) -> CacheKey:
    """Composite key: the selector set, the semantic key and the scoring options."""

    return (tuple(selectors), key, options.cache_token())


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    candidates: Tuple[Any, ...]
    created_at: float


@dataclass
class CacheStats:
    size: int
    max_entries: int
    ttl_ms: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "size": self.size,
            "max_entries": self.max_entries,
            "ttl_ms": self.ttl_ms,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }


class DetectionCache:
    """
    Memoizes ranked candidate lists per ``(selectors, key, options)``.

    An entry is valid only while ``now - created_at < ttl``. Entries are never
    modified; a refresh replaces the whole entry. When a store would exceed
    capacity, expired entries are purged first and then the oldest entry is
    evicted.
    """

    def __init__(
        self,
        ttl_ms: int = 30_000,
        max_entries: int = 100,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _ttl_seconds(self) -> float:
        return self.ttl_ms / 1000.0

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at < self._ttl_seconds

    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if not self._is_fresh(entry, now)]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)
        return len(expired)

    def _evict_oldest(self) -> None:
        oldest = min(self._entries.values(), key=lambda entry: entry.created_at)
        del self._entries[oldest.key]
        self._evictions += 1
        logger.debug(f"Evicted oldest detection cache entry for {oldest.key[1]!r}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def lookup(self, key: CacheKey) -> Optional[List[Any]]:
        """Return the cached candidates, or ``None`` on a miss (stale entries are evicted)."""

        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if not self._is_fresh(entry, self._clock()):
            del self._entries[key]
            self._evictions += 1
            self._misses += 1
            return None
        self._hits += 1
        return list(entry.candidates)

    def store(self, key: CacheKey, candidates: Sequence[Any]) -> CacheEntry:
        """Insert a fresh entry, making room first when at capacity."""

        now = self._clock()
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_entries:
            purged = self._purge_expired(now)
            if purged:
                logger.debug(f"Purged {purged} expired detection cache entries")
        while len(self._entries) >= self.max_entries:
            self._evict_oldest()
        entry = CacheEntry(key=key, candidates=tuple(candidates), created_at=now)
        self._entries[key] = entry
        return entry

    def invalidate(self, key: CacheKey) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("Detection cache cleared")

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_entries=self.max_entries,
            ttl_ms=self.ttl_ms,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
