"""In-process TTL cache shared by the availability engine and booking orchestrator.

Entries live in process memory only. Each running instance keeps its own view,
so every TTL here is short enough that serving slightly stale data is fine.
Concurrent readers and writers on the same key are last-write-wins.
"""

from __future__ import annotations

import hashlib
import json
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import structlog

LOGGER = structlog.get_logger(__name__)

MISSING = object()
"""Sentinel returned by :meth:`TTLCache.get` on a miss."""


class CacheTTL:
    """Default TTL values in seconds per data category."""

    GAMES = 5 * 60
    PRICING = 5 * 60
    AVAILABILITY = 60
    AVAILABILITY_FAILURE = 15
    ACTIVITY = 2 * 60


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    expires_at: float


class TTLCache:
    """Key/value store with per-entry expiry and capacity-bounded eviction."""

    EVICTION_FRACTION = 0.1

    def __init__(self, max_entries: int = 500, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._store: Dict[str, CacheEntry] = {}
        self._max_entries = max_entries
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, key: str, default: Any = MISSING) -> Any:
        """Return the cached value, or ``default`` when absent or expired.

        An expired entry is removed by the read that discovers it.
        """
        entry = self._store.get(key)
        if entry is None:
            self._misses += 1
            return default
        if self._clock() > entry.expires_at:
            self._store.pop(key, None)
            self._misses += 1
            return default
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if key not in self._store and len(self._store) >= self._max_entries:
            self._evict_oldest()
        now = self._clock()
        self._store[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl_seconds)

    def invalidate(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    def invalidate_by_prefix(self, prefix: str) -> int:
        doomed = [key for key in list(self._store) if key.startswith(prefix)]
        for key in doomed:
            self._store.pop(key, None)
        return len(doomed)

    def clear(self) -> None:
        self._store.clear()

    def prune(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in list(self._store.items()) if now > entry.expires_at]
        for key in expired:
            self._store.pop(key, None)
        if expired:
            LOGGER.debug("cache.pruned", count=len(expired))
        return len(expired)

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._store),
            "max_entries": self._max_entries,
            "hits": self._hits,
            "misses": self._misses,
        }

    def __len__(self) -> int:
        return len(self._store)

    def _evict_oldest(self) -> None:
        """Evict the oldest 10% of entries by creation time."""
        count = max(1, math.floor(self._max_entries * self.EVICTION_FRACTION))
        oldest = sorted(list(self._store.items()), key=lambda item: item[1].created_at)[:count]
        for key, _ in oldest:
            self._store.pop(key, None)
        LOGGER.info("cache.evicted", count=len(oldest), max_entries=self._max_entries)


def availability_key(item_id: int, date_iso: str) -> str:
    return f"availability:{item_id}:{date_iso}"


def pricing_key(item_id: int) -> str:
    return f"pricing:{item_id}"


def activity_key(item_id: int) -> str:
    return f"activity:{item_id}"


def games_key(params: Optional[Mapping[str, Any]] = None) -> str:
    """Key for an item listing; identical parameter sets share one entry."""
    if not params:
        return "games:default"
    encoded = json.dumps(dict(params), sort_keys=True, default=str)
    return f"games:{hashlib.sha1(encoded.encode('utf-8')).hexdigest()[:16]}"
