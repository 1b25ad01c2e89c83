"""
In-process lookaside cache for premium records.
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional, Tuple

from shared.logging import get_logger
from shared.metrics import MetricsCollector


@dataclass
class CacheEntry:
    """Cached value with an optional absolute expiry (clock seconds)."""
    value: Any
    expiry: Optional[float]
    sequence: int

    def is_expired(self, now: float) -> bool:
        return self.expiry is not None and self.expiry < now


class LookasideCache:
    """Key/value cache with optional TTL and bounded size.

    Size eviction is FIFO by first insertion: when the cache is full, the
    key that was inserted earliest (and not deleted since) is dropped.
    Re-setting a key that is already cached keeps its queue position,
    and reads do not affect the order. This is not an LRU cache.

    Expired entries are removed lazily when read; there is no background
    expiry task. No method raises.
    """

    def __init__(
        self,
        enabled: bool = False,
        ttl: Optional[float] = None,
        max_size: Optional[int] = None,
        *,
        clock: Optional[Callable[[], float]] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.logger = get_logger("premium.cache")
        self.enabled = enabled
        self.default_ttl = ttl
        self.max_size = max_size
        self.metrics = metrics
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        # Insertion queue of (key, sequence); stale pairs are skipped on eviction
        self._queue: Deque[Tuple[str, int]] = deque()
        self._sequence = 0

        if max_size is not None and max_size <= 0:
            self.logger.warning("Ignoring non-positive cache max_size", max_size=max_size)
            self.max_size = None
        if ttl is not None and ttl < 0:
            self.logger.warning("Ignoring negative cache ttl", ttl=ttl)
            self.default_ttl = None

    def get(self, key: str) -> Optional[Any]:
        """Get a cached value, or None on a miss."""
        if not self.enabled:
            return None

        entry = self._entries.get(key)
        if entry is None:
            self._record_lookup(False)
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._record_eviction("ttl")
            self._record_lookup(False)
            return None

        self._record_lookup(True)
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Cache ``value``; ``ttl`` seconds overrides the default TTL."""
        if not self.enabled:
            return

        existing = self._entries.get(key)
        if existing is None and self.max_size and len(self._entries) >= self.max_size:
            self._evict_oldest()

        effective_ttl = ttl if ttl is not None else self.default_ttl
        expiry = self._clock() + effective_ttl if effective_ttl is not None else None

        if existing is not None:
            existing.value = value
            existing.expiry = expiry
            return

        self._sequence += 1
        self._entries[key] = CacheEntry(value=value, expiry=expiry, sequence=self._sequence)
        self._queue.append((key, self._sequence))
        self._compact_queue()

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()
        self._queue.clear()

    def stats(self) -> Dict[str, Any]:
        """Current size and enabled flag."""
        return {
            "size": len(self._entries),
            "enabled": self.enabled,
        }

    def _evict_oldest(self) -> None:
        while self._queue:
            key, sequence = self._queue.popleft()
            entry = self._entries.get(key)
            if entry is not None and entry.sequence == sequence:
                del self._entries[key]
                self._record_eviction("size")
                self.logger.debug("Evicted cache entry", key=key)
                return

    def _compact_queue(self) -> None:
        # Deleted keys leave stale queue pairs behind
        if len(self._queue) <= 2 * len(self._entries) + 16:
            return
        self._queue = deque(
            (key, sequence)
            for key, sequence in self._queue
            if key in self._entries and self._entries[key].sequence == sequence
        )

    def _record_lookup(self, hit: bool) -> None:
        if self.metrics:
            self.metrics.record_cache_lookup(hit)

    def _record_eviction(self, reason: str) -> None:
        if self.metrics:
            self.metrics.record_cache_eviction(reason)
