# src/pomeocore/storage/cache.py
"""
Cache Layer - In-memory entity cache with sliding TTL and LRU eviction.

The cache sits in front of the storage backends. It holds a serialized
snapshot of each value taken at write time and rebuilds a fresh copy on
every read, so callers can never mutate what the cache holds.

Behaviour:
- Sliding expiry: an entry is expired when ``now - last_access_time > ttl``.
  Every successful ``get`` refreshes ``last_access_time``; ``exists`` does not.
- Bounded: whenever the aggregate serialized size exceeds ``max_bytes`` or
  the number of entries exceeds ``max_count``, least-recently-accessed
  entries are evicted until both bounds hold.
- Never raises storage errors: a value that cannot be serialized is kept
  as-is and charged a fixed fallback size.
- Typed reads: ``get(key, Task)`` returns None when the entry holds a value
  of another type, exactly as for a miss.

All operations are synchronous and run under one ``threading.RLock``, so the
cache can be shared by the event loop and worker threads alike. A background
janitor (a :class:`~pomeocore.scheduling.PeriodicTask`) runs ``cleanup()`` on
a fixed interval.

Usage:
    cache = CacheLayer(max_bytes=50 * 1024 * 1024, max_count=1000)
    cache.set("task_1b9d...", task)
    cached = cache.get("task_1b9d...", Task)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..config.models import CacheConfig
from ..exceptions import DecodingFailed, EncodingFailed
from ..scheduling import PeriodicTask
from . import codec

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass
class CacheEntry:
    """One cached value.

    Attributes:
        key: Storage key of the value.
        snapshot: Serialized value at write time, or None if it could not be
            serialized.
        value_type: Type of the cached value, used to rebuild it and to
            answer typed reads.
        fallback: The raw value, kept only when ``snapshot`` is None.
        timestamp: Clock reading at write time.
        ttl: Sliding time-to-live in seconds.
        size: Serialized size in bytes (or the fallback estimate).
        last_access_time: Clock reading of the last write or successful read.
    """

    key: str
    snapshot: str | None
    value_type: type
    fallback: Any
    timestamp: float
    ttl: float
    size: int
    last_access_time: float

    def is_expired(self, now: float) -> bool:
        return now - self.last_access_time > self.ttl

    def value(self) -> Any:
        """Rebuild a fresh copy of the cached value."""
        if self.snapshot is None:
            return self.fallback
        return codec.decode(self.snapshot, self.value_type)


# =============================================================================
# CACHE LAYER
# =============================================================================


class CacheLayer:
    """Thread-safe, size- and count-bounded cache with sliding TTL.

    Attributes:
        max_bytes: Upper bound on the aggregate entry size.
        max_count: Upper bound on the number of entries.
        default_ttl: TTL applied when ``set`` is called without one.
        cleanup_interval: Seconds between janitor sweeps.
        fallback_size: Size charged for values that cannot be serialized.
    """

    def __init__(
        self,
        max_bytes: int = 50 * 1024 * 1024,
        max_count: int = 1000,
        default_ttl: float = 300.0,
        cleanup_interval: float = 120.0,
        fallback_size: int = 1024,
        clock: Callable[[], float] = time.monotonic,
        config: CacheConfig | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            max_bytes: Maximum aggregate serialized size in bytes.
            max_count: Maximum number of entries.
            default_ttl: Default sliding TTL in seconds.
            cleanup_interval: Janitor period in seconds.
            fallback_size: Size estimate for unserializable values.
            clock: Monotonic time source, injectable for tests.
            config: Optional configuration object (overrides other params).
        """
        if config is not None:
            max_bytes = config.max_bytes
            max_count = config.max_count
            default_ttl = config.default_ttl_seconds
            cleanup_interval = config.cleanup_interval_seconds
            fallback_size = config.fallback_size_bytes

        self.max_bytes = max_bytes
        self.max_count = max_count
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self.fallback_size = fallback_size
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._total_bytes = 0
        self._janitor: PeriodicTask | None = None

        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "removals": 0,
            "evictions": 0,
            "expirations": 0,
        }

        logger.debug(
            "CacheLayer initialized: max_bytes=%d, max_count=%d, default_ttl=%ss",
            max_bytes,
            max_count,
            default_ttl,
        )

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _drop(self, key: str) -> CacheEntry | None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size
        return entry

    def _over_capacity(self) -> bool:
        return self._total_bytes > self.max_bytes or len(self._entries) > self.max_count

    def _evict_if_needed(self) -> int:
        """Evict least-recently-accessed entries until both bounds hold.

        Returns:
            Number of entries evicted.
        """
        if not self._over_capacity():
            return 0

        oldest_first = sorted(self._entries.values(), key=lambda e: e.last_access_time)
        evicted = 0
        freed = 0
        for entry in oldest_first:
            if not self._over_capacity():
                break
            self._drop(entry.key)
            freed += entry.size
            evicted += 1

        self._stats["evictions"] += evicted
        logger.debug("Evicted %d LRU entries, freed %d bytes", evicted, freed)
        return evicted

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a snapshot of ``value`` under ``key``.

        Replaces any existing entry and resets its access time. Never raises
        for unserializable values.

        Args:
            key: Storage key.
            value: Value to cache.
            ttl: Sliding TTL in seconds (None uses the default).
        """
        try:
            snapshot: str | None = codec.encode(value)
            size = codec.encoded_size(snapshot)
            fallback = None
        except EncodingFailed as e:
            logger.debug("Cache value for '%s' not serializable (%s); using fallback size", key, e)
            snapshot = None
            size = self.fallback_size
            fallback = value

        with self._lock:
            now = self._clock()
            self._drop(key)
            self._entries[key] = CacheEntry(
                key=key,
                snapshot=snapshot,
                value_type=type(value),
                fallback=fallback,
                timestamp=now,
                ttl=self.default_ttl if ttl is None else ttl,
                size=size,
                last_access_time=now,
            )
            self._total_bytes += size
            self._stats["sets"] += 1
            self._evict_if_needed()

    def get(self, key: str, expected_type: type[T] | None = None) -> T | Any | None:
        """Return a fresh copy of the cached value, or None on miss.

        An expired entry is removed and reported as a miss. When
        ``expected_type`` is given, an entry holding another type is a miss.

        Args:
            key: Storage key.
            expected_type: Type the caller expects back.

        Returns:
            The cached value, or None.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            now = self._clock()
            if entry.is_expired(now):
                self._drop(key)
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return None

            if expected_type is not None and not issubclass(entry.value_type, expected_type):
                self._stats["misses"] += 1
                return None

            try:
                value = entry.value()
            except DecodingFailed as e:
                logger.warning("Dropping undecodable cache entry '%s': %s", key, e)
                self._drop(key)
                self._stats["misses"] += 1
                return None

            entry.last_access_time = now
            self._stats["hits"] += 1
            return value

    def exists(self, key: str) -> bool:
        """Check for a live entry without refreshing its access time.

        Expired entries are removed.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                self._drop(key)
                self._stats["expirations"] += 1
                return False
            return True

    def remove(self, key: str) -> bool:
        """Invalidate one entry.

        Returns:
            True if an entry was removed.
        """
        with self._lock:
            if self._drop(key) is None:
                return False
            self._stats["removals"] += 1
            return True

    def clear(self) -> int:
        """Remove every entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._total_bytes = 0
            if count:
                logger.debug("Cleared %d cache entries", count)
            return count

    def cleanup(self) -> int:
        """Drop expired entries, then evict down to capacity.

        Returns:
            Number of entries removed (expired plus evicted).
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._drop(key)
            self._stats["expirations"] += len(expired)
            evicted = self._evict_if_needed()

        if expired or evicted:
            logger.debug("Cache cleanup: %d expired, %d evicted", len(expired), evicted)
        return len(expired) + evicted

    def keys(self, prefix: str = "") -> list[str]:
        """Keys of live entries, optionally filtered by prefix."""
        with self._lock:
            now = self._clock()
            return [
                key
                for key, entry in self._entries.items()
                if key.startswith(prefix) and not entry.is_expired(now)
            ]

    def size_bytes(self) -> int:
        """Aggregate size of all entries in bytes."""
        with self._lock:
            return self._total_bytes

    def stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with entry_count, size_bytes, the configured limits,
            hit_rate and the hits/misses/sets/removals/evictions/expirations
            counters.
        """
        with self._lock:
            lookups = self._stats["hits"] + self._stats["misses"]
            return {
                "entry_count": len(self._entries),
                "size_bytes": self._total_bytes,
                "max_count": self.max_count,
                "max_bytes": self.max_bytes,
                "hit_rate": self._stats["hits"] / lookups if lookups else 0.0,
                "default_ttl": self.default_ttl,
                **self._stats,
            }

    # -------------------------------------------------------------------------
    # Janitor
    # -------------------------------------------------------------------------

    def start_janitor(self) -> None:
        """Start the periodic cleanup task on the running event loop."""
        if self._janitor is None:
            self._janitor = PeriodicTask(
                name="cache_janitor",
                callback=self.cleanup,
                interval_seconds=self.cleanup_interval,
            )
        self._janitor.start()

    async def stop_janitor(self) -> None:
        """Stop the periodic cleanup task, waiting for a running sweep."""
        if self._janitor is not None:
            await self._janitor.stop()

    @property
    def janitor(self) -> PeriodicTask | None:
        return self._janitor

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.exists(key)


# =============================================================================
# FACTORY FUNCTION
# =============================================================================


def create_cache(config: CacheConfig | None = None, **kwargs: Any) -> CacheLayer:
    """Create a CacheLayer from a config object or keyword arguments."""
    if config is not None:
        return CacheLayer(config=config, **kwargs)
    return CacheLayer(**kwargs)
