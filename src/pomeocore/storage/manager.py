# src/pomeocore/storage/manager.py
"""
Tiered Storage Manager for PomeoCore.

Single entry point for keyed save/load/delete/exists, combining the
in-memory :class:`~pomeocore.storage.cache.CacheLayer` with a fast backend
(SQLite) and a slow backend (one file per key) under one of three
strategies:

- ``fast_only`` / ``slow_only``: every operation uses that backend alone.
- ``hybrid`` (default): a write goes to the fast backend when its priority
  is ``high`` or its serialized size is at most
  ``hybrid_size_threshold_bytes`` (1024), otherwise to the slow backend.
  Reads try the cache, then fast, then slow.

Every successful write and every backend hit refreshes the cache. A
periodic rebalancer moves all fast-backend entries to the slow backend once
the fast backend grows past ``fast_quota_bytes``.

Operations that touch the backends for one key hold that key's
``asyncio.Lock``, so a write that moves a key between backends never
interleaves with another write, delete, read or migration of the same key.

The manager is constructed explicitly and handed to its users; it owns its
cache and backends from ``initialize()`` until ``close()``::

    async with TieredStorageManager(config) as storage:
        await storage.save(task.storage_key, task)
        task = await storage.load(task.storage_key, Task)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

from ..config.models import PomeoConfig, StorageStrategy, TieredStorageConfig
from ..exceptions import InvalidData, StorageError
from ..scheduling import PeriodicTask
from . import codec
from .backup import ManagerBackup
from .base import BaseStorageBackend
from .cache import CacheLayer
from .fast import SqliteFastBackend
from .file import FileSystemBackend

logger = logging.getLogger(__name__)


class StoragePriority(str, Enum):
    """Write priority; ``HIGH`` always routes to the fast backend in hybrid mode."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class StorageUsage(BaseModel):
    """Bytes used per tier, recomputed on demand."""
    model_config = ConfigDict(frozen=True)

    fast_bytes: int
    slow_bytes: int
    cache_bytes: int
    total_bytes: int


class StorageInfo(BaseModel):
    """Usage snapshot plus the active strategy and whether storage is within its limits."""
    model_config = ConfigDict(frozen=True)

    strategy: StorageStrategy
    usage: StorageUsage
    fast_key_count: int
    slow_key_count: int
    cache_entry_count: int
    is_optimized: bool


class TieredStorageManager:
    """
    Routes keyed reads and writes across the cache and two backends.

    Backend errors propagate unchanged. The only errors swallowed (and
    logged) are per-key failures during rebalancing and a failed rebalance
    scheduled by :meth:`set_strategy`.
    """

    def __init__(
        self,
        config: Optional[TieredStorageConfig] = None,
        *,
        fast_backend: Optional[BaseStorageBackend] = None,
        slow_backend: Optional[BaseStorageBackend] = None,
        cache: Optional[CacheLayer] = None,
    ):
        """
        Args:
            config: Storage configuration; defaults are used when omitted.
            fast_backend: Replaces the SQLite backend built from ``config.fast``.
            slow_backend: Replaces the file backend built from ``config.file``.
            cache: Replaces the cache built from ``config.cache``.
        """
        self._config = config or TieredStorageConfig()
        self._strategy = self._config.strategy
        self.fast: BaseStorageBackend = fast_backend or SqliteFastBackend(self._config.fast)
        self.slow: BaseStorageBackend = slow_backend or FileSystemBackend(self._config.file)
        self.cache: CacheLayer = cache or CacheLayer(config=self._config.cache)
        self._rebalancer: Optional[PeriodicTask] = None
        self._switch_rebalance: Optional[asyncio.Task] = None
        # key -> [lock, number of holders and waiters]
        self._key_locks: Dict[str, list] = {}
        self._initialized = False

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Open both backends and start the janitor and rebalancer tasks."""
        if self._initialized:
            return
        await self.fast.initialize()
        await self.slow.initialize()
        if self._config.cache.enable_janitor:
            self.cache.start_janitor()
        if self._config.enable_rebalancer:
            self._rebalancer = PeriodicTask(
                name="storage_rebalancer",
                callback=self.rebalance,
                interval_seconds=self._config.rebalance_interval_seconds,
            )
            self._rebalancer.start()
        self._initialized = True
        logger.info("TieredStorageManager initialized (strategy=%s).", self._strategy.value)

    async def close(self) -> None:
        """Stop background tasks and close both backends."""
        if self._switch_rebalance is not None:
            await self._switch_rebalance
            self._switch_rebalance = None
        if self._rebalancer is not None:
            await self._rebalancer.stop()
            self._rebalancer = None
        await self.cache.stop_janitor()
        await self.fast.close()
        await self.slow.close()
        self._initialized = False
        logger.info("TieredStorageManager closed.")

    async def __aenter__(self) -> "TieredStorageManager":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # --- Strategy ---

    @property
    def strategy(self) -> StorageStrategy:
        return self._strategy

    def set_strategy(self, strategy: Union[StorageStrategy, str]) -> Optional[asyncio.Task]:
        """
        Switch the routing strategy.

        Existing data stays where it is. Switching to ``hybrid`` on an
        initialized manager schedules one :meth:`rebalance` pass in the
        background, and :meth:`close` waits for it.

        Returns:
            The scheduled rebalance task, or None if none was scheduled.
        """
        self._strategy = StorageStrategy(strategy)
        logger.info("Storage strategy set to %s", self._strategy.value)
        if self._strategy != StorageStrategy.HYBRID or not self._initialized:
            return None
        if self._switch_rebalance is None or self._switch_rebalance.done():
            self._switch_rebalance = asyncio.get_running_loop().create_task(
                self._rebalance_after_switch()
            )
        return self._switch_rebalance

    async def _rebalance_after_switch(self) -> None:
        try:
            await self.rebalance()
        except StorageError as e:
            logger.error("Rebalance after strategy switch failed: %s", e)

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        """Hold the lock of ``key``; the lock is dropped once nobody uses it."""
        entry = self._key_locks.get(key)
        if entry is None:
            entry = self._key_locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._key_locks[key]

    def _read_backends(self) -> List[BaseStorageBackend]:
        if self._strategy == StorageStrategy.FAST_ONLY:
            return [self.fast]
        if self._strategy == StorageStrategy.SLOW_ONLY:
            return [self.slow]
        return [self.fast, self.slow]

    def _write_backend(self, size: int, priority: StoragePriority) -> BaseStorageBackend:
        if self._strategy == StorageStrategy.FAST_ONLY:
            return self.fast
        if self._strategy == StorageStrategy.SLOW_ONLY:
            return self.slow
        if priority == StoragePriority.HIGH or size <= self._config.hybrid_size_threshold_bytes:
            return self.fast
        return self.slow

    # --- Single-key operations ---

    async def save(
        self,
        key: str,
        value: Any,
        priority: StoragePriority = StoragePriority.NORMAL,
    ) -> None:
        """
        Persist ``value`` under ``key`` and refresh the cache.

        Raises:
            EncodingFailed: If the value cannot be serialized.
            StorageError: If the chosen backend fails to write.
        """
        text = codec.encode(value)
        size = codec.encoded_size(text)
        priority = StoragePriority(priority)
        async with self._key_lock(key):
            target = self._write_backend(size, priority)
            await target.save_raw(key, text)
            if self._strategy == StorageStrategy.HYBRID:
                # Drop a stale copy left in the other backend by an earlier write.
                other = self.slow if target is self.fast else self.fast
                await other.delete(key)
            self.cache.set(key, value)
        logger.debug("Saved '%s' (%d bytes) to %s backend", key, size, target.name)

    async def load(self, key: str, model: Any = None) -> Any:
        """
        Load the value stored under ``key``.

        Args:
            key: Storage key.
            model: Optional type to decode into; a cached value of another
                type is ignored and the backends are consulted.

        Returns:
            The value, or None if no backend holds the key.
        """
        cached = self.cache.get(key, model if isinstance(model, type) else None)
        if cached is not None:
            return cached

        async with self._key_lock(key):
            for backend in self._read_backends():
                text = await backend.load_raw(key)
                if text is None:
                    continue
                value = codec.decode(text, model)
                self.cache.set(key, value)
                return value
        return None

    async def delete(self, key: str) -> bool:
        """
        Delete ``key`` from both backends and invalidate its cache entry.

        Returns:
            True if either backend held the key.
        """
        async with self._key_lock(key):
            try:
                deleted_fast = await self.fast.delete(key)
                deleted_slow = await self.slow.delete(key)
            finally:
                self.cache.remove(key)
        return deleted_fast or deleted_slow

    async def exists(self, key: str) -> bool:
        if self.cache.exists(key):
            return True
        async with self._key_lock(key):
            for backend in self._read_backends():
                if await backend.exists(key):
                    return True
        return False

    async def list_keys(self, prefix: str = "") -> List[str]:
        """Sorted union of the keys held by the backends of the active strategy."""
        keys: set = set()
        for backend in self._read_backends():
            keys.update(await backend.list_keys(prefix))
        return sorted(keys)

    # --- Batch operations ---

    async def save_many(
        self,
        values: Sequence[Any],
        keys: Sequence[str],
        priority: StoragePriority = StoragePriority.NORMAL,
    ) -> None:
        """
        Save ``values[i]`` under ``keys[i]``.

        Raises:
            InvalidData: If the sequences differ in length; nothing is written.
        """
        if len(values) != len(keys):
            raise InvalidData(
                f"save_many got {len(values)} values for {len(keys)} keys"
            )
        for key, value in zip(keys, values):
            await self.save(key, value, priority)

    async def load_many(self, keys: Sequence[str], model: Any = None) -> List[Any]:
        """Load every key; the result is aligned with ``keys`` (None for absent keys)."""
        return [await self.load(key, model) for key in keys]

    async def delete_many(self, keys: Sequence[str]) -> bool:
        """Delete every key. Returns True only if every key was deleted."""
        results = [await self.delete(key) for key in keys]
        return all(results)

    # --- Maintenance ---

    async def rebalance(self) -> int:
        """
        Migrate fast-backend entries to the slow backend when over quota.

        Runs only under the hybrid strategy. Stored text is moved
        byte-for-byte. A key that fails to migrate is logged and left in
        the fast backend. The cache is swept afterwards.

        Returns:
            Number of keys migrated.
        """
        migrated = 0
        if self._strategy == StorageStrategy.HYBRID:
            fast_size = await self.fast.storage_size_bytes()
            if fast_size > self._config.fast_quota_bytes:
                logger.info(
                    "Fast backend at %d bytes exceeds quota of %d; migrating to slow backend",
                    fast_size,
                    self._config.fast_quota_bytes,
                )
                for key in await self.fast.list_keys():
                    try:
                        async with self._key_lock(key):
                            text = await self.fast.load_raw(key)
                            if text is None:
                                continue
                            await self.slow.save_raw(key, text)
                            await self.fast.delete(key)
                        migrated += 1
                    except StorageError as e:
                        logger.warning("Skipping migration of '%s': %s", key, e)
                logger.info("Rebalancing migrated %d keys", migrated)
        self.cache.cleanup()
        return migrated

    async def clear(self) -> None:
        """Remove every key from the cache and both backends."""
        self.cache.clear()
        await self.fast.clear()
        await self.slow.clear()
        logger.info("Cleared all storage tiers")

    async def backup(self) -> bytes:
        """Serialize both backends into one versioned container."""
        container = ManagerBackup(
            strategy=self._strategy.value,
            fast=await self.fast.backup_container(),
            slow=await self.slow.backup_container(),
        )
        return container.to_bytes()

    async def restore(self, data: bytes) -> int:
        """
        Replace the contents of both backends with a manager backup.

        Returns:
            Number of entries restored.

        Raises:
            RestoreFailed: If the container is invalid or a write fails.
        """
        container = ManagerBackup.from_bytes(data)
        self.cache.clear()
        restored = await self.fast.restore_container(container.fast)
        restored += await self.slow.restore_container(container.slow)
        return restored

    # --- Observation ---

    async def get_storage_usage(self) -> StorageUsage:
        fast_bytes = await self.fast.storage_size_bytes()
        slow_bytes = await self.slow.storage_size_bytes()
        cache_bytes = self.cache.size_bytes()
        return StorageUsage(
            fast_bytes=fast_bytes,
            slow_bytes=slow_bytes,
            cache_bytes=cache_bytes,
            total_bytes=fast_bytes + slow_bytes + cache_bytes,
        )

    async def get_storage_info(self) -> StorageInfo:
        usage = await self.get_storage_usage()
        return StorageInfo(
            strategy=self._strategy,
            usage=usage,
            fast_key_count=len(await self.fast.list_keys()),
            slow_key_count=len(await self.slow.list_keys()),
            cache_entry_count=len(self.cache),
            is_optimized=(
                usage.total_bytes < self._config.max_total_bytes
                and usage.fast_bytes < self._config.fast_quota_bytes
            ),
        )

    def stats(self) -> Dict[str, Any]:
        """Cache statistics and background task status."""
        janitor = self.cache.janitor
        return {
            "strategy": self._strategy.value,
            "cache": self.cache.stats(),
            "janitor": janitor.to_dict() if janitor else None,
            "rebalancer": self._rebalancer.to_dict() if self._rebalancer else None,
        }


def create_storage_manager(
    config: Union[PomeoConfig, TieredStorageConfig, None] = None,
    **kwargs: Any,
) -> TieredStorageManager:
    """Create a TieredStorageManager from the root or the storage config."""
    if isinstance(config, PomeoConfig):
        config = config.storage
    return TieredStorageManager(config, **kwargs)
