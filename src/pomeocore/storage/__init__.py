# src/pomeocore/storage/__init__.py
"""
Storage package for the PomeoCore library.

Tiers::

    CacheLayer  →  SqliteFastBackend  →  FileSystemBackend
     (memory)       (small / high       (one JSON file
                     priority values)     per key)

:class:`TieredStorageManager` combines them behind one keyed API.
"""

from .backup import BackupContainer, BackupEntry, ManagerBackup
from .base import BaseStorageBackend
from .cache import CacheEntry, CacheLayer, create_cache
from .fast import SqliteFastBackend, create_fast_backend
from .file import FileSystemBackend, create_file_backend
from .manager import (
    StorageInfo,
    StoragePriority,
    StorageStrategy,
    StorageUsage,
    TieredStorageManager,
    create_storage_manager,
)

__all__ = [
    "BackupContainer",
    "BackupEntry",
    "BaseStorageBackend",
    "CacheEntry",
    "CacheLayer",
    "FileSystemBackend",
    "ManagerBackup",
    "SqliteFastBackend",
    "StorageInfo",
    "StoragePriority",
    "StorageStrategy",
    "StorageUsage",
    "TieredStorageManager",
    "create_cache",
    "create_fast_backend",
    "create_file_backend",
    "create_storage_manager",
]
