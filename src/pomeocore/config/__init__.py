# src/pomeocore/config/__init__.py
"""
Configuration module for the PomeoCore library.

Configuration files:
    - ``$POMEOCORE_CONFIG`` if set
    - ``./pomeocore.toml``
    - User config: ``~/.config/pomeocore/config.toml``

Environment variables:
    - Prefix: POMEOCORE_
    - Nested keys use double underscores: POMEOCORE_STORAGE__STRATEGY
"""

from .loader import find_config_file, load_config
from .models import (
    CacheConfig,
    DeletionPolicy,
    FastBackendConfig,
    FileBackendConfig,
    LoggingConfig,
    PomeoConfig,
    StorageStrategy,
    SyncConfig,
    TieredStorageConfig,
)

__all__ = [
    "CacheConfig",
    "DeletionPolicy",
    "FastBackendConfig",
    "FileBackendConfig",
    "LoggingConfig",
    "PomeoConfig",
    "StorageStrategy",
    "SyncConfig",
    "TieredStorageConfig",
    "find_config_file",
    "load_config",
]
