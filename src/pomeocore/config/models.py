# src/pomeocore/config/models.py
"""
Configuration models for PomeoCore.

This module defines Pydantic models for every configuration section.
They give type-safe loading, validation with sensible defaults and a
single place where the storage engine's tunables are documented.

The configuration hierarchy:
    PomeoConfig (root)
    ├── TieredStorageConfig      - [storage] routing and rebalancing
    │   ├── CacheConfig          - [storage.cache] in-memory cache limits
    │   ├── FastBackendConfig    - [storage.fast] SQLite key/value store
    │   └── FileBackendConfig    - [storage.file] file-per-key store
    ├── SyncConfig               - [sync] reconciliation settings
    └── LoggingConfig            - [logging] unified logging settings

Usage:
    >>> from pomeocore.config.models import PomeoConfig
    >>> config = PomeoConfig()  # All defaults
    >>> config.storage.hybrid_size_threshold_bytes
    1024
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

MB = 1024 * 1024


class StorageStrategy(str, Enum):
    """Routing strategy of the tiered storage manager."""

    FAST_ONLY = "fast_only"
    SLOW_ONLY = "slow_only"
    HYBRID = "hybrid"


class DeletionPolicy(str, Enum):
    """How the reconciler decides that a local entity was deleted remotely.

    ``SNAPSHOT`` treats the remote collection as the full authoritative
    set: anything missing from it is deleted locally. ``TOMBSTONES`` only
    deletes ids the remote reports explicitly.
    """

    SNAPSHOT = "snapshot"
    TOMBSTONES = "tombstones"


# =============================================================================
# STORAGE CONFIGURATION
# =============================================================================


class CacheConfig(BaseModel):
    """In-memory cache settings.

    Attributes:
        max_bytes: Upper bound on the aggregate serialized size of entries.
        max_count: Upper bound on the number of entries.
        default_ttl_seconds: Sliding TTL applied when ``set`` gets no ttl.
        cleanup_interval_seconds: Period of the background janitor.
        fallback_size_bytes: Size charged for values that fail to serialize.
        enable_janitor: Start the janitor when the manager is initialized.
    """

    max_bytes: int = Field(default=50 * MB, ge=1, description="Maximum aggregate size in bytes")
    max_count: int = Field(default=1000, ge=1, description="Maximum number of entries")
    default_ttl_seconds: float = Field(default=300.0, gt=0, description="Default sliding TTL")
    cleanup_interval_seconds: float = Field(
        default=120.0, gt=0, description="Janitor sweep interval in seconds"
    )
    fallback_size_bytes: int = Field(
        default=1024, ge=0, description="Size estimate for unserializable values"
    )
    enable_janitor: bool = Field(default=True, description="Run the background janitor")


class FastBackendConfig(BaseModel):
    """SQLite fast backend settings."""

    db_path: str = Field(
        default="~/.local/share/pomeocore/fast_store.db",
        description="SQLite database path (':memory:' for a transient store)",
    )
    table_name: str = Field(default="kv_store", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")

    @field_validator("db_path")
    @classmethod
    def expand_db_path(cls, v: str) -> str:
        """Expand ~ and environment variables in db_path."""
        if v == ":memory:":
            return v
        return os.path.expanduser(os.path.expandvars(v))


class FileBackendConfig(BaseModel):
    """File-per-key slow backend settings."""

    path: str = Field(
        default="~/.local/share/pomeocore/file_storage",
        description="Directory holding one file per key",
    )
    file_extension: str = Field(default=".json", pattern=r"^\.[A-Za-z0-9]+$")

    @field_validator("path")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ and environment variables in path."""
        return os.path.expanduser(os.path.expandvars(v))


class TieredStorageConfig(BaseModel):
    """
    Tiered storage manager settings.

    Examples:
        >>> config = TieredStorageConfig()
        >>> config.strategy
        <StorageStrategy.HYBRID: 'hybrid'>
        >>> config.fast_quota_bytes
        10485760
    """

    strategy: StorageStrategy = Field(default=StorageStrategy.HYBRID)
    hybrid_size_threshold_bytes: int = Field(
        default=1024,
        ge=0,
        description="Values up to this serialized size go to the fast backend",
    )
    fast_quota_bytes: int = Field(
        default=10 * MB,
        ge=0,
        description="Fast backend size above which rebalancing migrates entries",
    )
    max_total_bytes: int = Field(
        default=100 * MB,
        ge=0,
        description="Soft limit used to report whether storage is optimized",
    )
    rebalance_interval_seconds: float = Field(default=300.0, gt=0)
    enable_rebalancer: bool = Field(default=True)

    cache: CacheConfig = Field(default_factory=CacheConfig)
    fast: FastBackendConfig = Field(default_factory=FastBackendConfig)
    file: FileBackendConfig = Field(default_factory=FileBackendConfig)


# =============================================================================
# SYNC CONFIGURATION
# =============================================================================


class SyncConfig(BaseModel):
    """Reconciliation settings.

    Attributes:
        deletion_policy: Snapshot (absent remotely means deleted) or tombstones.
        kinds: Entity collections synced by a full cycle, in order.
    """

    deletion_policy: DeletionPolicy = Field(default=DeletionPolicy.SNAPSHOT)
    kinds: list[str] = Field(default_factory=lambda: ["task", "project", "epic"])

    @field_validator("kinds")
    @classmethod
    def validate_kinds(cls, v: list[str]) -> list[str]:
        """Reject unknown entity kinds."""
        from ..models import EntityKind

        known = {kind.value for kind in EntityKind}
        unknown = [k for k in v if k not in known]
        if unknown:
            raise ValueError(f"Unknown entity kinds: {unknown}. Valid: {sorted(known)}")
        return v


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


class LoggingConfig(BaseModel):
    """Unified logging settings, consumed by ``pomeocore.logging_config``."""

    console_enabled: bool = False
    console_level: str = "WARNING"
    console_format: str = "%(levelname)s - %(message)s"
    file_enabled: bool = True
    file_level: str = "DEBUG"
    file_directory: str = "~/.local/share/pomeocore/logs"
    file_mode: str = Field(default="per_run", pattern=r"^(per_run|single)$")
    file_name_pattern: str = "{app}_{timestamp:%Y%m%d_%H%M%S}.log"
    file_single_name: str = "{app}.log"
    file_format: str = (
        "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)"
    )
    rotation_max_bytes: int = Field(default=10 * MB, ge=0)
    rotation_backup_count: int = Field(default=5, ge=0)
    display_min_level: str = "INFO"
    components: dict[str, str] = Field(
        default_factory=lambda: {
            "pomeocore": "INFO",
            "asyncio": "WARNING",
            "aiosqlite": "WARNING",
        }
    )


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class PomeoConfig(BaseSettings):
    """
    Root configuration object.

    Instantiating it layers its sources, later ones winning: field defaults,
    the TOML file named by ``model_config["toml_file"]``, keyword arguments,
    then ``POMEOCORE_*`` environment variables with ``__`` for nesting
    (``POMEOCORE_STORAGE__CACHE__MAX_COUNT=500``). List and dict values are
    given in the environment as JSON.
    """

    model_config = SettingsConfigDict(
        env_prefix="POMEOCORE_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    storage: TieredStorageConfig = Field(default_factory=TieredStorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        """Dump the configuration as plain JSON-compatible data."""
        return self.model_dump(mode="json")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (env_settings, init_settings, TomlConfigSettingsSource(settings_cls))
