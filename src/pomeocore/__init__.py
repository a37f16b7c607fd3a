# src/pomeocore/__init__.py
"""
PomeoCore - local persistence and synchronization engine for a personal
task / project / epic manager.

Provides an in-memory cache with sliding TTL and LRU eviction, a tiered
storage manager routing entity records between a fast SQLite store and a
file-per-key store, typed entity repositories, and last-writer-wins
reconciliation against a remote snapshot.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import PomeoConfig, load_config
from .exceptions import (
    BackupFailed,
    ConfigError,
    DecodingFailed,
    DeleteFailed,
    EncodingFailed,
    EntityAlreadyExistsError,
    EntityNotFoundError,
    InsufficientSpace,
    InvalidData,
    LoadFailed,
    PomeoCoreError,
    RepositoryError,
    RestoreFailed,
    SaveFailed,
    StorageError,
    SyncError,
)
from .models import (
    Attachment,
    AttachmentType,
    ChecklistItem,
    EntityKind,
    EntityRecord,
    Epic,
    Project,
    RepeatType,
    Tag,
    Task,
    TaskPriority,
    TaskStatus,
    parse_storage_key,
)
from .repositories import EntityRepository, create_repositories
from .storage import (
    CacheLayer,
    StorageInfo,
    StoragePriority,
    StorageStrategy,
    StorageUsage,
    TieredStorageManager,
    create_storage_manager,
)
from .sync import ReconcileResult, RemoteSource, SyncReconciler, SyncService, SyncState

try:
    __version__ = version("pomeocore")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    # Configuration
    "PomeoConfig",
    "load_config",
    # Exceptions
    "BackupFailed",
    "ConfigError",
    "DecodingFailed",
    "DeleteFailed",
    "EncodingFailed",
    "EntityAlreadyExistsError",
    "EntityNotFoundError",
    "InsufficientSpace",
    "InvalidData",
    "LoadFailed",
    "PomeoCoreError",
    "RepositoryError",
    "RestoreFailed",
    "SaveFailed",
    "StorageError",
    "SyncError",
    # Models
    "Attachment",
    "AttachmentType",
    "ChecklistItem",
    "EntityKind",
    "EntityRecord",
    "Epic",
    "Project",
    "RepeatType",
    "Tag",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "parse_storage_key",
    # Storage
    "CacheLayer",
    "StorageInfo",
    "StoragePriority",
    "StorageStrategy",
    "StorageUsage",
    "TieredStorageManager",
    "create_storage_manager",
    # Repositories
    "EntityRepository",
    "create_repositories",
    # Sync
    "ReconcileResult",
    "RemoteSource",
    "SyncReconciler",
    "SyncService",
    "SyncState",
    "__version__",
]
