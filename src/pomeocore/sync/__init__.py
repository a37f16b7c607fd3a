# src/pomeocore/sync/__init__.py
"""
Synchronization of local collections with a remote snapshot source.
"""

from .reconciler import ReconcileResult, SyncReconciler, SyncState
from .service import RemoteSource, SyncService, TombstoneSource

__all__ = [
    "ReconcileResult",
    "RemoteSource",
    "SyncReconciler",
    "SyncService",
    "SyncState",
    "TombstoneSource",
]
