# src/pomeocore/sync/service.py
"""
Sync service - drives reconciliation of several collections against a remote.

The service owns one :class:`SyncReconciler` per synced entity kind and a
:class:`RemoteSource` that returns full remote snapshots. A full cycle syncs
the configured kinds in order (tasks, then projects, then epics by default)
and stops at the first failure; collections synced before the failure stay
synced. There is no retry loop.

Example:
    service = SyncService(create_repositories(storage), remote=my_remote)
    results = await service.start_sync()
"""

import asyncio
import logging
import uuid
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from ..config.models import SyncConfig
from ..exceptions import SyncError
from ..models import EntityKind, EntityRecord
from ..repositories.entity import EntityRepository
from .reconciler import ReconcileResult, SyncReconciler, SyncState

logger = logging.getLogger(__name__)


@runtime_checkable
class RemoteSource(Protocol):
    """Where remote snapshots come from (a cloud database, another device...)."""

    async def fetch_all(self, kind: EntityKind) -> Sequence[EntityRecord]:
        """Return the complete remote collection of ``kind``."""
        ...


@runtime_checkable
class TombstoneSource(Protocol):
    """A remote that can also report which ids it deleted."""

    async def fetch_deleted_ids(self, kind: EntityKind) -> Iterable[uuid.UUID]:
        ...


class SyncService:
    """
    Runs sync cycles for a set of entity collections.

    Args:
        repositories: Repository per entity kind.
        remote: Source of remote snapshots.
        config: Sync settings (deletion policy and kinds to sync).
    """

    def __init__(
        self,
        repositories: Mapping[EntityKind, EntityRepository],
        remote: RemoteSource,
        config: Optional[SyncConfig] = None,
    ):
        self._config = config or SyncConfig()
        self.remote = remote
        self.kinds: List[EntityKind] = [EntityKind(k) for k in self._config.kinds]
        missing = [k.value for k in self.kinds if k not in repositories]
        if missing:
            raise SyncError(f"No repository configured for synced kinds: {missing}")
        self._reconcilers: Dict[EntityKind, SyncReconciler] = {
            kind: SyncReconciler(repositories[kind], self._config.deletion_policy)
            for kind in self.kinds
        }
        self._cycle_lock = asyncio.Lock()
        self.last_results: Dict[EntityKind, ReconcileResult] = {}

    @property
    def is_syncing(self) -> bool:
        return self._cycle_lock.locked()

    def state(self, kind: EntityKind) -> SyncState:
        return self._reconcilers[EntityKind(kind)].state

    def reconciler(self, kind: EntityKind) -> SyncReconciler:
        return self._reconcilers[EntityKind(kind)]

    async def sync_collection(self, kind: EntityKind) -> ReconcileResult:
        """Fetch the remote snapshot of one collection and merge it locally."""
        kind = EntityKind(kind)
        reconciler = self._reconcilers.get(kind)
        if reconciler is None:
            raise SyncError(f"Entity kind '{kind.value}' is not configured for sync")

        async def fetch_remote() -> Sequence[EntityRecord]:
            return await self.remote.fetch_all(kind)

        fetch_deleted = None
        if isinstance(self.remote, TombstoneSource):
            remote = self.remote

            async def fetch_deleted() -> Iterable[uuid.UUID]:
                return await remote.fetch_deleted_ids(kind)

        result = await reconciler.run_cycle(fetch_remote, fetch_deleted)
        self.last_results[kind] = result
        return result

    async def start_sync(self) -> Dict[EntityKind, ReconcileResult]:
        """
        Sync every configured collection in order.

        Raises:
            SyncError: If another full cycle is already running.
        """
        if self._cycle_lock.locked():
            raise SyncError("A sync cycle is already in progress")
        async with self._cycle_lock:
            logger.info("Starting sync of %s", ", ".join(k.value for k in self.kinds))
            results: Dict[EntityKind, ReconcileResult] = {}
            for kind in self.kinds:
                results[kind] = await self.sync_collection(kind)
            logger.info("Sync completed")
            return results
