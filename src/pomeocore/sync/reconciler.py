# src/pomeocore/sync/reconciler.py
"""
Sync Reconciler - merges a remote snapshot of one collection into local storage.

Given the full local collection and the remote collection, reconciliation:

1. builds id → entity maps for both sides;
2. for every remote entity, creates it locally when absent, or copies its
   fields onto the local entity when ``remote.updated_at`` is strictly
   newer (last writer wins; ties keep the local copy);
3. deletes local entities the remote no longer has.

Step 3 depends on the deletion policy. Under ``snapshot`` the remote list is
the complete authoritative set and anything missing from it is deleted, so a
partial (paginated or filtered) fetch deletes local data. Under
``tombstones`` only ids the remote explicitly reports as deleted are removed.

Writes go through an :class:`~pomeocore.repositories.EntityRepository`, so
updates bump ``version`` and refresh ``updated_at``. Entities are processed
one at a time with no cross-entity atomicity: if a step fails, earlier steps
stay applied and the error is raised to the caller. The loop yields to the
event loop between entities, so cancelling a sync task stops it between
writes, never in the middle of one.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from ..config.models import DeletionPolicy
from ..exceptions import SyncError
from ..models import EntityKind, EntityRecord
from ..repositories.entity import EntityRepository

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Phase of a sync cycle. Every cycle ends back in IDLE, even on failure."""
    IDLE = "idle"
    FETCHING_REMOTE = "fetching_remote"
    MERGING = "merging"


@dataclass
class ReconcileResult:
    """Ids touched by one reconciliation, grouped by outcome."""

    kind: EntityKind
    created: List[uuid.UUID] = field(default_factory=list)
    updated: List[uuid.UUID] = field(default_factory=list)
    deleted: List[uuid.UUID] = field(default_factory=list)
    unchanged: List[uuid.UUID] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.deleted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "created": [str(i) for i in self.created],
            "updated": [str(i) for i in self.updated],
            "deleted": [str(i) for i in self.deleted],
            "unchanged": [str(i) for i in self.unchanged],
        }


class SyncReconciler:
    """
    Reconciles one entity collection against remote snapshots.

    Args:
        repository: Repository of the collection being synced.
        deletion_policy: ``snapshot`` (default) or ``tombstones``.
    """

    def __init__(
        self,
        repository: EntityRepository,
        deletion_policy: DeletionPolicy = DeletionPolicy.SNAPSHOT,
    ):
        self.repository = repository
        self.deletion_policy = DeletionPolicy(deletion_policy)
        self._state = SyncState.IDLE

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def kind(self) -> EntityKind:
        return self.repository.kind

    async def run_cycle(
        self,
        fetch_remote: Callable[[], Awaitable[Sequence[EntityRecord]]],
        fetch_deleted_ids: Optional[Callable[[], Awaitable[Iterable[uuid.UUID]]]] = None,
    ) -> ReconcileResult:
        """
        Run one full cycle: read local, fetch remote, merge.

        Raises:
            SyncError: If a cycle is already running on this reconciler.
        """
        if self._state != SyncState.IDLE:
            raise SyncError(f"A {self.kind.value} sync cycle is already in progress")
        try:
            self._state = SyncState.FETCHING_REMOTE
            local = await self.repository.read_all()
            remote = await fetch_remote()
            deleted_ids = await fetch_deleted_ids() if fetch_deleted_ids is not None else None
            return await self._merge(local, remote, deleted_ids)
        finally:
            self._state = SyncState.IDLE

    async def reconcile(
        self,
        local: Sequence[EntityRecord],
        remote: Sequence[EntityRecord],
        *,
        deleted_ids: Optional[Iterable[uuid.UUID]] = None,
    ) -> ReconcileResult:
        """
        Merge ``remote`` into the local store, given the current ``local`` collection.

        Args:
            local: Full local collection.
            remote: Remote collection (authoritative full snapshot under the
                snapshot policy).
            deleted_ids: Ids the remote reports as deleted; used by the
                tombstones policy.

        Returns:
            What was created, updated, deleted and left unchanged.
        """
        if self._state != SyncState.IDLE:
            raise SyncError(f"A {self.kind.value} sync cycle is already in progress")
        try:
            return await self._merge(local, remote, deleted_ids)
        finally:
            self._state = SyncState.IDLE

    async def _merge(
        self,
        local: Sequence[EntityRecord],
        remote: Sequence[EntityRecord],
        deleted_ids: Optional[Iterable[uuid.UUID]],
    ) -> ReconcileResult:
        self._state = SyncState.MERGING
        result = ReconcileResult(kind=self.kind)
        local_map = {entity.id: entity for entity in local}
        remote_map = {entity.id: entity for entity in remote}
        mutable_fields = self.repository.model.mutable_fields()

        try:
            for entity_id, remote_entity in remote_map.items():
                await asyncio.sleep(0)
                local_entity = local_map.get(entity_id)
                if local_entity is None:
                    await self.repository.create(remote_entity)
                    result.created.append(entity_id)
                elif remote_entity.updated_at > local_entity.updated_at:
                    merged = local_entity.model_copy(
                        update={name: getattr(remote_entity, name) for name in mutable_fields}
                    )
                    await self.repository.update(merged)
                    result.updated.append(entity_id)
                else:
                    result.unchanged.append(entity_id)

            if self.deletion_policy == DeletionPolicy.SNAPSHOT:
                to_delete = [i for i in local_map if i not in remote_map]
            else:
                tombstones = set(deleted_ids or ())
                to_delete = [i for i in local_map if i in tombstones and i not in remote_map]

            for entity_id in to_delete:
                await asyncio.sleep(0)
                await self.repository.delete(entity_id)
                result.deleted.append(entity_id)
        except asyncio.CancelledError:
            logger.info(
                "%s reconciliation cancelled after %d creates, %d updates, %d deletes",
                self.kind.value, len(result.created), len(result.updated), len(result.deleted),
            )
            raise
        except Exception as e:
            logger.error(
                "%s reconciliation failed after %d creates, %d updates, %d deletes: %s",
                self.kind.value, len(result.created), len(result.updated), len(result.deleted), e,
            )
            raise

        logger.info(
            "Reconciled %s: %d created, %d updated, %d deleted, %d unchanged",
            self.kind.value, len(result.created), len(result.updated),
            len(result.deleted), len(result.unchanged),
        )
        return result
