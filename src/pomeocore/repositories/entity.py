# src/pomeocore/repositories/entity.py
"""
Generic entity repository over the tiered storage manager.

A repository owns the commit invariants of one entity collection:

- ``create`` stamps ``updated_at`` with the commit time.
- ``update`` requires the entity to exist, bumps ``version`` by exactly one
  over the stored version, keeps the stored ``created_at`` and stamps
  ``updated_at``.
- ``read_all`` lists the collection by key prefix, newest first.

Callers never set ``version`` or ``updated_at`` themselves.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Generic, List, Optional, Sequence, Type, TypeVar, Union

from ..exceptions import EntityAlreadyExistsError, EntityNotFoundError
from ..models import EntityKind, EntityRecord, utc_now
from ..storage.manager import StoragePriority, TieredStorageManager

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=EntityRecord)

EntityId = Union[uuid.UUID, str]


class EntityRepository(Generic[E]):
    """
    CRUD access to one entity collection.

    Args:
        storage: Storage manager holding the collection.
        model: Entity class of the collection (e.g. ``Task``).
        priority: Write priority passed to the storage manager.
        clock: Source of commit timestamps (UTC), injectable for tests.
    """

    def __init__(
        self,
        storage: TieredStorageManager,
        model: Type[E],
        priority: StoragePriority = StoragePriority.NORMAL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._storage = storage
        self.model = model
        self.priority = priority
        self._clock = clock
        self._commit_lock = asyncio.Lock()

    @property
    def kind(self) -> EntityKind:
        return self.model.kind

    def key_for(self, entity_id: EntityId) -> str:
        return self.kind.key_for(entity_id)

    async def create(self, entity: E) -> E:
        """
        Store a new entity.

        Returns:
            The committed entity, with ``updated_at`` set to the commit time.

        Raises:
            EntityAlreadyExistsError: If an entity with the same id is stored.
        """
        async with self._commit_lock:
            key = entity.storage_key
            if await self._storage.exists(key):
                raise EntityAlreadyExistsError(str(entity.id))
            now = self._clock()
            committed = entity.model_copy(
                update={"created_at": min(entity.created_at, now), "updated_at": now}
            )
            await self._storage.save(key, committed, self.priority)
        logger.debug("Created %s %s", self.kind.value, entity.id)
        return committed

    async def read(self, entity_id: EntityId) -> Optional[E]:
        return await self._storage.load(self.key_for(entity_id), self.model)

    async def update(self, entity: E) -> E:
        """
        Commit a modified copy of a stored entity.

        The ``version``, ``created_at`` and ``updated_at`` carried by the
        argument are ignored; they are derived from the stored entity and
        the commit time.

        Raises:
            EntityNotFoundError: If the entity is not stored.
        """
        async with self._commit_lock:
            stored = await self.read(entity.id)
            if stored is None:
                raise EntityNotFoundError(str(entity.id))
            now = max(self._clock(), stored.created_at)
            committed = entity.model_copy(
                update={
                    "version": stored.version + 1,
                    "created_at": stored.created_at,
                    "updated_at": now,
                }
            )
            await self._storage.save(committed.storage_key, committed, self.priority)
        logger.debug("Updated %s %s to version %d", self.kind.value, entity.id, committed.version)
        return committed

    async def delete(self, entity_id: EntityId) -> bool:
        return await self._storage.delete(self.key_for(entity_id))

    async def read_all(self) -> List[E]:
        """All entities of the collection, most recently updated first."""
        keys = await self._storage.list_keys(self.kind.prefix)
        entities = [e for e in await self._storage.load_many(keys, self.model) if e is not None]
        entities.sort(key=lambda e: e.updated_at, reverse=True)
        return entities

    async def count(self) -> int:
        return len(await self._storage.list_keys(self.kind.prefix))

    async def exists(self, entity_id: EntityId) -> bool:
        return await self._storage.exists(self.key_for(entity_id))

    async def create_many(self, entities: Sequence[E]) -> List[E]:
        return [await self.create(entity) for entity in entities]

    async def update_many(self, entities: Sequence[E]) -> List[E]:
        return [await self.update(entity) for entity in entities]

    async def delete_many(self, entity_ids: Sequence[EntityId]) -> bool:
        """Delete every id. Returns True only if every entity was deleted."""
        return await self._storage.delete_many([self.key_for(i) for i in entity_ids])
