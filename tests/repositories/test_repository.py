# tests/repositories/test_repository.py
"""
Tests for EntityRepository.

Covers the commit invariants (version bump, preserved created_at, monotonic
updated_at), not-found / already-exists errors, listing by collection and
the batch helpers.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from pomeocore.exceptions import EntityAlreadyExistsError, EntityNotFoundError, RepositoryError
from pomeocore.models import EntityKind, Epic, Project, Task, TaskStatus
from pomeocore.repositories import EntityRepository, create_repositories
from pomeocore.storage.manager import StoragePriority


@pytest.fixture
def tasks(manager, utc_clock):
    return EntityRepository(manager, Task, clock=utc_clock)


# =============================================================================
# CREATE / READ
# =============================================================================


class TestCreateRead:
    @pytest.mark.asyncio
    async def test_create_then_read(self, tasks, utc_clock):
        task = Task(title="Write tests")
        created = await tasks.create(task)

        assert created.id == task.id
        assert created.version == 1
        assert created.updated_at == utc_clock.now

        loaded = await tasks.read(task.id)
        assert loaded == created

    @pytest.mark.asyncio
    async def test_read_accepts_string_id(self, tasks):
        created = await tasks.create(Task(title="A"))
        assert await tasks.read(str(created.id)) == created

    @pytest.mark.asyncio
    async def test_read_missing(self, tasks):
        assert await tasks.read(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_create_duplicate(self, tasks):
        task = Task(title="A")
        await tasks.create(task)
        with pytest.raises(EntityAlreadyExistsError) as exc_info:
            await tasks.create(task)
        assert exc_info.value.entity_id == str(task.id)
        assert isinstance(exc_info.value, RepositoryError)

    @pytest.mark.asyncio
    async def test_create_keeps_earlier_created_at(self, tasks, utc_clock):
        created_at = utc_clock.now - timedelta(days=3)
        task = Task(title="Imported", created_at=created_at, updated_at=created_at)
        created = await tasks.create(task)
        assert created.created_at == created_at
        assert created.updated_at == utc_clock.now

    @pytest.mark.asyncio
    async def test_create_clamps_future_created_at(self, tasks, utc_clock):
        future = utc_clock.now + timedelta(days=1)
        created = await tasks.create(Task(title="Skewed", created_at=future, updated_at=future))
        assert created.created_at == utc_clock.now
        assert created.updated_at >= created.created_at

    @pytest.mark.asyncio
    async def test_key_uses_collection_prefix(self, tasks, manager):
        created = await tasks.create(Task(title="A"))
        assert await manager.list_keys("task_") == [f"task_{created.id}"]

    @pytest.mark.asyncio
    async def test_high_priority_repository_writes_fast(self, manager):
        repo = EntityRepository(manager, Task, priority=StoragePriority.HIGH)
        created = await repo.create(Task(title="T", notes="n" * 3000))
        assert await manager.fast.exists(created.storage_key)


# =============================================================================
# UPDATE
# =============================================================================


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_bumps_version(self, tasks, utc_clock):
        created = await tasks.create(Task(title="Draft"))
        utc_clock.advance(60)

        updated = await tasks.update(created.model_copy(update={"title": "Final"}))
        assert updated.title == "Final"
        assert updated.version == 2
        assert updated.created_at == created.created_at
        assert updated.updated_at == utc_clock.now

        loaded = await tasks.read(created.id)
        assert loaded.version == 2
        assert loaded.title == "Final"

    @pytest.mark.asyncio
    async def test_caller_version_is_ignored(self, tasks):
        created = await tasks.create(Task(title="A"))
        tampered = created.model_copy(update={"version": 40, "title": "B"})
        updated = await tasks.update(tampered)
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_caller_created_at_is_ignored(self, tasks):
        created = await tasks.create(Task(title="A"))
        earlier = created.created_at - timedelta(days=10)
        updated = await tasks.update(created.model_copy(update={"created_at": earlier}))
        assert updated.created_at == created.created_at

    @pytest.mark.asyncio
    async def test_versions_increase_by_one(self, tasks, utc_clock):
        current = await tasks.create(Task(title="A"))
        for i in range(5):
            utc_clock.advance(1)
            current = await tasks.update(current.model_copy(update={"title": f"A{i}"}))
        assert current.version == 6

    @pytest.mark.asyncio
    async def test_updated_at_never_precedes_created_at(self, tasks, utc_clock):
        created = await tasks.create(Task(title="A"))
        utc_clock.advance(-3600)
        updated = await tasks.update(created.model_copy(update={"title": "B"}))
        assert updated.updated_at >= updated.created_at

    @pytest.mark.asyncio
    async def test_update_missing(self, tasks):
        task = Task(title="Ghost")
        with pytest.raises(EntityNotFoundError) as exc_info:
            await tasks.update(task)
        assert exc_info.value.entity_id == str(task.id)

    @pytest.mark.asyncio
    async def test_update_status(self, tasks):
        created = await tasks.create(Task(title="A"))
        updated = await tasks.update(
            created.model_copy(update={"status": TaskStatus.COMPLETED, "is_completed": True})
        )
        assert (await tasks.read(created.id)).status == TaskStatus.COMPLETED
        assert updated.is_completed is True


# =============================================================================
# DELETE / LIST / BATCH
# =============================================================================


class TestDeleteAndList:
    @pytest.mark.asyncio
    async def test_delete(self, tasks):
        created = await tasks.create(Task(title="A"))
        assert await tasks.delete(created.id) is True
        assert await tasks.delete(created.id) is False
        assert await tasks.exists(created.id) is False

    @pytest.mark.asyncio
    async def test_read_all_newest_first(self, tasks, utc_clock):
        first = await tasks.create(Task(title="first"))
        utc_clock.advance(10)
        second = await tasks.create(Task(title="second"))
        utc_clock.advance(10)
        await tasks.update(first.model_copy(update={"title": "first, edited"}))

        titles = [t.title for t in await tasks.read_all()]
        assert titles == ["first, edited", "second"]
        assert second.id in {t.id for t in await tasks.read_all()}

    @pytest.mark.asyncio
    async def test_collections_are_separate(self, manager, utc_clock):
        repos = create_repositories(manager)
        await repos[EntityKind.TASK].create(Task(title="T"))
        await repos[EntityKind.PROJECT].create(Project(name="P"))
        await repos[EntityKind.EPIC].create(Epic(name="E"))

        assert await repos[EntityKind.TASK].count() == 1
        assert [p.name for p in await repos[EntityKind.PROJECT].read_all()] == ["P"]
        assert await repos[EntityKind.TAG].read_all() == []

    @pytest.mark.asyncio
    async def test_repositories_for_every_kind(self, manager):
        repos = create_repositories(manager)
        assert set(repos) == set(EntityKind)
        assert repos[EntityKind.EPIC].model is Epic
        assert repos[EntityKind.EPIC].kind == EntityKind.EPIC

    @pytest.mark.asyncio
    async def test_batch_helpers(self, tasks):
        created = await tasks.create_many([Task(title="a"), Task(title="b")])
        assert await tasks.count() == 2

        updated = await tasks.update_many([t.model_copy(update={"notes": "x"}) for t in created])
        assert all(t.version == 2 for t in updated)

        assert await tasks.delete_many([t.id for t in created]) is True
        assert await tasks.count() == 0

    @pytest.mark.asyncio
    async def test_read_all_survives_cache_clear(self, tasks, manager):
        await tasks.create(Task(title="persisted", due_date=datetime(2026, 2, 1, tzinfo=timezone.utc)))
        manager.cache.clear()
        [task] = await tasks.read_all()
        assert task.title == "persisted"
        assert task.due_date.tzinfo is not None
