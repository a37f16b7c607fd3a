# tests/conftest.py
"""
Shared fixtures for PomeoCore tests.

Storage fixtures use an in-memory SQLite fast backend and a file backend
rooted in pytest's ``tmp_path``, with the janitor and rebalancer disabled so
tests drive cleanup and rebalancing explicitly.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from pomeocore.config.models import (
    CacheConfig,
    FastBackendConfig,
    FileBackendConfig,
    TieredStorageConfig,
)
from pomeocore.storage.fast import SqliteFastBackend
from pomeocore.storage.file import FileSystemBackend
from pomeocore.storage.manager import TieredStorageManager


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Manually advanced UTC wall clock for repository commit timestamps."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def utc_clock() -> FakeUtcClock:
    return FakeUtcClock()


@pytest.fixture
def storage_config(tmp_path) -> TieredStorageConfig:
    """Storage config isolated in tmp_path with background tasks off."""
    return TieredStorageConfig(
        enable_rebalancer=False,
        cache=CacheConfig(enable_janitor=False),
        fast=FastBackendConfig(db_path=":memory:"),
        file=FileBackendConfig(path=str(tmp_path / "file_storage")),
    )


@pytest_asyncio.fixture
async def fast_backend() -> AsyncGenerator[SqliteFastBackend, None]:
    backend = SqliteFastBackend(FastBackendConfig(db_path=":memory:"))
    await backend.initialize()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def file_backend(tmp_path) -> AsyncGenerator[FileSystemBackend, None]:
    backend = FileSystemBackend(FileBackendConfig(path=str(tmp_path / "files")))
    await backend.initialize()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def manager(storage_config) -> AsyncGenerator[TieredStorageManager, None]:
    storage = TieredStorageManager(storage_config)
    await storage.initialize()
    yield storage
    await storage.close()
