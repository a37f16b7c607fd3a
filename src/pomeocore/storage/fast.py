# src/pomeocore/storage/fast.py
"""
Fast backend: an SQLite key/value table for small or high-priority records.

The fast backend keeps each value's stored text in one row of a single
table. It has no capacity limit of its own; the tiered storage manager
decides what goes here and migrates entries out when the table grows past
its quota.

Example::

    from pomeocore.storage.fast import SqliteFastBackend
    from pomeocore.config.models import FastBackendConfig

    backend = SqliteFastBackend(FastBackendConfig(db_path=":memory:"))
    await backend.initialize()
    await backend.save("tag_6f1c...", tag)
    data = await backend.load("tag_6f1c...", Tag)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

import aiosqlite

from ..config.models import FastBackendConfig
from ..exceptions import DeleteFailed, LoadFailed, SaveFailed, StorageError
from . import codec
from .base import BaseStorageBackend

logger = logging.getLogger(__name__)


class SqliteFastBackend(BaseStorageBackend):
    """Key/value backend on a single SQLite table via aiosqlite.

    Args:
        config: Backend configuration.
    """

    name = "fast"

    def __init__(self, config: FastBackendConfig | None = None) -> None:
        self._config = config or FastBackendConfig()
        self._table = self._config.table_name
        self._db: aiosqlite.Connection | None = None
        logger.debug("SqliteFastBackend created (db=%s).", self._config.db_path)

    @property
    def db_path(self) -> str:
        return self._config.db_path

    async def initialize(self) -> None:
        """Open the SQLite database and create the key/value table."""
        if self._db is not None:
            return

        db_path = self._config.db_path
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(db_path)
            await self._db.execute(f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL DEFAULT 0,
                    updated_at REAL NOT NULL
                )
            """)
            await self._db.commit()
        except (aiosqlite.Error, OSError) as e:
            logger.error("Failed to open fast backend at %s: %s", db_path, e)
            raise StorageError(f"Failed to open fast backend at {db_path}: {e}")
        logger.info("SqliteFastBackend initialized at %s.", db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("SqliteFastBackend closed.")

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Fast backend is not initialized; call initialize() first.")
        return self._db

    async def save_raw(self, key: str, text: str) -> None:
        db = self._conn()
        try:
            await db.execute(
                f"INSERT OR REPLACE INTO {self._table} (key, value, size_bytes, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (key, text, codec.encoded_size(text), time.time()),
            )
            await db.commit()
        except aiosqlite.Error as e:
            logger.error("Fast backend failed to save '%s': %s", key, e)
            raise SaveFailed(f"Failed to save '{key}' to fast backend: {e}")

    async def load_raw(self, key: str) -> str | None:
        db = self._conn()
        try:
            async with db.execute(
                f"SELECT value FROM {self._table} WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error("Fast backend failed to load '%s': %s", key, e)
            raise LoadFailed(f"Failed to load '{key}' from fast backend: {e}")
        return row[0] if row else None

    async def delete(self, key: str) -> bool:
        db = self._conn()
        try:
            cursor = await db.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))
            await db.commit()
        except aiosqlite.Error as e:
            logger.error("Fast backend failed to delete '%s': %s", key, e)
            raise DeleteFailed(f"Failed to delete '{key}' from fast backend: {e}")
        return cursor.rowcount > 0

    async def exists(self, key: str) -> bool:
        db = self._conn()
        try:
            async with db.execute(
                f"SELECT 1 FROM {self._table} WHERE key = ?", (key,)
            ) as cursor:
                return await cursor.fetchone() is not None
        except aiosqlite.Error as e:
            raise LoadFailed(f"Failed to query '{key}' in fast backend: {e}")

    async def list_keys(self, prefix: str = "") -> list[str]:
        db = self._conn()
        # substr() rather than LIKE: '_' is a LIKE wildcard and appears in every prefix.
        try:
            async with db.execute(
                f"SELECT key FROM {self._table} WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error("Fast backend failed to list keys: %s", e)
            raise LoadFailed(f"Failed to list keys in fast backend: {e}")
        return [row[0] for row in rows]

    async def clear(self) -> None:
        db = self._conn()
        try:
            cursor = await db.execute(f"DELETE FROM {self._table}")
            await db.commit()
        except aiosqlite.Error as e:
            raise DeleteFailed(f"Failed to clear fast backend: {e}")
        if cursor.rowcount:
            logger.debug("Cleared %d entries from fast backend", cursor.rowcount)

    async def storage_size_bytes(self) -> int:
        db = self._conn()
        try:
            async with db.execute(
                f"SELECT COALESCE(SUM(size_bytes), 0) FROM {self._table}"
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise LoadFailed(f"Failed to measure fast backend: {e}")
        return int(row[0]) if row else 0


def create_fast_backend(config: FastBackendConfig | None = None) -> SqliteFastBackend:
    """Create a SqliteFastBackend instance from config."""
    return SqliteFastBackend(config)


__all__ = [
    "SqliteFastBackend",
    "create_fast_backend",
]
