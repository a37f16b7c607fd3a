# src/pomeocore/storage/base.py
"""
Abstract Base Class for key/value storage backends.

A backend persists stored text under string keys. Concrete backends only
implement the raw text operations; typed ``save``/``load`` and the versioned
``backup``/``restore`` are built on top of them here, so every backend
encodes values and formats backups identically.
"""

import abc
import logging
from typing import Any, List, Optional

from ..exceptions import BackupFailed, RestoreFailed, StorageError
from . import codec
from .backup import BackupContainer, BackupEntry

logger = logging.getLogger(__name__)


class BaseStorageBackend(abc.ABC):
    """
    Abstract Base Class for key/value persistence.

    Errors: encoding and decoding failures raise ``EncodingFailed`` /
    ``DecodingFailed``; deleting a missing key returns False; a store that
    cannot be listed or measured raises ``LoadFailed``.
    """

    #: Short name recorded in backups and log messages.
    name: str = "backend"

    @abc.abstractmethod
    async def initialize(self) -> None:
        """Open connections or create directories. Safe to call twice."""
        pass

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources held by the backend."""
        pass

    @abc.abstractmethod
    async def save_raw(self, key: str, text: str) -> None:
        """Store already-encoded text under ``key``, replacing any previous value."""
        pass

    @abc.abstractmethod
    async def load_raw(self, key: str) -> Optional[str]:
        """Return the stored text for ``key``, or None if absent."""
        pass

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove ``key``.

        Returns:
            True if the key existed and was removed, False if it was absent.
        """
        pass

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abc.abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """
        List stored keys starting with ``prefix``, sorted.

        Raises:
            LoadFailed: If the underlying store cannot be read.
        """
        pass

    @abc.abstractmethod
    async def clear(self) -> None:
        """Remove every key. Clearing an empty backend is a no-op."""
        pass

    @abc.abstractmethod
    async def storage_size_bytes(self) -> int:
        """Aggregate size of the stored values in bytes."""
        pass

    # --- Typed access ---

    async def save(self, key: str, value: Any) -> int:
        """
        Encode and store ``value``.

        Returns:
            The encoded size in bytes.
        """
        text = codec.encode(value)
        await self.save_raw(key, text)
        return codec.encoded_size(text)

    async def load(self, key: str, model: Any = None) -> Any:
        """
        Load and decode the value stored under ``key``.

        Args:
            key: Storage key.
            model: Optional type to validate the value into.

        Returns:
            The decoded value, or None if the key is absent.
        """
        text = await self.load_raw(key)
        if text is None:
            return None
        return codec.decode(text, model)

    # --- Backup / restore ---

    async def backup_container(self) -> BackupContainer:
        """Collect every key and its stored text into a versioned container."""
        try:
            entries = []
            for key in await self.list_keys():
                text = await self.load_raw(key)
                if text is not None:
                    entries.append(BackupEntry(key=key, value=text))
            container = BackupContainer(source=self.name, entries=entries)
        except StorageError as e:
            logger.error("Backup of %s backend failed: %s", self.name, e)
            raise BackupFailed(f"Backup of {self.name} backend failed: {e}")
        logger.info("Backed up %d entries from %s backend", len(entries), self.name)
        return container

    async def backup(self) -> bytes:
        """Serialize every key and its stored text into a versioned container."""
        return (await self.backup_container()).to_bytes()

    async def restore(self, data: bytes) -> int:
        """
        Replace the backend contents with a backup container.

        The container is validated before anything is cleared.

        Returns:
            Number of entries restored.

        Raises:
            RestoreFailed: If the container is invalid or a write fails.
        """
        return await self.restore_container(BackupContainer.from_bytes(data))

    async def restore_container(self, container: BackupContainer) -> int:
        """Replace the backend contents with an already parsed container."""
        try:
            await self.clear()
            for entry in container.entries:
                await self.save_raw(entry.key, entry.value)
        except StorageError as e:
            logger.error("Restore of %s backend failed: %s", self.name, e)
            raise RestoreFailed(f"Restore of {self.name} backend failed: {e}")
        logger.info("Restored %d entries into %s backend", len(container.entries), self.name)
        return len(container.entries)

    async def __aenter__(self) -> "BaseStorageBackend":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
