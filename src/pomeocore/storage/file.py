# src/pomeocore/storage/file.py
"""
Slow backend: one JSON file per key under a dedicated directory.

Each value is written to ``<directory>/<key><extension>`` (``.json`` by
default) as indented, key-sorted JSON with ISO-8601 dates, so the store can
be inspected and diffed with ordinary tools. Writes go to a temporary file
that is then renamed over the target. The directory is created on
initialization if it does not exist. File operations use aiofiles.
"""

import logging
import pathlib
import re
from typing import List, Optional

import aiofiles
import aiofiles.os as aios

from ..config.models import FileBackendConfig
from ..exceptions import DeleteFailed, InvalidData, LoadFailed, SaveFailed, StorageError
from .base import BaseStorageBackend

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")
_TMP_SUFFIX = ".tmp"


class FileSystemBackend(BaseStorageBackend):
    """
    Stores every key as a separate file in one directory.

    Only files carrying the configured extension count as keys; hidden
    files, temporary files and anything else in the directory are ignored.
    """

    name = "file"

    def __init__(self, config: Optional[FileBackendConfig] = None) -> None:
        self._config = config or FileBackendConfig()
        self._storage_dir = pathlib.Path(self._config.path)
        self._file_extension = self._config.file_extension

    @property
    def storage_dir(self) -> pathlib.Path:
        return self._storage_dir

    async def initialize(self) -> None:
        """
        Create the storage directory if it does not exist.

        Raises:
            StorageError: If the directory cannot be created.
        """
        try:
            await aios.makedirs(self._storage_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create file storage directory {self._storage_dir}: {e}")
            raise StorageError(f"Could not create storage directory {self._storage_dir}: {e}")
        logger.info(f"File storage initialized at: {self._storage_dir.resolve()}")

    async def close(self) -> None:
        pass

    def _get_path(self, key: str) -> Optional[pathlib.Path]:
        """Constructs the file path for a key, or None if the key is not a plain file stem."""
        if not _SAFE_KEY.match(key):
            return None
        return self._storage_dir / f"{key}{self._file_extension}"

    async def save_raw(self, key: str, text: str) -> None:
        path = self._get_path(key)
        if path is None:
            raise InvalidData(f"Key '{key}' cannot be used as a file name")
        tmp_path = path.with_name(path.name + _TMP_SUFFIX)
        try:
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write(text)
            await aios.replace(tmp_path, path)
            logger.debug(f"Saved '{key}' to {path}")
        except OSError as e:
            logger.error(f"Error writing '{key}' to file {path}: {e}")
            raise SaveFailed(f"Failed to write file for '{key}': {e}")

    async def load_raw(self, key: str) -> Optional[str]:
        path = self._get_path(key)
        if path is None:
            return None
        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading '{key}' from file {path}: {e}")
            raise LoadFailed(f"Failed to read file for '{key}': {e}")

    async def delete(self, key: str) -> bool:
        path = self._get_path(key)
        if path is None:
            return False
        try:
            await aios.remove(path)
        except FileNotFoundError:
            logger.debug(f"Delete of missing key '{key}' ignored")
            return False
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")
            raise DeleteFailed(f"Failed to delete file for '{key}': {e}")
        logger.debug(f"Deleted '{key}' ({path})")
        return True

    async def exists(self, key: str) -> bool:
        path = self._get_path(key)
        return path is not None and await aios.path.isfile(path)

    async def _list_files(self) -> List[str]:
        try:
            names = await aios.listdir(self._storage_dir)
        except OSError as e:
            logger.error(f"Cannot list file storage directory {self._storage_dir}: {e}")
            raise LoadFailed(f"Failed to list storage directory {self._storage_dir}: {e}")
        return [
            name for name in names
            if name.endswith(self._file_extension) and not name.startswith(".")
        ]

    async def list_keys(self, prefix: str = "") -> List[str]:
        stems = [name[: -len(self._file_extension)] for name in await self._list_files()]
        return sorted(stem for stem in stems if stem.startswith(prefix))

    async def clear(self) -> None:
        removed = 0
        for name in await self._list_files():
            try:
                await aios.remove(self._storage_dir / name)
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Error deleting file {name} during clear: {e}")
                raise DeleteFailed(f"Failed to clear file storage: {e}")
        if removed:
            logger.debug(f"Cleared {removed} files from {self._storage_dir}")

    async def storage_size_bytes(self) -> int:
        total = 0
        for name in await self._list_files():
            try:
                total += await aios.path.getsize(self._storage_dir / name)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise LoadFailed(f"Failed to measure file storage: {e}")
        return total


def create_file_backend(config: Optional[FileBackendConfig] = None) -> FileSystemBackend:
    """Create a FileSystemBackend instance from config."""
    return FileSystemBackend(config)
