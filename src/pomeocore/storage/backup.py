# src/pomeocore/storage/backup.py
"""
Versioned backup container formats.

A backend backup is a JSON document listing every key with its stored text,
tagged with a format name and version so that future readers can detect
and refuse data they do not understand::

    {
      "format": "pomeocore-backup",
      "format_version": 1,
      "created_at": "2026-01-01T12:00:00Z",
      "source": "file",
      "entries": [{"key": "task_...", "value": "{...}"}]
    }

The tiered storage manager wraps one container per backend in a
``pomeocore-manager-backup`` document.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import RestoreFailed

logger = logging.getLogger(__name__)

BACKUP_FORMAT = "pomeocore-backup"
MANAGER_BACKUP_FORMAT = "pomeocore-manager-backup"
BACKUP_FORMAT_VERSION = 1


def _check_version(v: int) -> int:
    if v != BACKUP_FORMAT_VERSION:
        raise ValueError(
            f"unsupported format_version {v} (this build reads version {BACKUP_FORMAT_VERSION})"
        )
    return v


class BackupEntry(BaseModel):
    """One key and its stored text, byte-for-byte."""

    key: str = Field(min_length=1)
    value: str


class BackupContainer(BaseModel):
    """Backup of a single backend."""

    format: Literal["pomeocore-backup"] = BACKUP_FORMAT
    format_version: int = BACKUP_FORMAT_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = ""
    entries: list[BackupEntry] = Field(default_factory=list)

    @field_validator("format_version")
    @classmethod
    def check_format_version(cls, v: int) -> int:
        return _check_version(v)

    def to_bytes(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "BackupContainer":
        """Parse a container, raising RestoreFailed on any format problem."""
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            logger.error("Rejected backup container: %s", e)
            raise RestoreFailed(f"Invalid backup container: {e}")


class ManagerBackup(BaseModel):
    """Backup of a tiered storage manager: one container per backend."""

    format: Literal["pomeocore-manager-backup"] = MANAGER_BACKUP_FORMAT
    format_version: int = BACKUP_FORMAT_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    strategy: str
    fast: BackupContainer
    slow: BackupContainer

    @field_validator("format_version")
    @classmethod
    def check_format_version(cls, v: int) -> int:
        return _check_version(v)

    def to_bytes(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "ManagerBackup":
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            logger.error("Rejected manager backup container: %s", e)
            raise RestoreFailed(f"Invalid manager backup container: {e}")
