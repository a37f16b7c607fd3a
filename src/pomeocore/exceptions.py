# src/pomeocore/exceptions.py
"""
Custom exceptions for the PomeoCore library.

This module defines a hierarchy of custom exception classes so that callers
of the storage, repository and sync layers can tell apart configuration
problems, storage failures, missing entities and sync cycle errors.
"""

class PomeoCoreError(Exception):
    """Base class for all PomeoCore specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in PomeoCore."):
        super().__init__(message)

class ConfigError(PomeoCoreError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class StorageError(PomeoCoreError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class SaveFailed(StorageError):
    """Raised when a backend could not persist a value."""
    def __init__(self, message: str = "Save failed."):
        super().__init__(message)

class LoadFailed(StorageError):
    """Raised when a backend could not be read (e.g. unreadable storage directory)."""
    def __init__(self, message: str = "Load failed."):
        super().__init__(message)

class DeleteFailed(StorageError):
    """Raised when an existing value could not be removed from a backend."""
    def __init__(self, message: str = "Delete failed."):
        super().__init__(message)

class EncodingFailed(StorageError):
    """Raised when a value cannot be serialized to its stored form."""
    def __init__(self, message: str = "Encoding failed."):
        super().__init__(message)

class DecodingFailed(StorageError):
    """Raised when stored data cannot be decoded or validated into the requested type."""
    def __init__(self, message: str = "Decoding failed."):
        super().__init__(message)

class InsufficientSpace(StorageError):
    """Raised when a backend has no room left for a write."""
    def __init__(self, message: str = "Insufficient storage space."):
        super().__init__(message)

class InvalidData(StorageError):
    """Raised when the arguments of a storage call violate its preconditions."""
    def __init__(self, message: str = "Invalid data."):
        super().__init__(message)

class BackupFailed(StorageError):
    """Raised when a backup container could not be produced."""
    def __init__(self, message: str = "Backup failed."):
        super().__init__(message)

class RestoreFailed(StorageError):
    """Raised when a backup container could not be restored."""
    def __init__(self, message: str = "Restore failed."):
        super().__init__(message)

class RepositoryError(PomeoCoreError):
    """Base class for errors raised by entity repositories."""
    def __init__(self, message: str = "Repository error."):
        super().__init__(message)

class EntityNotFoundError(RepositoryError):
    """
    Raised when an entity expected to exist is not found in storage.
    """
    def __init__(self, entity_id: str, message: str = "Entity not found."):
        self.entity_id = entity_id
        super().__init__(f"{message} Entity ID: '{entity_id}'")

class EntityAlreadyExistsError(RepositoryError):
    """Raised when creating an entity whose identifier is already stored."""
    def __init__(self, entity_id: str, message: str = "Entity already exists."):
        self.entity_id = entity_id
        super().__init__(f"{message} Entity ID: '{entity_id}'")

class SyncError(PomeoCoreError):
    """Raised for errors in a sync cycle (e.g. a cycle already in progress)."""
    def __init__(self, message: str = "Sync error."):
        super().__init__(message)
