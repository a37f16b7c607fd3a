# src/pomeocore/repositories/__init__.py
"""
Entity repositories: typed CRUD over the tiered storage manager, one
repository per entity collection.
"""

from typing import Dict

from ..models import ENTITY_MODELS, EntityKind
from ..storage.manager import TieredStorageManager
from .entity import EntityRepository


def create_repositories(storage: TieredStorageManager) -> Dict[EntityKind, EntityRepository]:
    """Build one repository per entity kind, all sharing ``storage``."""
    return {kind: EntityRepository(storage, model) for kind, model in ENTITY_MODELS.items()}


__all__ = [
    "EntityRepository",
    "create_repositories",
]
