# src/pomeocore/models.py
"""
Core data models for the PomeoCore library.

Every stored domain object (task, project, epic, tag, attachment, checklist
item) is an :class:`EntityRecord`: it carries a globally unique ``id``, a
``version`` counter and UTC ``created_at`` / ``updated_at`` timestamps, plus
type-specific fields. Records are addressed in storage by keys of the form
``"<prefix>_<uuid>"`` where the prefix names the entity kind, so listing keys
by prefix yields exactly one collection.

Models do not mutate themselves. Changes are made with ``model_copy`` and
committed through a repository, which owns ``version`` and ``updated_at``.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InvalidData


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class EntityKind(str, Enum):
    """
    Enumeration of stored entity collections.
    The value doubles as the storage key prefix.
    """
    TASK = "task"
    PROJECT = "project"
    EPIC = "epic"
    TAG = "tag"
    ATTACHMENT = "attachment"
    CHECKLIST = "checklist"

    @property
    def prefix(self) -> str:
        """Key prefix used to list this collection, e.g. ``"task_"``."""
        return f"{self.value}_"

    def key_for(self, entity_id: uuid.UUID | str) -> str:
        """Build the storage key of one entity of this kind."""
        return f"{self.prefix}{entity_id}"


def parse_storage_key(key: str) -> Tuple[EntityKind, uuid.UUID]:
    """
    Split a storage key into its entity kind and identifier.

    Raises:
        InvalidData: If the key has no known prefix or no valid UUID.
    """
    prefix, sep, raw_id = key.partition("_")
    if not sep:
        raise InvalidData(f"Malformed storage key '{key}': missing '_' separator")
    try:
        kind = EntityKind(prefix)
    except ValueError:
        raise InvalidData(f"Malformed storage key '{key}': unknown prefix '{prefix}'")
    try:
        return kind, uuid.UUID(raw_id)
    except ValueError:
        raise InvalidData(f"Malformed storage key '{key}': '{raw_id}' is not a UUID")


class EntityRecord(BaseModel):
    """
    Shape shared by every stored domain object.

    Attributes:
        id: Globally unique identifier.
        version: Mutation counter, starts at 1 and grows by exactly one per
            committed update.
        created_at: Creation time (UTC), never changed after creation.
        updated_at: Time of the last committed mutation (UTC), never earlier
            than ``created_at``.
    """
    kind: ClassVar[EntityKind]
    immutable_fields: ClassVar[frozenset] = frozenset({"id", "version", "created_at"})

    model_config = ConfigDict(extra="ignore")

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Unique identifier.")
    version: int = Field(default=1, ge=1, description="Committed mutation counter.")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp (UTC).")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp (UTC).")

    @field_validator("*", mode="after")
    @classmethod
    def ensure_utc_datetimes(cls, v: Any) -> Any:
        """Make every datetime field timezone-aware UTC (naive values are assumed UTC)."""
        if isinstance(v, datetime):
            if v.tzinfo is None:
                return v.replace(tzinfo=timezone.utc)
            return v.astimezone(timezone.utc)
        return v

    @model_validator(mode="after")
    def check_timestamps(self) -> "EntityRecord":
        if self.updated_at < self.created_at:
            raise ValueError(
                f"updated_at ({self.updated_at.isoformat()}) is earlier than "
                f"created_at ({self.created_at.isoformat()})"
            )
        return self

    @property
    def storage_key(self) -> str:
        """Storage key of this entity, e.g. ``"task_<uuid>"``."""
        return self.kind.key_for(self.id)

    @classmethod
    def mutable_fields(cls) -> List[str]:
        """Fields a remote copy may overwrite during reconciliation."""
        return [name for name in cls.model_fields if name not in cls.immutable_fields]


# --- Enumerations used by entity fields ---

class TaskPriority(IntEnum):
    """Task priority; ordered so that comparisons rank urgency."""
    LOW = 0
    NORMAL = 1
    HIGH = 2
    URGENT = 3


class TaskStatus(str, Enum):
    """Workflow state of a task."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    REVIEW = "review"
    COMPLETED = "completed"


class RepeatType(str, Enum):
    """Recurrence rule of a repeating task."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class AttachmentType(str, Enum):
    """Broad media type of an attachment."""
    IMAGE = "image"
    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"


# --- Entities ---

class Task(EntityRecord):
    """
    A unit of work, optionally scheduled, repeating and grouped into a
    project or epic.
    """
    kind: ClassVar[EntityKind] = EntityKind.TASK

    title: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    reminder_date: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.NORMAL
    status: TaskStatus = TaskStatus.TODO

    location_name: Optional[str] = None
    location_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    location_longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    repeat_type: RepeatType = RepeatType.NONE
    repeat_interval: int = Field(default=1, ge=1)
    repeat_end_date: Optional[datetime] = None

    parent_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None
    epic_id: Optional[uuid.UUID] = None
    tag_ids: List[uuid.UUID] = Field(default_factory=list)
    dependency_ids: List[uuid.UUID] = Field(default_factory=list)
    checklist_item_ids: List[uuid.UUID] = Field(default_factory=list)
    attachment_ids: List[uuid.UUID] = Field(default_factory=list)

    notes: Optional[str] = None
    is_completed: bool = False
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    assignee: Optional[str] = None
    completed_at: Optional[datetime] = None

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """True if the task has a due date in the past and is not completed."""
        if self.due_date is None or self.is_completed:
            return False
        return self.due_date < (now or utc_now())


class Project(EntityRecord):
    """A named group of tasks, optionally part of an epic."""
    kind: ClassVar[EntityKind] = EntityKind.PROJECT

    name: str
    description: Optional[str] = None
    color: str = "blue"
    epic_id: Optional[uuid.UUID] = None
    is_archived: bool = False


class Epic(EntityRecord):
    """A long-running goal spanning several projects."""
    kind: ClassVar[EntityKind] = EntityKind.EPIC

    name: str
    description: Optional[str] = None
    color: str = "purple"
    is_archived: bool = False


class Tag(EntityRecord):
    kind: ClassVar[EntityKind] = EntityKind.TAG

    name: str
    color: str = "gray"


class Attachment(EntityRecord):
    kind: ClassVar[EntityKind] = EntityKind.ATTACHMENT

    file_name: str
    file_path: str
    file_size: int = Field(default=0, ge=0)
    type: AttachmentType = AttachmentType.OTHER


class ChecklistItem(EntityRecord):
    kind: ClassVar[EntityKind] = EntityKind.CHECKLIST

    title: str
    is_completed: bool = False
    completed_at: Optional[datetime] = None


ENTITY_MODELS: Dict[EntityKind, Type[EntityRecord]] = {
    EntityKind.TASK: Task,
    EntityKind.PROJECT: Project,
    EntityKind.EPIC: Epic,
    EntityKind.TAG: Tag,
    EntityKind.ATTACHMENT: Attachment,
    EntityKind.CHECKLIST: ChecklistItem,
}


def model_for_kind(kind: EntityKind | str) -> Type[EntityRecord]:
    """Return the entity model class stored under ``kind``."""
    return ENTITY_MODELS[EntityKind(kind)]
