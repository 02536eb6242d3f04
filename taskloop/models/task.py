"""Domain models for the task lifecycle engine."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    """Task board column."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskPriority(str, Enum):
    """Task priority enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskCategory(str, Enum):
    """Fixed set of task categories."""
    WORK = "work"
    PERSONAL = "personal"
    STUDY = "study"
    SHOPPING = "shopping"
    HEALTH = "health"
    OTHER = "other"


class Recurrence(str, Enum):
    """Recurrence policy of a task."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


PRIORITY_RANK = {
    TaskPriority.LOW.value: 1,
    TaskPriority.MEDIUM.value: 2,
    TaskPriority.HIGH.value: 3,
}

TITLE_MAX_LENGTH = 100


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive local wall-clock time."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True
        validate_default = True


class TaskLink(CamelModel):
    """A link attached to a task."""
    url: str = Field(..., min_length=1, description="Link target")
    title: str = Field(default="", description="Link label")


class Task(CamelModel):
    """Task domain model."""

    id: int = Field(..., ge=0, description="Unique task identifier")
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, description="Task title")
    notes: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("notes", "description"),
        description="Free-form task notes",
    )
    tags: List[str] = Field(default_factory=list, description="Task tags in display order")
    category: TaskCategory = Field(default=TaskCategory.OTHER, description="Task category")
    priority: TaskPriority = Field(..., description="Task priority")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Task status")
    completed: bool = Field(default=False, description="Whether the task is completed")

    created_at: datetime = Field(..., description="Task creation timestamp")
    due_date: Optional[datetime] = Field(None, description="User-set target date")
    last_completed: Optional[datetime] = Field(None, description="Last completion of a recurring task")
    next_due: Optional[datetime] = Field(None, description="Next occurrence of a recurring task")
    reminder_time: Optional[datetime] = Field(None, description="Reminder timestamp")
    reminder_enabled: bool = Field(default=False, description="Whether the reminder is active")

    recurrence: Recurrence = Field(default=Recurrence.NONE, description="Recurrence policy")
    recurrence_interval: Optional[str] = Field(
        None, description='Custom interval such as "3", "2 weeks" or "1 month"'
    )

    time_spent: int = Field(default=0, ge=0, description="Tracked time in seconds")
    xp_earned: int = Field(default=0, ge=0, description="Accumulated experience points")

    attachment_url: Optional[str] = Field(None, description="Attachment location")
    attachment_name: Optional[str] = Field(None, description="Attachment display name")
    links: List[TaskLink] = Field(default_factory=list, description="Related links")

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        seen = []
        for tag in value:
            tag = str(tag).strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @field_validator(
        "created_at", "due_date", "last_completed", "next_due", "reminder_time"
    )
    @classmethod
    def localize(cls, value):
        return to_local_naive(value)

    @model_validator(mode="after")
    def check_recurrence_policy(self):
        if self.recurrence == Recurrence.CUSTOM:
            if not self.recurrence_interval or not self.recurrence_interval.strip():
                raise ValueError("Custom recurrence requires a recurrence interval")
        return self

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE


class DeletedTask(Task):
    """A task in the trash bin."""

    deleted_at: datetime = Field(..., description="Deletion timestamp")

    @field_validator("deleted_at")
    @classmethod
    def localize_deleted_at(cls, value):
        return to_local_naive(value)

    @classmethod
    def from_task(cls, task: Task, deleted_at: datetime) -> "DeletedTask":
        """Wrap an active task as a trash entry."""
        return cls.model_validate({**task.model_dump(), "deleted_at": deleted_at})

    def to_task(self) -> Task:
        """Promote back to an active task, dropping the deletion timestamp."""
        return Task.model_validate(self.model_dump(exclude={"deleted_at"}))
