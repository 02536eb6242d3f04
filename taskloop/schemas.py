"""API request/response schemas for the task lifecycle engine."""

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, Field

from .models.task import (
    TITLE_MAX_LENGTH,
    CamelModel,
    Recurrence,
    Task,
    TaskCategory,
    TaskLink,
    TaskPriority,
    TaskStatus,
)


# Task-related schemas
class TaskCreate(CamelModel):
    """Schema for creating a new task."""
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, description="Task title")
    notes: Optional[str] = Field(
        None, validation_alias=AliasChoices("notes", "description"), description="Task notes"
    )
    priority: TaskPriority = Field(..., description="Task priority")
    category: TaskCategory = Field(default=TaskCategory.OTHER, description="Task category")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Task status")
    tags: List[str] = Field(default_factory=list, description="Task tags")
    due_date: Optional[datetime] = Field(None, description="Due date")
    reminder_time: Optional[datetime] = Field(None, description="Reminder timestamp")
    reminder_enabled: bool = Field(default=False, description="Whether the reminder is active")
    recurrence: Recurrence = Field(default=Recurrence.NONE, description="Recurrence policy")
    recurrence_interval: Optional[str] = Field(None, description="Custom recurrence interval")
    attachment_url: Optional[str] = Field(None, description="Attachment location")
    attachment_name: Optional[str] = Field(None, description="Attachment display name")
    links: List[TaskLink] = Field(default_factory=list, description="Related links")


class TaskUpdate(CamelModel):
    """Schema for patching an existing task; only explicitly sent fields apply."""
    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH, description="Task title")
    notes: Optional[str] = Field(
        None, validation_alias=AliasChoices("notes", "description"), description="Task notes"
    )
    priority: Optional[TaskPriority] = Field(None, description="Task priority")
    category: Optional[TaskCategory] = Field(None, description="Task category")
    status: Optional[TaskStatus] = Field(None, description="Task status")
    completed: Optional[bool] = Field(None, description="Completion flag")
    tags: Optional[List[str]] = Field(None, description="Task tags")
    due_date: Optional[datetime] = Field(None, description="Due date")
    reminder_time: Optional[datetime] = Field(None, description="Reminder timestamp")
    reminder_enabled: Optional[bool] = Field(None, description="Whether the reminder is active")
    recurrence: Optional[Recurrence] = Field(None, description="Recurrence policy")
    recurrence_interval: Optional[str] = Field(None, description="Custom recurrence interval")
    last_completed: Optional[datetime] = Field(None, description="Last completion timestamp")
    next_due: Optional[datetime] = Field(None, description="Next occurrence")
    time_spent: Optional[int] = Field(None, ge=0, description="Tracked time in seconds")
    xp_earned: Optional[int] = Field(None, ge=0, description="Accumulated experience points")
    attachment_url: Optional[str] = Field(None, description="Attachment location")
    attachment_name: Optional[str] = Field(None, description="Attachment display name")
    links: Optional[List[TaskLink]] = Field(None, description="Related links")


class BulkTaskIds(CamelModel):
    """Schema for batch operations addressing several tasks."""
    ids: List[int] = Field(..., min_length=1, max_length=100, description="Task identifiers")


class BulkTaskUpdate(BulkTaskIds):
    """Schema for applying one patch to several tasks."""
    patch: TaskUpdate = Field(..., description="Fields to apply to every task")


class BulkTaskResponse(CamelModel):
    """Schema for batch operation responses."""
    success: bool = Field(..., description="Whether every addressed task was affected")
    affected_count: int = Field(..., description="Number of tasks affected")
    missing_ids: List[int] = Field(default_factory=list, description="Identifiers that were not found")
    tasks: List[Task] = Field(default_factory=list, description="Affected tasks")


class ImportResponse(CamelModel):
    """Schema for bulk import responses."""
    success: bool = Field(..., description="Whether the import was applied")
    imported_count: int = Field(..., description="Number of tasks in the active collection")
    tasks: List[Task] = Field(..., description="Imported tasks")


class OccurrencePreview(CamelModel):
    """Schema for previewing upcoming occurrences of a recurring task."""
    task_id: int = Field(..., description="Task identifier")
    recurrence: Recurrence = Field(..., description="Recurrence policy")
    description: Optional[str] = Field(None, description="Human readable recurrence summary")
    occurrences: List[datetime] = Field(default_factory=list, description="Next occurrence dates")


class PurgeResponse(CamelModel):
    """Schema for emptying the trash."""
    purged: int = Field(..., description="Number of trash entries removed")


# Health check schema
class HealthResponse(CamelModel):
    """Schema for health check responses."""
    status: str = Field(default="healthy", description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now, description="Health check timestamp")
    version: str = Field(default="1.0.0", description="Application version")
    storage_backend: str = Field(..., description="Configured storage backend")
