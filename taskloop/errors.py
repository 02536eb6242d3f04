"""Error types raised by the task lifecycle engine."""


class TaskError(Exception):
    """Base class for task engine errors."""


class TaskValidationError(TaskError, ValueError):
    """Task input failed validation (title, enums, recurrence policy)."""


class TaskPersistenceError(TaskError):
    """The active task collection could not be saved."""


class StorageError(TaskError):
    """A storage backend failed to write a collection."""
