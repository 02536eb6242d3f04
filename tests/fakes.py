"""Test doubles for the task service."""

from datetime import datetime, timedelta
from typing import Optional, Sequence

from taskloop.errors import StorageError
from taskloop.models.task import DeletedTask, Task
from taskloop.services.storage import InMemoryTaskStorage


class FakeClock:
    """Manually advanced local clock."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class FlakyStorage(InMemoryTaskStorage):
    """In-memory storage whose writes can be made to fail.

    ``fail_tasks`` makes every active-collection write fail.
    ``max_trash_entries`` rejects trash documents larger than the limit.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail_tasks = False
        self.max_trash_entries: Optional[int] = None
        self.trash_writes: list = []

    def save_tasks(self, tasks: Sequence[Task]) -> None:
        if self.fail_tasks:
            raise StorageError("disk full")
        super().save_tasks(tasks)

    def save_trash(self, entries: Sequence[DeletedTask]) -> None:
        self.trash_writes.append(len(entries))
        if self.max_trash_entries is not None and len(entries) > self.max_trash_entries:
            raise StorageError("quota exceeded")
        super().save_trash(entries)
