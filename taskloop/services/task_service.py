"""Task service: CRUD, recurrence cycle and trash lifecycle."""

import json
import logging
from collections import Counter
from datetime import datetime, timedelta
from threading import RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError

from ..config import Settings, settings as default_settings
from ..errors import StorageError, TaskPersistenceError, TaskValidationError
from ..models.task import (
    PRIORITY_RANK,
    DeletedTask,
    Recurrence,
    Task,
    TaskCategory,
    TaskStatus,
)
from ..schemas import TaskCreate, TaskUpdate
from .recurrence import compute_next_due
from .storage import InMemoryTaskStorage, TaskStorage, create_storage, serialize_collection
from .trash import enforce_capacity, prune_trash

logger = logging.getLogger(__name__)

# Fields a patch may never change.
IMMUTABLE_FIELDS = {"id", "created_at"}
RECURRENCE_FIELDS = {"recurrence", "recurrence_interval"}

TaskPatch = Union[TaskUpdate, Dict[str, Any]]


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "task"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


class TaskService:
    """Owns the active task collection and the trash bin.

    Every operation loads the whole collection from storage, mutates it and
    writes it back. Operations are serialized with a re-entrant lock and return
    copies, never the objects held by the service.
    """

    def __init__(
        self,
        storage: Optional[TaskStorage] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the task service.

        Args:
            storage: Backing store for both collections (in-memory by default)
            settings: Retention and capacity settings
            clock: Source of the current local time
        """
        self._storage = storage if storage is not None else InMemoryTaskStorage()
        self._settings = settings or default_settings
        self._clock = clock or datetime.now
        self._lock = RLock()
        logger.info(
            f"Task service initialized with {type(self._storage).__name__} "
            f"(trash retention {self._settings.trash_retention_days}d, "
            f"capacity {self._settings.trash_capacity})"
        )

    # ---- helpers ----

    def _now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _build_task(data: Dict[str, Any]) -> Task:
        try:
            return Task.model_validate(data)
        except ValidationError as e:
            raise TaskValidationError(_describe_validation_error(e)) from e

    @staticmethod
    def _find(items: Sequence[Task], task_id: int) -> Optional[int]:
        for index, item in enumerate(items):
            if item.id == task_id:
                return index
        return None

    def _next_id(self, tasks: Sequence[Task]) -> int:
        known = [task.id for task in tasks]
        known.extend(entry.id for entry in self._storage.load_trash())
        known.append(self._storage.load_last_id())
        return max(known) + 1

    def _claim_ids(self, highest: int) -> None:
        """Raise the persisted id high-water mark to ``highest``."""
        if highest <= self._storage.load_last_id():
            return
        try:
            self._storage.save_last_id(highest)
        except StorageError as e:
            logger.error(f"Failed to save task id counter: {str(e)}")
            raise TaskPersistenceError(f"Could not save task id counter: {str(e)}") from e

    def _commit_tasks(self, tasks: Sequence[Task]) -> None:
        try:
            self._storage.save_tasks(tasks)
        except StorageError as e:
            logger.error(f"Failed to save active tasks: {str(e)}")
            raise TaskPersistenceError(f"Could not save tasks: {str(e)}") from e

    def _save_trash(self, entries: Sequence[DeletedTask]) -> List[DeletedTask]:
        """Persist the trash, shrinking it until the store accepts it.

        Tries the collection as-is, then trimmed to capacity, then to half
        capacity, then empty. Returns what was persisted; never raises.
        """
        capacity = self._settings.trash_capacity
        attempts = [
            list(entries),
            enforce_capacity(entries, capacity),
            enforce_capacity(entries, capacity // 2),
            [],
        ]
        for attempt in attempts:
            try:
                self._storage.save_trash(attempt)
            except StorageError as e:
                logger.warning(f"Failed to save trash with {len(attempt)} entries: {str(e)}")
                continue
            if len(attempt) < len(entries):
                logger.warning(f"Trash trimmed from {len(entries)} to {len(attempt)} entries to fit storage")
            return attempt

        logger.error("Trash could not be saved even when empty")
        return []

    def _load_trash(self) -> List[DeletedTask]:
        entries = self._storage.load_trash()
        pruned = prune_trash(
            entries,
            now=self._now(),
            retention_days=self._settings.trash_retention_days,
            capacity=self._settings.trash_capacity,
        )
        if len(pruned) != len(entries):
            logger.info(f"Pruned {len(entries) - len(pruned)} expired or excess trash entries")
            pruned = self._save_trash(pruned)
        return pruned

    @staticmethod
    def _coerce_patch(patch: TaskPatch) -> Dict[str, Any]:
        if isinstance(patch, TaskUpdate):
            update = patch
        else:
            try:
                update = TaskUpdate.model_validate(patch)
            except ValidationError as e:
                raise TaskValidationError(_describe_validation_error(e)) from e
        changes = update.model_dump(exclude_unset=True)
        for field in IMMUTABLE_FIELDS:
            changes.pop(field, None)
        return changes

    # ---- CRUD ----

    def create_task(self, task_data: Union[TaskCreate, Dict[str, Any]]) -> Task:
        """Create a new task.

        Args:
            task_data: Task creation data

        Returns:
            Created task

        Raises:
            TaskValidationError: If the task data is invalid
            TaskPersistenceError: If the task collection could not be saved
        """
        if not isinstance(task_data, TaskCreate):
            try:
                task_data = TaskCreate.model_validate(task_data)
            except ValidationError as e:
                raise TaskValidationError(_describe_validation_error(e)) from e

        with self._lock:
            tasks = self._storage.load_tasks()
            payload = task_data.model_dump()
            payload.update(
                id=self._next_id(tasks),
                created_at=self._now(),
                completed=False,
                last_completed=None,
                next_due=None,
                time_spent=0,
                xp_earned=0,
            )
            task = self._build_task(payload)
            if task.is_recurring:
                task.next_due = compute_next_due(task)

            self._claim_ids(task.id)
            tasks.append(task)
            self._commit_tasks(tasks)

            logger.info(f"Created task {task.id}: {task.title}")
            return task.model_copy(deep=True)

    def get_task(self, task_id: int) -> Optional[Task]:
        """Get an active task by ID.

        Returns:
            Task if found, None otherwise
        """
        with self._lock:
            tasks = self._storage.load_tasks()
            index = self._find(tasks, task_id)
            if index is None:
                logger.debug(f"Task {task_id} not found")
                return None
            return tasks[index].model_copy(deep=True)

    def update_task(self, task_id: int, patch: TaskPatch) -> Optional[Task]:
        """Apply a partial update to a task.

        Completing a recurring task does not leave it completed: the occurrence
        is stamped in ``last_completed``, ``next_due`` moves to the following
        occurrence and the task returns to a pending ``todo`` task.

        Args:
            task_id: Task ID
            patch: Fields to change; only explicitly provided fields apply

        Returns:
            Updated task if found, None otherwise

        Raises:
            TaskValidationError: If the patched task is invalid
            TaskPersistenceError: If the task collection could not be saved
        """
        changes = self._coerce_patch(patch)

        with self._lock:
            tasks = self._storage.load_tasks()
            index = self._find(tasks, task_id)
            if index is None:
                logger.warning(f"Task {task_id} not found for update")
                return None

            current = tasks[index]
            merged = self._build_task({**current.model_dump(), **changes})

            completing = changes.get("completed") is True and not current.completed
            if completing and merged.is_recurring:
                merged.last_completed = self._now()
                merged.next_due = compute_next_due(merged)
                merged.completed = False
                merged.status = TaskStatus.TODO.value
                logger.info(f"Recurring task {task_id} completed, next due {merged.next_due}")
            elif RECURRENCE_FIELDS & changes.keys() and "next_due" not in changes:
                merged.next_due = compute_next_due(merged) if merged.is_recurring else None

            tasks[index] = merged
            self._commit_tasks(tasks)

            logger.info(f"Updated task {task_id}: {merged.title}")
            return merged.model_copy(deep=True)

    def toggle_complete(self, task_id: int) -> Optional[Task]:
        """Flip the completion flag of a task.

        Returns:
            Updated task if found, None otherwise
        """
        with self._lock:
            task = self.get_task(task_id)
            if task is None:
                logger.warning(f"Task {task_id} not found for toggle")
                return None
            return self.update_task(task_id, {"completed": not task.completed})

    def delete_task(self, task_id: int) -> bool:
        """Move a task to the trash.

        Returns:
            True if the task was moved, False if not found
        """
        with self._lock:
            tasks = self._storage.load_tasks()
            index = self._find(tasks, task_id)
            if index is None:
                logger.warning(f"Task {task_id} not found for deletion")
                return False

            task = tasks.pop(index)
            previous_trash = self._load_trash()
            trash = previous_trash + [DeletedTask.from_task(task, self._now())]
            self._save_trash(enforce_capacity(trash, self._settings.trash_capacity))
            try:
                self._commit_tasks(tasks)
            except TaskPersistenceError:
                self._save_trash(previous_trash)
                raise

            logger.info(f"Moved task {task_id} to trash: {task.title}")
            return True

    def list_tasks(
        self,
        status: Optional[TaskStatus] = None,
        category: Optional[TaskCategory] = None,
        tag: Optional[str] = None,
        search: Optional[str] = None,
        include_completed: bool = True,
    ) -> List[Task]:
        """List active tasks with optional filters.

        Args:
            status: Filter by status
            category: Filter by category
            tag: Only tasks carrying this tag (case-insensitive)
            search: Text to look for in title and notes (case-insensitive)
            include_completed: Whether completed tasks are included

        Returns:
            List of tasks in stored order
        """
        with self._lock:
            tasks = self._storage.load_tasks()

        if status is not None:
            tasks = [task for task in tasks if task.status == status]
        if category is not None:
            tasks = [task for task in tasks if task.category == category]
        if tag:
            wanted = tag.strip().lower()
            tasks = [task for task in tasks if wanted in {t.lower() for t in task.tags}]
        if search and search.strip():
            query = search.strip().lower()
            tasks = [
                task for task in tasks
                if query in task.title.lower() or (task.notes and query in task.notes.lower())
            ]
        if not include_completed:
            tasks = [task for task in tasks if not task.completed]

        logger.debug(f"Listed {len(tasks)} tasks (status={status}, category={category}, tag={tag})")
        return tasks

    # ---- trash ----

    def list_trash(self) -> List[DeletedTask]:
        """List trash entries after applying expiry and capacity."""
        with self._lock:
            return self._load_trash()

    def restore_task(self, task_id: int) -> Optional[Task]:
        """Move a trash entry back to the active collection.

        If an active task already carries the entry's id (after an import),
        the restored task gets a fresh id.

        Returns:
            Restored task if found in trash, None otherwise
        """
        with self._lock:
            trash = self._load_trash()
            index = self._find(trash, task_id)
            if index is None:
                logger.warning(f"Task {task_id} not found in trash for restore")
                return None

            task = trash.pop(index).to_task()
            tasks = self._storage.load_tasks()
            if self._find(tasks, task.id) is not None:
                task.id = self._next_id(tasks)
                logger.warning(f"Task id {task_id} is taken, restoring as task {task.id}")
                self._claim_ids(task.id)
            tasks.append(task)
            self._commit_tasks(tasks)
            self._save_trash(trash)

            logger.info(f"Restored task {task_id}: {task.title}")
            return task.model_copy(deep=True)

    def purge_task(self, task_id: int) -> bool:
        """Permanently remove one trash entry.

        Returns:
            True if the entry was removed, False if not found
        """
        with self._lock:
            trash = self._load_trash()
            index = self._find(trash, task_id)
            if index is None:
                logger.warning(f"Task {task_id} not found in trash for purge")
                return False

            entry = trash.pop(index)
            self._save_trash(trash)
            logger.info(f"Permanently deleted task {task_id}: {entry.title}")
            return True

    def empty_trash(self) -> int:
        """Permanently remove every trash entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            count = len(self._load_trash())
            self._save_trash([])
            logger.warning(f"Emptied trash ({count} entries)")
            return count

    # ---- import / export ----

    def export_tasks(self) -> str:
        """Serialize the active collection as a JSON document."""
        with self._lock:
            tasks = self._storage.load_tasks()
        return serialize_collection(tasks, indent=2)

    def import_tasks(self, payload: Union[str, bytes, List[Dict[str, Any]]]) -> List[Task]:
        """Replace the active collection with imported task records.

        Records are normalized like newly created tasks: missing optional fields
        get their defaults, a missing creation time becomes now, a missing id is
        assigned and recurring tasks without ``nextDue`` get one computed. Trash
        entries carrying an imported id are discarded so ids stay unique.

        Args:
            payload: JSON text or already decoded list of task records

        Returns:
            The imported tasks

        Raises:
            TaskValidationError: If the payload or any record is invalid
            TaskPersistenceError: If the task collection could not be saved
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise TaskValidationError(f"Import is not valid JSON: {str(e)}") from e
        if not isinstance(payload, list):
            raise TaskValidationError("Import must be a JSON array of tasks")

        with self._lock:
            now = self._now()
            imported: List[Task] = []
            pending_ids: List[int] = []
            for position, record in enumerate(payload):
                if not isinstance(record, dict):
                    raise TaskValidationError(f"Import record {position} is not an object")
                data = dict(record)
                if data.get("createdAt") is None and data.get("created_at") is None:
                    data["createdAt"] = now
                if data.get("id") is None:
                    data["id"] = 0
                    pending_ids.append(position)
                try:
                    task = Task.model_validate(data)
                except ValidationError as e:
                    raise TaskValidationError(
                        f"Import record {position}: {_describe_validation_error(e)}"
                    ) from e
                if task.is_recurring and task.next_due is None:
                    task.next_due = compute_next_due(task)
                imported.append(task)

            next_id = self._next_id(
                [task for position, task in enumerate(imported) if position not in pending_ids]
            )
            for position in pending_ids:
                imported[position].id = next_id
                next_id += 1

            ids = Counter(task.id for task in imported)
            duplicates = sorted(task_id for task_id, count in ids.items() if count > 1)
            if duplicates:
                raise TaskValidationError(f"Duplicate task ids in import: {duplicates}")

            self._claim_ids(max(ids, default=0))
            self._commit_tasks(imported)

            # Imported records own their ids; trash entries reusing them are dropped.
            trash = self._load_trash()
            kept = [entry for entry in trash if entry.id not in ids]
            if len(kept) != len(trash):
                logger.warning(
                    f"Dropped {len(trash) - len(kept)} trash entries whose ids were imported"
                )
                self._save_trash(kept)

            logger.info(f"Imported {len(imported)} tasks")
            return [task.model_copy(deep=True) for task in imported]

    # ---- views and batch operations ----

    def upcoming_tasks(self, days: Optional[int] = None, limit: Optional[int] = None) -> List[Task]:
        """Incomplete tasks due within the next ``days`` days.

        Sorted by due date, then by priority (high first).
        """
        days = self._settings.upcoming_window_days if days is None else days
        limit = self._settings.upcoming_limit if limit is None else limit
        now = self._now()
        horizon = now + timedelta(days=days)

        upcoming = [
            task for task in self.list_tasks(include_completed=False)
            if task.due_date is not None and now <= task.due_date <= horizon
        ]
        upcoming.sort(key=lambda task: (task.due_date, -PRIORITY_RANK[task.priority]))
        return upcoming[:limit]

    def bulk_update(self, task_ids: Iterable[int], patch: TaskPatch) -> List[Task]:
        """Apply one patch to several tasks, skipping missing ids."""
        changes = self._coerce_patch(patch)
        with self._lock:
            updated = [self.update_task(task_id, changes) for task_id in task_ids]
        return [task for task in updated if task is not None]

    def bulk_toggle_complete(self, task_ids: Iterable[int]) -> List[Task]:
        """Toggle completion of several tasks, skipping missing ids."""
        with self._lock:
            toggled = [self.toggle_complete(task_id) for task_id in task_ids]
        return [task for task in toggled if task is not None]

    def bulk_delete(self, task_ids: Iterable[int]) -> List[int]:
        """Move several tasks to the trash.

        Returns:
            Ids of the tasks actually moved, in request order
        """
        with self._lock:
            return [task_id for task_id in task_ids if self.delete_task(task_id)]

    def get_statistics(self) -> Dict[str, Any]:
        """Get task statistics.

        Returns:
            Dictionary containing various statistics
        """
        with self._lock:
            tasks = self._storage.load_tasks()
            trash_count = len(self._load_trash())
        now = self._now()

        total_tasks = len(tasks)
        completed_count = sum(1 for task in tasks if task.completed)
        completion_rate = (completed_count / total_tasks * 100) if total_tasks > 0 else 0

        status_counts = {status.value: 0 for status in TaskStatus}
        status_counts.update(Counter(task.status for task in tasks))
        category_counts = {category.value: 0 for category in TaskCategory}
        category_counts.update(Counter(task.category for task in tasks))

        return {
            "total_tasks": total_tasks,
            "completed_tasks": completed_count,
            "completion_rate": round(completion_rate, 2),
            "status_counts": status_counts,
            "category_counts": category_counts,
            "recurring_tasks": sum(1 for task in tasks if task.recurrence != Recurrence.NONE),
            "overdue_tasks": sum(
                1 for task in tasks
                if not task.completed and task.due_date is not None and task.due_date < now
            ),
            "trash_count": trash_count,
        }


# Global task service instance - will be initialized during app startup
_task_service: Optional[TaskService] = None


def get_task_service() -> Optional[TaskService]:
    """Get the global task service instance.

    Returns:
        Task service instance or None if not initialized
    """
    return _task_service


def initialize_task_service(settings: Optional[Settings] = None) -> TaskService:
    """Initialize the global task service instance.

    Args:
        settings: Settings selecting the storage backend and retention policy

    Returns:
        Initialized task service
    """
    global _task_service
    settings = settings or default_settings
    _task_service = TaskService(create_storage(settings), settings=settings)
    return _task_service
