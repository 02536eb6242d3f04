"""Storage port and backends for the active and trash task collections.

Each collection is persisted as one JSON document: an array of task records
with camelCase keys and ISO-8601 timestamps. Date parsing and formatting happen
here only; the rest of the engine works with ``datetime`` values.

A document that cannot be parsed loads as an empty collection. Next to the
collections each backend keeps the highest task id ever handed out, so ids are
not reused after the task carrying them is purged.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..errors import StorageError
from ..models.task import DeletedTask, Task

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

TASKS_KEY = "tasks"
TRASH_KEY = "deletedTasks"
LAST_ID_KEY = "lastTaskId"


class TaskStorage(Protocol):
    """Port used by the task service to load and save whole collections."""

    def load_tasks(self) -> List[Task]: ...

    def save_tasks(self, tasks: Sequence[Task]) -> None: ...

    def load_trash(self) -> List[DeletedTask]: ...

    def save_trash(self, entries: Sequence[DeletedTask]) -> None: ...

    def load_last_id(self) -> int: ...

    def save_last_id(self, value: int) -> None: ...


def serialize_collection(items: Sequence[BaseModel], *, indent: Optional[int] = None) -> str:
    """Render a collection as its JSON document."""
    return json.dumps(
        [item.model_dump(mode="json", by_alias=True) for item in items],
        ensure_ascii=False,
        indent=indent,
    )


def parse_collection(raw: Optional[str], model: Type[ModelT], *, name: str) -> List[ModelT]:
    """Parse a JSON document into models.

    Unparseable documents yield an empty list; individual invalid records are skipped.
    """
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error(f"Stored {name} collection is not valid JSON, starting empty: {str(e)}")
        return []
    if not isinstance(data, list):
        logger.error(f"Stored {name} collection is not a JSON array, starting empty")
        return []

    items: List[ModelT] = []
    for record in data:
        try:
            items.append(model.model_validate(record))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {name} record: {e.error_count()} error(s)")
    return items


def parse_last_id(raw: Optional[str]) -> int:
    """Parse the stored id high-water mark; anything unusable counts as 0."""
    if not raw:
        return 0
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        value = None
    if isinstance(value, dict):
        value = value.get(LAST_ID_KEY)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        logger.error(f"Stored {LAST_ID_KEY} is unusable, recomputing from collections")
        return 0
    return value


class InMemoryTaskStorage:
    """Key/value document store kept in process memory.

    Documents are stored serialized, so callers never share live objects with
    the store. ``quota`` bounds the size of a single document in characters;
    writes beyond it raise ``StorageError`` the way a full browser store would.
    """

    def __init__(self, quota: Optional[int] = None) -> None:
        self._documents: dict = {}
        self.quota = quota

    def _write(self, key: str, document: str) -> None:
        if self.quota is not None and len(document) > self.quota:
            raise StorageError(
                f"Quota exceeded writing {key}: {len(document)} > {self.quota} characters"
            )
        self._documents[key] = document

    def get_raw(self, key: str) -> Optional[str]:
        return self._documents.get(key)

    def set_raw(self, key: str, document: str) -> None:
        self._documents[key] = document

    def load_tasks(self) -> List[Task]:
        return parse_collection(self._documents.get(TASKS_KEY), Task, name=TASKS_KEY)

    def save_tasks(self, tasks: Sequence[Task]) -> None:
        self._write(TASKS_KEY, serialize_collection(tasks))

    def load_trash(self) -> List[DeletedTask]:
        return parse_collection(self._documents.get(TRASH_KEY), DeletedTask, name=TRASH_KEY)

    def save_trash(self, entries: Sequence[DeletedTask]) -> None:
        self._write(TRASH_KEY, serialize_collection(entries))

    def load_last_id(self) -> int:
        return parse_last_id(self._documents.get(LAST_ID_KEY))

    def save_last_id(self, value: int) -> None:
        self._write(LAST_ID_KEY, json.dumps(value))


class JsonFileTaskStorage:
    """Stores each collection as a JSON file under ``data_dir``."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.tasks_path = self.data_dir / "tasks.json"
        self.trash_path = self.data_dir / "trash.json"
        self.meta_path = self.data_dir / "meta.json"
        logger.info(f"JSON task storage at {self.data_dir.absolute()}")

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Could not read {path}: {str(e)}")
            return None

    @staticmethod
    def _write(path: Path, document: str) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(document, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise StorageError(f"Could not write {path}: {str(e)}") from e

    def load_tasks(self) -> List[Task]:
        return parse_collection(self._read(self.tasks_path), Task, name=TASKS_KEY)

    def save_tasks(self, tasks: Sequence[Task]) -> None:
        self._write(self.tasks_path, serialize_collection(tasks, indent=2))

    def load_trash(self) -> List[DeletedTask]:
        return parse_collection(self._read(self.trash_path), DeletedTask, name=TRASH_KEY)

    def save_trash(self, entries: Sequence[DeletedTask]) -> None:
        self._write(self.trash_path, serialize_collection(entries, indent=2))

    def load_last_id(self) -> int:
        return parse_last_id(self._read(self.meta_path))

    def save_last_id(self, value: int) -> None:
        self._write(self.meta_path, json.dumps({LAST_ID_KEY: value}, indent=2))


def create_storage(settings: Settings) -> TaskStorage:
    """Build the storage backend selected in settings."""
    if settings.storage_backend == "json":
        return JsonFileTaskStorage(settings.data_dir)
    return InMemoryTaskStorage()
