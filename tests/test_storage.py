"""Tests for storage backends and the persisted document format."""

import json
from datetime import datetime

import pytest

from taskloop.config import Settings
from taskloop.errors import StorageError
from taskloop.models.task import DeletedTask, Task
from taskloop.services.storage import (
    LAST_ID_KEY,
    TASKS_KEY,
    TRASH_KEY,
    InMemoryTaskStorage,
    JsonFileTaskStorage,
    create_storage,
    parse_collection,
    parse_last_id,
    serialize_collection,
)
from taskloop.services.task_service import TaskService


@pytest.fixture
def sample_tasks():
    return [
        Task(id=1, title="First", priority="high", created_at=datetime(2024, 1, 1, 8, 0)),
        Task(
            id=2, title="Second", priority="low", created_at=datetime(2024, 1, 2),
            recurrence="daily", next_due=datetime(2024, 1, 3), tags=["x"],
        ),
    ]


class TestDocumentFormat:
    """Test collection serialization and tolerant parsing."""

    def test_serialized_records_use_camel_case(self, sample_tasks):
        records = json.loads(serialize_collection(sample_tasks))

        assert records[1]["createdAt"] == "2024-01-02T00:00:00"
        assert records[1]["nextDue"] == "2024-01-03T00:00:00"
        assert records[1]["recurrenceInterval"] is None
        assert records[0]["lastCompleted"] is None

    def test_parse_round_trip(self, sample_tasks):
        parsed = parse_collection(serialize_collection(sample_tasks), Task, name=TASKS_KEY)

        assert parsed == sample_tasks

    @pytest.mark.parametrize("raw", [None, "", "{broken", '{"id": 1}', "42"])
    def test_unusable_documents_load_empty(self, raw):
        assert parse_collection(raw, Task, name=TASKS_KEY) == []

    def test_invalid_records_are_skipped(self, caplog):
        raw = json.dumps([
            {"id": 1, "title": "Valid", "priority": "low", "createdAt": "2024-01-01T00:00:00"},
            {"id": 2, "title": "", "priority": "low", "createdAt": "2024-01-01T00:00:00"},
            "not a record",
        ])

        with caplog.at_level("WARNING", logger="taskloop.services.storage"):
            parsed = parse_collection(raw, Task, name=TASKS_KEY)

        assert [t.id for t in parsed] == [1]
        assert "Skipping invalid tasks record" in caplog.text

    def test_aware_timestamps_become_local_naive(self):
        raw = json.dumps([
            {"id": 1, "title": "Aware", "priority": "low", "createdAt": "2024-01-01T12:00:00+00:00"},
        ])

        parsed = parse_collection(raw, Task, name=TASKS_KEY)

        assert parsed[0].created_at.tzinfo is None

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, 0),
            ("7", 7),
            ('{"lastTaskId": 12}', 12),
            ("not a number", 0),
            ('{"lastTaskId": -3}', 0),
            ("true", 0),
        ],
    )
    def test_parse_last_id(self, raw, expected):
        assert parse_last_id(raw) == expected


class TestInMemoryStorage:
    """Test the in-memory document store."""

    def test_collections_are_independent(self, sample_tasks):
        storage = InMemoryTaskStorage()
        storage.save_tasks(sample_tasks)

        assert storage.load_tasks() == sample_tasks
        assert storage.load_trash() == []

    def test_loads_return_fresh_objects(self, sample_tasks):
        storage = InMemoryTaskStorage()
        storage.save_tasks(sample_tasks)

        storage.load_tasks()[0].title = "Changed"

        assert storage.load_tasks()[0].title == "First"

    def test_corrupted_document_loads_empty(self):
        storage = InMemoryTaskStorage()
        storage.set_raw(TASKS_KEY, "{not json")
        storage.set_raw(TRASH_KEY, '{"also": "wrong"}')

        assert storage.load_tasks() == []
        assert storage.load_trash() == []

    def test_quota_rejects_large_documents(self, sample_tasks):
        storage = InMemoryTaskStorage(quota=50)

        with pytest.raises(StorageError, match="Quota exceeded"):
            storage.save_tasks(sample_tasks)

        storage.save_tasks([])
        assert storage.get_raw(TASKS_KEY) == "[]"

    def test_service_starts_empty_on_corrupted_store(self):
        storage = InMemoryTaskStorage()
        storage.set_raw(TASKS_KEY, "garbage")
        service = TaskService(storage, settings=Settings())

        assert service.list_tasks() == []
        assert service.create_task({"title": "Fresh start", "priority": "low"}).id == 1

    def test_last_id_round_trip(self):
        storage = InMemoryTaskStorage()
        assert storage.load_last_id() == 0

        storage.save_last_id(41)

        assert storage.load_last_id() == 41
        assert storage.get_raw(LAST_ID_KEY) == "41"

    def test_quota_degrades_trash_but_keeps_deletion(self):
        storage = InMemoryTaskStorage()
        service = TaskService(storage, settings=Settings(trash_capacity=8))
        ids = [service.create_task({"title": f"Task {i}", "priority": "low"}).id for i in range(5)]
        # Trash entries are larger than active records, so five of them cannot fit.
        storage.quota = len(storage.get_raw(TASKS_KEY))

        for task_id in ids:
            assert service.delete_task(task_id) is True

        assert service.list_tasks() == []
        assert [e.id for e in service.list_trash()] == ids[1:]
        assert len(storage.get_raw(TRASH_KEY)) <= storage.quota


class TestJsonFileStorage:
    """Test file-backed storage."""

    def test_round_trip(self, tmp_path, sample_tasks):
        storage = JsonFileTaskStorage(tmp_path)
        storage.save_tasks(sample_tasks)

        assert storage.load_tasks() == sample_tasks
        assert (tmp_path / "tasks.json").exists()
        assert not (tmp_path / "tasks.json.tmp").exists()

    def test_trash_round_trip(self, tmp_path):
        entries = [
            DeletedTask(
                id=3, title="Gone", priority="medium",
                created_at=datetime(2024, 1, 1), deleted_at=datetime(2024, 1, 5, 14, 0),
            )
        ]
        storage = JsonFileTaskStorage(tmp_path / "nested")
        storage.save_trash(entries)

        assert storage.load_trash() == entries
        records = json.loads((tmp_path / "nested" / "trash.json").read_text(encoding="utf-8"))
        assert records[0]["deletedAt"] == "2024-01-05T14:00:00"

    def test_missing_files_load_empty(self, tmp_path):
        storage = JsonFileTaskStorage(tmp_path / "absent")

        assert storage.load_tasks() == []
        assert storage.load_trash() == []

    def test_corrupted_file_loads_empty(self, tmp_path):
        (tmp_path / "tasks.json").write_text("[{", encoding="utf-8")

        assert JsonFileTaskStorage(tmp_path).load_tasks() == []

    def test_write_failure_raises_storage_error(self, tmp_path, sample_tasks):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        storage = JsonFileTaskStorage(blocker)

        with pytest.raises(StorageError):
            storage.save_tasks(sample_tasks)

    def test_tasks_survive_service_restart(self, tmp_path):
        settings = Settings(storage_backend="json", data_dir=tmp_path)
        first = TaskService(create_storage(settings), settings=settings)
        task = first.create_task({"title": "Persistent", "priority": "high", "recurrence": "weekly"})
        first.delete_task(first.create_task({"title": "Binned", "priority": "low"}).id)

        second = TaskService(create_storage(settings), settings=settings)

        assert second.get_task(task.id) == task
        assert [e.title for e in second.list_trash()] == ["Binned"]

    def test_id_counter_survives_purge_and_restart(self, tmp_path):
        settings = Settings(storage_backend="json", data_dir=tmp_path)
        first = TaskService(create_storage(settings), settings=settings)
        task = first.create_task({"title": "Short lived", "priority": "low"})
        first.delete_task(task.id)
        first.purge_task(task.id)

        second = TaskService(create_storage(settings), settings=settings)

        assert second.create_task({"title": "Next", "priority": "low"}).id == task.id + 1
        meta = json.loads((tmp_path / "meta.json").read_text(encoding="utf-8"))
        assert meta == {"lastTaskId": task.id + 1}


class TestCreateStorage:
    """Test backend selection."""

    def test_memory_backend(self):
        assert isinstance(create_storage(Settings(storage_backend="memory")), InMemoryTaskStorage)

    def test_json_backend(self, tmp_path):
        storage = create_storage(Settings(storage_backend="json", data_dir=tmp_path))

        assert isinstance(storage, JsonFileTaskStorage)
        assert storage.data_dir == tmp_path
