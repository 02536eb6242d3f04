"""Shared test fixtures and configuration for the test suite."""

import sys
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# Add the parent directory to the path for imports
sys.path.append(str(Path(__file__).parent.parent))

from taskloop.config import Settings
from taskloop.deps import get_task_service
from taskloop.main import create_app
from taskloop.schemas import TaskCreate
from taskloop.services.task_service import TaskService

from fakes import FakeClock, FlakyStorage


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings with a temporary data directory."""
    return Settings(
        storage_backend="memory",
        data_dir=tmp_path / "data",
        log_level="DEBUG",
        environment="test",
        trash_retention_days=7,
        trash_capacity=50,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Clock pinned to 2024-01-15 09:30 local time."""
    return FakeClock(datetime(2024, 1, 15, 9, 30))


@pytest.fixture
def storage() -> FlakyStorage:
    """In-memory storage with switchable write failures."""
    return FlakyStorage()


@pytest.fixture
def task_service(storage, test_settings, clock) -> TaskService:
    """Create a task service instance for testing."""
    return TaskService(storage, settings=test_settings, clock=clock)


@pytest.fixture
def make_task(task_service):
    """Factory creating tasks with sensible defaults."""
    def _make(title: str = "Test Task", **fields):
        fields.setdefault("priority", "medium")
        return task_service.create_task(TaskCreate(title=title, **fields))
    return _make


@pytest.fixture
def client(task_service) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app bound to the test service."""
    app = create_app()
    app.dependency_overrides[get_task_service] = lambda: task_service
    with TestClient(app) as test_client:
        yield test_client


# Test data fixtures
@pytest.fixture
def sample_task_data():
    """Sample task payload as sent by the web client."""
    return {
        "title": "Water the plants",
        "description": "Balcony and kitchen",
        "priority": "high",
        "category": "personal",
        "tags": ["home", "garden"],
        "recurrence": "weekly",
    }
