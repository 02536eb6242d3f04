"""Task management routes."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from ..deps import get_task_service
from ..errors import TaskPersistenceError, TaskValidationError
from ..models.task import Task, TaskCategory, TaskStatus
from ..schemas import (
    BulkTaskIds,
    BulkTaskResponse,
    BulkTaskUpdate,
    ImportResponse,
    OccurrencePreview,
    TaskCreate,
    TaskUpdate,
)
from ..services.recurrence import describe_recurrence, preview_occurrences
from ..services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _not_found(task_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Task {task_id} not found"
    )


def _invalid(e: TaskValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _unsaved(e: TaskPersistenceError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.post("/", response_model=Task, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    task_service: TaskService = Depends(get_task_service)
) -> Task:
    """Create a new task.

    Raises:
        HTTPException: 400 on invalid input, 503 if the task could not be saved
    """
    try:
        logger.info(f"Creating new task: {task_data.title}")
        return task_service.create_task(task_data)
    except TaskValidationError as e:
        logger.error(f"Validation error creating task: {str(e)}")
        raise _invalid(e)
    except TaskPersistenceError as e:
        logger.error(f"Could not save new task: {str(e)}")
        raise _unsaved(e)


@router.get("/", response_model=List[Task])
def list_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    category: Optional[TaskCategory] = Query(None),
    tag: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Search in title and notes"),
    include_completed: bool = Query(True, alias="includeCompleted"),
    task_service: TaskService = Depends(get_task_service)
) -> List[Task]:
    """List active tasks with optional filters."""
    logger.debug(f"Listing tasks with filters: status={status_filter}, category={category}, tag={tag}")
    return task_service.list_tasks(
        status=status_filter,
        category=category,
        tag=tag,
        search=q,
        include_completed=include_completed,
    )


@router.get("/upcoming", response_model=List[Task])
def upcoming_tasks(
    days: Optional[int] = Query(None, ge=1, le=365),
    limit: Optional[int] = Query(None, ge=1, le=100),
    task_service: TaskService = Depends(get_task_service)
) -> List[Task]:
    """Incomplete tasks due soon, earliest and most important first."""
    return task_service.upcoming_tasks(days=days, limit=limit)


@router.get("/stats", response_model=Dict[str, Any])
def get_task_statistics(
    task_service: TaskService = Depends(get_task_service)
) -> Dict[str, Any]:
    """Get task statistics."""
    return task_service.get_statistics()


@router.get("/export")
def export_tasks(
    task_service: TaskService = Depends(get_task_service)
) -> Response:
    """Export the active collection as a JSON document."""
    return Response(
        content=task_service.export_tasks(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="tasks.json"'},
    )


@router.post("/import", response_model=ImportResponse)
def import_tasks(
    records: List[Dict[str, Any]] = Body(...),
    task_service: TaskService = Depends(get_task_service)
) -> ImportResponse:
    """Replace the active collection with imported tasks.

    Raises:
        HTTPException: 400 on invalid records, 503 if the import could not be saved
    """
    try:
        tasks = task_service.import_tasks(records)
    except TaskValidationError as e:
        logger.error(f"Validation error importing tasks: {str(e)}")
        raise _invalid(e)
    except TaskPersistenceError as e:
        logger.error(f"Could not save imported tasks: {str(e)}")
        raise _unsaved(e)
    return ImportResponse(success=True, imported_count=len(tasks), tasks=tasks)


@router.post("/bulk/update", response_model=BulkTaskResponse)
def bulk_update_tasks(
    request: BulkTaskUpdate,
    task_service: TaskService = Depends(get_task_service)
) -> BulkTaskResponse:
    """Apply one patch to several tasks."""
    try:
        tasks = task_service.bulk_update(request.ids, request.patch)
    except TaskValidationError as e:
        raise _invalid(e)
    except TaskPersistenceError as e:
        raise _unsaved(e)
    return _bulk_response(request.ids, tasks)


@router.post("/bulk/toggle", response_model=BulkTaskResponse)
def bulk_toggle_tasks(
    request: BulkTaskIds,
    task_service: TaskService = Depends(get_task_service)
) -> BulkTaskResponse:
    """Toggle completion of several tasks."""
    try:
        tasks = task_service.bulk_toggle_complete(request.ids)
    except TaskPersistenceError as e:
        raise _unsaved(e)
    return _bulk_response(request.ids, tasks)


@router.post("/bulk/delete", response_model=BulkTaskResponse)
def bulk_delete_tasks(
    request: BulkTaskIds,
    task_service: TaskService = Depends(get_task_service)
) -> BulkTaskResponse:
    """Move several tasks to the trash."""
    try:
        moved = task_service.bulk_delete(request.ids)
    except TaskPersistenceError as e:
        raise _unsaved(e)
    found = set(moved)
    missing = [task_id for task_id in request.ids if task_id not in found]
    return BulkTaskResponse(success=not missing, affected_count=len(moved), missing_ids=missing)


def _bulk_response(ids: List[int], tasks: List[Task]) -> BulkTaskResponse:
    found = {task.id for task in tasks}
    missing = [task_id for task_id in ids if task_id not in found]
    return BulkTaskResponse(
        success=not missing,
        affected_count=len(tasks),
        missing_ids=missing,
        tasks=tasks,
    )


@router.get("/{task_id}", response_model=Task)
def get_task(
    task_id: int,
    task_service: TaskService = Depends(get_task_service)
) -> Task:
    """Get a specific task by ID."""
    task = task_service.get_task(task_id)
    if task is None:
        raise _not_found(task_id)
    return task


@router.patch("/{task_id}", response_model=Task)
def update_task(
    task_id: int,
    task_data: TaskUpdate,
    task_service: TaskService = Depends(get_task_service)
) -> Task:
    """Update a task.

    Raises:
        HTTPException: 400 on invalid input, 404 if missing, 503 if not saved
    """
    try:
        logger.info(f"Updating task: {task_id}")
        task = task_service.update_task(task_id, task_data)
    except TaskValidationError as e:
        logger.error(f"Validation error updating task {task_id}: {str(e)}")
        raise _invalid(e)
    except TaskPersistenceError as e:
        logger.error(f"Could not save task {task_id}: {str(e)}")
        raise _unsaved(e)

    if task is None:
        raise _not_found(task_id)
    return task


@router.post("/{task_id}/toggle", response_model=Task)
def toggle_task(
    task_id: int,
    task_service: TaskService = Depends(get_task_service)
) -> Task:
    """Toggle the completion flag; recurring tasks advance to their next occurrence."""
    try:
        task = task_service.toggle_complete(task_id)
    except TaskPersistenceError as e:
        logger.error(f"Could not save task {task_id}: {str(e)}")
        raise _unsaved(e)

    if task is None:
        raise _not_found(task_id)
    return task


@router.get("/{task_id}/occurrences", response_model=OccurrencePreview)
def task_occurrences(
    task_id: int,
    count: int = Query(5, ge=1, le=50),
    task_service: TaskService = Depends(get_task_service)
) -> OccurrencePreview:
    """Preview the next occurrences of a task."""
    task = task_service.get_task(task_id)
    if task is None:
        raise _not_found(task_id)
    return OccurrencePreview(
        task_id=task.id,
        recurrence=task.recurrence,
        description=describe_recurrence(task),
        occurrences=preview_occurrences(task, count),
    )


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    task_service: TaskService = Depends(get_task_service)
) -> Response:
    """Move a task to the trash.

    Raises:
        HTTPException: 404 if the task is not active, 503 if not saved
    """
    try:
        logger.info(f"Deleting task: {task_id}")
        deleted = task_service.delete_task(task_id)
    except TaskPersistenceError as e:
        logger.error(f"Could not save deletion of task {task_id}: {str(e)}")
        raise _unsaved(e)

    if not deleted:
        raise _not_found(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
