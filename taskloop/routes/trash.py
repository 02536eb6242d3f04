"""Trash bin routes: list, restore and permanently delete removed tasks."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..deps import get_task_service
from ..errors import TaskPersistenceError
from ..models.task import DeletedTask, Task
from ..schemas import PurgeResponse
from ..services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trash", tags=["trash"])


@router.get("/", response_model=List[DeletedTask])
def list_trash(
    task_service: TaskService = Depends(get_task_service)
) -> List[DeletedTask]:
    """List deleted tasks still within the retention window."""
    return task_service.list_trash()


@router.delete("/", response_model=PurgeResponse)
def empty_trash(
    task_service: TaskService = Depends(get_task_service)
) -> PurgeResponse:
    """Permanently delete every trash entry."""
    return PurgeResponse(purged=task_service.empty_trash())


@router.post("/{task_id}/restore", response_model=Task)
def restore_task(
    task_id: int,
    task_service: TaskService = Depends(get_task_service)
) -> Task:
    """Move a deleted task back to the active collection.

    Raises:
        HTTPException: 404 if the task is not in the trash, 503 if not saved
    """
    try:
        logger.info(f"Restoring task: {task_id}")
        task = task_service.restore_task(task_id)
    except TaskPersistenceError as e:
        logger.error(f"Could not save restored task {task_id}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task {task_id} not found in trash"
        )
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def purge_task(
    task_id: int,
    task_service: TaskService = Depends(get_task_service)
) -> Response:
    """Permanently delete one trash entry."""
    if not task_service.purge_task(task_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task {task_id} not found in trash"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
