import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Header, Query, status

from taskboard.api.deps import get_task_service
from taskboard.core.task_service import TaskService
from taskboard.schemas.task import TaskCreate, TaskMove, TaskRead, TaskUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tasks"])


@router.post(
    "/columns/{column_id}/tasks",
    response_model=TaskRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_task(
    column_id: int,
    task: TaskCreate,
    user_id: str = Header(..., alias="X-User-Id"),
    service: TaskService = Depends(get_task_service),
):
    """Create a task at the end of the column and notify its assignees."""
    return await service.create_task(
        column_id,
        user_id,
        title=task.title,
        description=task.description,
        due_date=task.due_date,
        priority=task.priority,
        assigned_user_ids=task.assigned_user_ids,
    )


@router.get("/columns/{column_id}/tasks", response_model=List[TaskRead])
async def list_tasks(
    column_id: int,
    service: TaskService = Depends(get_task_service),
):
    return await service.get_tasks(column_id)


# Fixed paths are declared before /tasks/{task_id} so they are matched first
@router.get("/tasks/calendar", response_model=List[TaskRead])
async def tasks_by_date_range(
    start: datetime = Query(..., description="Earliest due date (inclusive)"),
    end: datetime = Query(..., description="Latest due date (inclusive)"),
    service: TaskService = Depends(get_task_service),
):
    """Tasks whose due date falls inside [start, end]."""
    return await service.get_tasks_by_date_range(start, end)


@router.get("/tasks/assigned/{user_id}", response_model=List[TaskRead])
async def tasks_by_assignee(
    user_id: str,
    service: TaskService = Depends(get_task_service),
):
    return await service.get_tasks_by_assignee(user_id)


@router.get("/tasks/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: int,
    service: TaskService = Depends(get_task_service),
):
    return await service.get_task(task_id)


@router.put("/tasks/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: int,
    data: TaskUpdate,
    service: TaskService = Depends(get_task_service),
):
    """Partial update: only fields present in the body are applied."""
    return await service.update_task(task_id, data.changes())


@router.post("/tasks/{task_id}/move", response_model=TaskRead)
async def move_task(
    task_id: int,
    move: TaskMove,
    service: TaskService = Depends(get_task_service),
):
    """Move a task to a position within the same or another column."""
    return await service.move_task(task_id, move.target_column_id, move.new_order)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    service: TaskService = Depends(get_task_service),
):
    await service.delete_task(task_id)
