from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ...database import get_db
from ...core.auth import require_permission
from ...core.context import ActorContext
from ...core.permissions import Permission
from ...models.enums import TaskStatus
from ...models.task import Task
from ...services.sprint_service import SprintServiceError
from ...services.task_service import TaskService
from ...workers.completion_worker import CompletionEventPublisher
from ..dependencies import get_completion_publisher
from .errors import to_http_exception

router = APIRouter()

class TaskStatusRequest(BaseModel):
    status: TaskStatus

class BulkTaskStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_ids: List[int] = Field(alias="taskIds", min_length=1)
    status: TaskStatus

class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    status: str
    archived: bool
    story_id: Optional[int]
    epic_id: Optional[int]
    sprint_id: Optional[int]
    moved_from_sprint_id: Optional[int]


def task_to_response(task: Task) -> dict:
    return TaskResponse.model_validate(task).model_dump()


@router.patch("/{task_id}/status")
async def update_task_status(
    task_id: int,
    request: TaskStatusRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_permission(Permission.TASK_UPDATE)),
    events: CompletionEventPublisher = Depends(get_completion_publisher)
):
    """Update a task's status; completing it schedules the completion cascade"""

    task_service = TaskService(db, events=events)

    try:
        task = await task_service.update_status(task_id, request.status, actor)
    except SprintServiceError as e:
        raise to_http_exception(e)

    return {"success": True, "data": task_to_response(task)}


@router.post("/bulk-status")
async def bulk_update_task_status(
    request: BulkTaskStatusRequest,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_permission(Permission.TASK_UPDATE)),
    events: CompletionEventPublisher = Depends(get_completion_publisher)
):
    """Update the status of several tasks without waiting for the completion cascade"""

    task_service = TaskService(db, events=events)

    try:
        tasks = await task_service.bulk_update_status(request.task_ids, request.status, actor)
    except SprintServiceError as e:
        raise to_http_exception(e)

    return {
        "success": True,
        "message": "Bulk update completed successfully",
        "data": [task_to_response(task) for task in tasks]
    }
