from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ...database import get_db
from ...core.auth import require_permission
from ...core.context import ActorContext
from ...core.permissions import Permission
from ...services.sprint_service import SprintService, SprintServiceError, sprint_to_dict
from .errors import to_http_exception

router = APIRouter()

class CompleteSprintRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_sprint_id: Optional[int] = Field(default=None, alias="targetSprintId")
    selected_task_ids: Optional[List[int]] = Field(default=None, alias="selectedTaskIds")

class SprintEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: dict
    rollover: Optional[dict] = None


@router.get("/{sprint_id}", response_model=SprintEnvelope, response_model_exclude_none=True)
async def get_sprint(
    sprint_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_permission(Permission.PROJECT_VIEW))
):
    """Get sprint details"""

    sprint_service = SprintService(db)

    try:
        sprint = await sprint_service.get_sprint(sprint_id, actor)
    except SprintServiceError as e:
        raise to_http_exception(e)

    return SprintEnvelope(data=sprint_to_dict(sprint))


@router.post("/{sprint_id}/start", response_model=SprintEnvelope, response_model_exclude_none=True)
async def start_sprint(
    sprint_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_permission(Permission.SPRINT_START))
):
    """Start a sprint that is still in planning"""

    sprint_service = SprintService(db)

    try:
        sprint = await sprint_service.start_sprint(sprint_id, actor)
    except SprintServiceError as e:
        raise to_http_exception(e)

    return SprintEnvelope(message="Sprint started successfully", data=sprint_to_dict(sprint))


@router.post("/{sprint_id}/complete", response_model=SprintEnvelope)
async def complete_sprint(
    sprint_id: int,
    request: Optional[CompleteSprintRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_permission(Permission.SPRINT_COMPLETE))
):
    """Close an active sprint, carrying unfinished work forward or back to the backlog"""

    request = request or CompleteSprintRequest()
    sprint_service = SprintService(db)

    try:
        summary = await sprint_service.complete_sprint(
            sprint_id=sprint_id,
            actor=actor,
            target_sprint_id=request.target_sprint_id,
            selected_task_ids=request.selected_task_ids or []
        )
        sprint = await sprint_service.get_sprint(sprint_id)
    except SprintServiceError as e:
        raise to_http_exception(e)

    return SprintEnvelope(
        message="Sprint completed successfully",
        data=sprint_to_dict(sprint),
        rollover=summary.model_dump()
    )


@router.post("/{sprint_id}/tasks/{task_id}")
async def add_task_to_sprint(
    sprint_id: int,
    task_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_permission(Permission.SPRINT_MANAGE))
):
    """Assign a task to a sprint"""

    sprint_service = SprintService(db)

    try:
        task = await sprint_service.assign_task_to_sprint(sprint_id, task_id, actor)
    except SprintServiceError as e:
        raise to_http_exception(e)

    return {
        "success": True,
        "message": "Task added to sprint",
        "data": {"id": task.id, "sprint_id": task.sprint_id, "status": task.status}
    }
