from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...core.auth import require_permission
from ...core.context import ActorContext
from ...core.permissions import Permission
from ...models.organization import Project
from ...services.completion_service import CompletionService

router = APIRouter()


@router.post("/{project_id}/completion-check")
async def check_project_completion(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    actor: ActorContext = Depends(require_permission(Permission.SPRINT_MANAGE))
):
    """Re-run sprint and epic completion for every story of a project"""

    project = await db.get(Project, project_id)
    if project is None or not actor.owns(project.organization_id):
        raise HTTPException(status_code=404, detail={"error": "Project not found"})

    await CompletionService(db).check_project_completion(project_id)

    return {"success": True, "message": "Completion check finished"}
