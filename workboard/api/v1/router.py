from fastapi import APIRouter
from .sprints import router as sprints_router
from .tasks import router as tasks_router
from .projects import router as projects_router

api_router = APIRouter()

# Include all sub-routers
api_router.include_router(sprints_router, prefix="/sprints", tags=["sprints"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
