"""
Mapped work-item models.

Importing this package registers every table on ``Base.metadata``.
"""

from .base import Base, BaseModel
from .enums import TaskStatus, StoryStatus, EpicStatus, SprintStatus
from .organization import Organization, Project
from .user import User
from .epic import Epic
from .story import Story
from .task import Task, Subtask
from .sprint import Sprint, sprint_tasks, sprint_members

__all__ = [
    "Base",
    "BaseModel",
    "TaskStatus",
    "StoryStatus",
    "EpicStatus",
    "SprintStatus",
    "Organization",
    "Project",
    "User",
    "Epic",
    "Story",
    "Task",
    "Subtask",
    "Sprint",
    "sprint_tasks",
    "sprint_members",
]
