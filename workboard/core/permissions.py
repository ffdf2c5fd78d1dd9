from enum import Enum


class Permission(str, Enum):
    PROJECT_VIEW = "project:view"
    SPRINT_MANAGE = "sprint:manage"
    SPRINT_START = "sprint:start"
    SPRINT_COMPLETE = "sprint:complete"
    TASK_UPDATE = "task:update"


PERMISSION_DENIED_MESSAGES = {
    Permission.PROJECT_VIEW: "You do not have permission to view this project",
    Permission.SPRINT_MANAGE: "You do not have permission to manage sprints",
    Permission.SPRINT_START: "You do not have permission to start this sprint",
    Permission.SPRINT_COMPLETE: "You do not have permission to complete this sprint",
    Permission.TASK_UPDATE: "You do not have permission to update tasks",
}
