from enum import Enum


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    TESTING = "testing"
    DONE = "done"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class StoryStatus(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DONE = "done"
    CANCELLED = "cancelled"


class EpicStatus(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DONE = "done"
    CANCELLED = "cancelled"


class SprintStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Task statuses grouped the way the sprint lifecycle reads them
FINISHED_TASK_STATUSES = (TaskStatus.DONE.value, TaskStatus.COMPLETED.value)
CLOSED_TASK_STATUSES = (
    TaskStatus.DONE.value,
    TaskStatus.CANCELLED.value,
    TaskStatus.COMPLETED.value,
)
TERMINAL_SPRINT_STATUSES = (SprintStatus.COMPLETED.value, SprintStatus.CANCELLED.value)
