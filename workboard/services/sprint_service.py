from __future__ import annotations

from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
    TYPE_CHECKING
)
from datetime import datetime, timezone
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, ConfigDict, Field

from ..config import settings
from ..core.context import ActorContext
from ..models.enums import (
    CLOSED_TASK_STATUSES,
    FINISHED_TASK_STATUSES,
    TERMINAL_SPRINT_STATUSES,
    SprintStatus,
    TaskStatus,
)
from .completion_service import CompletionService
from .rollover import RolloverPlan, resolve_rollover
from .work_item_store import WorkItemStore

if TYPE_CHECKING:
    from ..models.sprint import Sprint
    from ..models.task import Task

# Type aliases
SprintId = int
TaskId = int
OrganizationId = int


# Pydantic models
class IncompleteSubtask(BaseModel):
    title: str
    status: str


class IncompleteTaskReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: TaskId = Field(alias="taskId")
    task_title: str = Field(alias="taskTitle")
    incomplete_subtasks: List[IncompleteSubtask] = Field(default_factory=list, alias="incompleteSubtasks")


class SprintClosureSummary(BaseModel):
    sprint_id: SprintId
    target_sprint_id: Optional[SprintId] = None
    resumed: bool = False
    moved_to_sprint: List[TaskId] = Field(default_factory=list)
    moved_to_backlog: List[TaskId] = Field(default_factory=list)
    left_in_place: List[TaskId] = Field(default_factory=list)
    archived: List[TaskId] = Field(default_factory=list)


# Custom exceptions
class SprintServiceError(Exception):
    def __init__(self, message: str, sprint_id: Optional[SprintId] = None) -> None:
        super().__init__(message)
        self.sprint_id = sprint_id

class SprintValidationError(SprintServiceError):
    pass

class SprintNotFoundError(SprintServiceError):
    def __init__(self, sprint_id: SprintId) -> None:
        super().__init__("Sprint not found", sprint_id)

class TargetSprintNotFoundError(SprintServiceError):
    def __init__(self, sprint_id: SprintId) -> None:
        super().__init__("Target sprint not found", sprint_id)

class TaskNotFoundError(SprintServiceError):
    def __init__(self, task_id: TaskId) -> None:
        super().__init__("Task not found or unauthorized")
        self.task_id = task_id

class SprintAccessDeniedError(SprintServiceError):
    pass

class InvalidStatusTransitionError(SprintServiceError):
    def __init__(self, current: str, new: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Invalid transition from {current} to {new}")
        self.current = current
        self.new = new

class IncompleteSubtasksError(SprintValidationError):
    def __init__(self, sprint_id: SprintId, tasks: List[IncompleteTaskReport]) -> None:
        super().__init__(
            "Cannot complete sprint: some tasks have incomplete subtasks. "
            "Complete them or choose a sprint to move the work into.",
            sprint_id
        )
        self.tasks = tasks

    def to_payload(self) -> List[Dict[str, Any]]:
        return [task.model_dump(by_alias=True) for task in self.tasks]


# Main service class
class SprintService:
    """
    Sprint lifecycle: starting a sprint, assigning work to it and closing it.

    Closing a sprint validates every precondition before writing anything,
    then runs three independently committed steps (status, rollover of
    incomplete tasks, archival of finished tasks). Each step only touches
    rows still in the state it expects. When a later step fails, calling
    ``complete_sprint`` again on the now completed sprint runs the remaining
    steps.
    """

    def __init__(
        self,
        db: AsyncSession,
        require_tasks_to_close: Optional[bool] = None
    ) -> None:
        self.db = db
        self.store = WorkItemStore(db)
        self.require_tasks_to_close = (
            settings.sprint_close_requires_tasks
            if require_tasks_to_close is None
            else require_tasks_to_close
        )
        self._logger = logging.getLogger(__name__)

    async def get_sprint(
        self,
        sprint_id: SprintId,
        actor: Optional[ActorContext] = None
    ) -> Sprint:
        """Get a sprint with project, creator, team members and task ledger loaded."""

        sprint = await self.store.get_sprint(sprint_id, with_details=True)
        if sprint is None:
            raise SprintNotFoundError(sprint_id)

        if actor is not None and not actor.owns(sprint.organization_id):
            raise SprintAccessDeniedError("Unauthorized to access this sprint", sprint_id)

        return sprint

    async def start_sprint(self, sprint_id: SprintId, actor: ActorContext) -> Sprint:
        """Move a planning sprint to active and reset its tasks to todo."""

        sprint = await self._load_owned_sprint(sprint_id, actor, "Unauthorized to start this sprint")

        if sprint.status != SprintStatus.PLANNING.value:
            raise InvalidStatusTransitionError(
                sprint.status,
                SprintStatus.ACTIVE.value,
                "Only sprints in planning can be started"
            )

        now = datetime.now(timezone.utc)
        try:
            started = await self.store.transition_sprint(
                sprint_id,
                SprintStatus.PLANNING,
                SprintStatus.ACTIVE,
                actual_start_date=now
            )
            if not started:
                raise InvalidStatusTransitionError(
                    sprint.status,
                    SprintStatus.ACTIVE.value,
                    "Only sprints in planning can be started"
                )

            tasks = await self.store.find_tasks(sprint_id=sprint_id, archived=False)
            await self.store.update_tasks(
                [task.id for task in tasks],
                status=TaskStatus.TODO.value,
                start_date=now
            )
            await self.store.commit()

        except Exception as e:
            await self.store.rollback()
            self._logger.error("Failed to start sprint %d: %s", sprint_id, str(e))
            if isinstance(e, SprintServiceError):
                raise
            raise SprintServiceError(f"Sprint start failed: {str(e)}", sprint_id)

        self._logger.info("Started sprint %d with %d tasks", sprint_id, len(tasks))
        return await self.get_sprint(sprint_id)

    async def assign_task_to_sprint(
        self,
        sprint_id: SprintId,
        task_id: TaskId,
        actor: ActorContext
    ) -> Task:
        """Put a task in a sprint and record it in the sprint's ledger."""

        sprint = await self._load_owned_sprint(sprint_id, actor, "Unauthorized to add tasks to this sprint")

        if sprint.status in TERMINAL_SPRINT_STATUSES:
            raise SprintValidationError(
                "Cannot add tasks to a completed or cancelled sprint", sprint_id
            )

        task = await self.store.get_task(task_id)
        if task is None or not actor.owns(task.organization_id):
            raise TaskNotFoundError(task_id)

        try:
            await self.store.update_tasks([task_id], sprint_id=sprint_id)
            await self.store.add_to_ledger(sprint_id, [task_id])
            await self.store.commit()
        except Exception as e:
            await self.store.rollback()
            self._logger.error("Failed to add task %d to sprint %d: %s", task_id, sprint_id, str(e))
            raise SprintServiceError(f"Task assignment failed: {str(e)}", sprint_id)

        self._logger.info("Added task %d to sprint %d", task_id, sprint_id)

        await CompletionService(self.db).update_epic_status_on_task_added_to_sprint(task_id)

        return await self.store.get_task(task_id)

    async def complete_sprint(
        self,
        sprint_id: SprintId,
        actor: ActorContext,
        target_sprint_id: Optional[SprintId] = None,
        selected_task_ids: Optional[Sequence[TaskId]] = None
    ) -> SprintClosureSummary:
        """
        Close an active sprint, or finish the closure of a completed one.

        Incomplete tasks are carried into ``target_sprint_id`` or returned to
        the backlog (see ``resolve_rollover``); finished tasks are archived but
        stay in the sprint's ledger. Without a target sprint, closure is
        refused while any task still has incomplete subtasks.

        A completed sprint that still holds non-archived, non-cancelled tasks
        (a closure that failed after the status write, or an automatic
        completion) is accepted again; only rollover and archival run for it.
        """

        selected_task_ids = list(selected_task_ids or [])

        # Preconditions: nothing is written until all of these pass
        sprint = await self._load_owned_sprint(sprint_id, actor, "Unauthorized to complete this sprint")
        current_status = sprint.status

        resuming = False
        if current_status == SprintStatus.COMPLETED.value:
            resuming = await self._has_unfinished_closure(sprint_id)

        if current_status != SprintStatus.ACTIVE.value and not resuming:
            raise InvalidStatusTransitionError(
                current_status,
                SprintStatus.COMPLETED.value,
                "Only active sprints can be completed"
            )

        if self.require_tasks_to_close and not resuming:
            active_tasks = await self.store.find_tasks(sprint_id=sprint_id, archived=False)
            if not active_tasks:
                raise SprintValidationError("Add tasks to this sprint before completing it", sprint_id)

        target_sprint_id = await self._resolve_target_sprint(sprint_id, target_sprint_id, actor)

        if target_sprint_id is None:
            blocking = await self._collect_incomplete_subtasks(sprint_id)
            if blocking:
                self._logger.info(
                    "Refusing to close sprint %d: %d tasks have incomplete subtasks",
                    sprint_id, len(blocking)
                )
                raise IncompleteSubtasksError(sprint_id, blocking)

        self._logger.info(
            "%s sprint %d (target sprint: %s, selected tasks: %d)",
            "Resuming closure of" if resuming else "Closing",
            sprint_id, target_sprint_id, len(selected_task_ids)
        )

        summary = SprintClosureSummary(
            sprint_id=sprint_id,
            target_sprint_id=target_sprint_id,
            resumed=resuming
        )

        try:
            if not resuming:
                completed = await self.store.complete_sprint_if_active(sprint_id)
                if not completed:
                    raise InvalidStatusTransitionError(
                        current_status,
                        SprintStatus.COMPLETED.value,
                        "Only active sprints can be completed"
                    )
                await self.store.commit()

            plan = await self._roll_over_incomplete_tasks(sprint_id, target_sprint_id, selected_task_ids)
            summary.moved_to_sprint = plan.moves_to_target
            summary.moved_to_backlog = plan.to_backlog
            summary.left_in_place = plan.left_in_place

            summary.archived = await self._archive_finished_tasks(sprint_id)

        except Exception as e:
            await self.store.rollback()
            self._logger.error("Failed to complete sprint %d: %s", sprint_id, str(e))
            if isinstance(e, SprintServiceError):
                raise
            raise SprintServiceError(f"Sprint completion failed: {str(e)}", sprint_id)

        self._logger.info(
            "Completed sprint %d: %d to sprint %s, %d to backlog, %d left in place, %d archived",
            sprint_id,
            len(summary.moved_to_sprint),
            target_sprint_id,
            len(summary.moved_to_backlog),
            len(summary.left_in_place),
            len(summary.archived)
        )
        if summary.left_in_place:
            self._logger.warning(
                "Sprint %d closed with selected tasks %s but no target sprint; they were not moved",
                sprint_id, summary.left_in_place
            )

        return summary

    # Private methods

    async def _has_unfinished_closure(self, sprint_id: SprintId) -> bool:
        pending = await self.store.find_tasks(
            sprint_id=sprint_id,
            archived=False,
            status_not_in=[TaskStatus.CANCELLED.value]
        )
        return bool(pending)

    async def _load_owned_sprint(
        self,
        sprint_id: SprintId,
        actor: ActorContext,
        denied_message: str
    ) -> Sprint:
        sprint = await self.store.get_sprint(sprint_id)
        if sprint is None:
            raise SprintNotFoundError(sprint_id)

        if not actor.owns(sprint.organization_id):
            raise SprintAccessDeniedError(denied_message, sprint_id)

        return sprint

    async def _resolve_target_sprint(
        self,
        sprint_id: SprintId,
        target_sprint_id: Optional[SprintId],
        actor: ActorContext
    ) -> Optional[SprintId]:
        """Validate the sprint receiving carried-over work; closing into itself means no target."""

        if target_sprint_id is None:
            return None

        target = await self.store.get_sprint(target_sprint_id)
        if target is None:
            raise TargetSprintNotFoundError(target_sprint_id)

        if not actor.owns(target.organization_id):
            raise SprintAccessDeniedError("Unauthorized to move tasks to this sprint", target_sprint_id)

        if target.status in TERMINAL_SPRINT_STATUSES:
            raise SprintValidationError(
                "Cannot move tasks into a completed or cancelled sprint", target_sprint_id
            )

        if target.id == sprint_id:
            return None

        return target.id

    async def _collect_incomplete_subtasks(self, sprint_id: SprintId) -> List[IncompleteTaskReport]:
        tasks = await self.store.find_tasks(sprint_id=sprint_id, archived=False)

        reports: List[IncompleteTaskReport] = []
        for task in tasks:
            pending = [subtask for subtask in task.subtasks if subtask.is_incomplete]
            if pending:
                reports.append(
                    IncompleteTaskReport(
                        task_id=task.id,
                        task_title=task.title,
                        incomplete_subtasks=[
                            IncompleteSubtask(title=subtask.title, status=subtask.status)
                            for subtask in pending
                        ]
                    )
                )
        return reports

    async def _roll_over_incomplete_tasks(
        self,
        sprint_id: SprintId,
        target_sprint_id: Optional[SprintId],
        selected_task_ids: List[TaskId]
    ) -> RolloverPlan:
        incomplete = await self.store.find_tasks(
            sprint_id=sprint_id,
            archived=False,
            status_not_in=CLOSED_TASK_STATUSES
        )
        plan = resolve_rollover(
            [task.id for task in incomplete],
            target_sprint_id=target_sprint_id,
            selected_task_ids=selected_task_ids
        )

        if plan.moves_to_target:
            await self.store.update_tasks(
                plan.moves_to_target,
                sprint_id=target_sprint_id,
                status=TaskStatus.TODO.value
            )
            await self.store.add_to_ledger(target_sprint_id, plan.moves_to_target)

        if plan.to_backlog:
            await self.store.update_tasks(
                plan.to_backlog,
                sprint_id=None,
                status=TaskStatus.BACKLOG.value,
                moved_from_sprint_id=sprint_id
            )
            await self.store.remove_from_ledger(sprint_id, plan.to_backlog)

        await self.store.commit()
        return plan

    async def _archive_finished_tasks(self, sprint_id: SprintId) -> List[TaskId]:
        finished = await self.store.find_tasks(
            sprint_id=sprint_id,
            archived=False,
            status_in=FINISHED_TASK_STATUSES
        )
        task_ids = [task.id for task in finished]

        # Archived tasks stay in the ledger for reporting
        await self.store.update_tasks(task_ids, archived=True)
        await self.store.commit()
        return task_ids


def sprint_to_dict(sprint: Sprint) -> Dict[str, Any]:
    """Convert a Sprint loaded with details to a response dictionary."""

    def person(user: Any) -> Optional[Dict[str, Any]]:
        if user is None:
            return None
        return {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email
        }

    return {
        "id": sprint.id,
        "name": sprint.name,
        "goal": sprint.goal,
        "status": sprint.status,
        "start_date": sprint.start_date.isoformat() if sprint.start_date else None,
        "end_date": sprint.end_date.isoformat() if sprint.end_date else None,
        "actual_start_date": sprint.actual_start_date.isoformat() if sprint.actual_start_date else None,
        "actual_end_date": sprint.actual_end_date.isoformat() if sprint.actual_end_date else None,
        "organization_id": sprint.organization_id,
        "project": {"id": sprint.project.id, "name": sprint.project.name} if sprint.project else None,
        "created_by": person(sprint.created_by),
        "team_members": [person(member) for member in sprint.team_members],
        "tasks": [task.id for task in sprint.tasks],
        "created_at": sprint.created_at.isoformat() if sprint.created_at else None,
        "updated_at": sprint.updated_at.isoformat() if sprint.updated_at else None
    }


# Export main types for use in other modules
__all__ = [
    "SprintService",
    "IncompleteSubtask",
    "IncompleteTaskReport",
    "SprintClosureSummary",
    "SprintServiceError",
    "SprintValidationError",
    "SprintNotFoundError",
    "TargetSprintNotFoundError",
    "TaskNotFoundError",
    "SprintAccessDeniedError",
    "InvalidStatusTransitionError",
    "IncompleteSubtasksError",
    "sprint_to_dict"
]
