from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.context import ActorContext
from ..models.enums import FINISHED_TASK_STATUSES, TaskStatus
from ..models.task import Task
from ..services.sprint_service import SprintValidationError, TaskNotFoundError
from ..services.work_item_store import WorkItemStore
from ..utils.logging import get_logger
from ..workers.completion_worker import CompletionEventPublisher, TaskCompletedEvent

logger = get_logger(__name__)


class TaskService:
    """Task status writes; completion events go out only after the write commits."""

    def __init__(self, db: AsyncSession, events: Optional[CompletionEventPublisher] = None):
        self.db = db
        self.store = WorkItemStore(db)
        self.events = events

    async def update_status(self, task_id: int, status: TaskStatus, actor: ActorContext) -> Task:
        """Update one task's status"""

        task = await self.store.get_task(task_id)
        if task is None or not actor.owns(task.organization_id):
            raise TaskNotFoundError(task_id)

        previous = task.status

        try:
            await self.store.update_tasks([task_id], status=status.value)
            await self.store.commit()
        except Exception as e:
            await self.store.rollback()
            logger.error(f"Failed to update status of task {task_id}: {str(e)}")
            raise

        logger.info(f"Task {task_id} status {previous} -> {status.value}")

        if status == TaskStatus.DONE and previous != TaskStatus.DONE.value:
            self._publish(task_id, actor)

        return await self.store.get_task(task_id)

    async def bulk_update_status(
        self,
        task_ids: Sequence[int],
        status: TaskStatus,
        actor: ActorContext
    ) -> List[Task]:
        """Update the status of many tasks of the actor's organization at once"""

        task_ids = list(dict.fromkeys(task_ids))
        if not task_ids:
            raise SprintValidationError("taskIds are required")

        tasks = await self.store.find_tasks(
            ids=task_ids,
            organization_id=actor.organization_id,
            archived=None
        )
        if len(tasks) != len(task_ids):
            raise TaskNotFoundError(next(iter(set(task_ids) - {task.id for task in tasks})))

        try:
            await self.store.update_tasks(task_ids, status=status.value)
            await self.store.commit()
        except Exception as e:
            await self.store.rollback()
            logger.error(f"Bulk status update failed: {str(e)}")
            raise

        logger.info(f"Bulk updated {len(task_ids)} tasks to {status.value}")

        if status.value in FINISHED_TASK_STATUSES:
            for task_id in task_ids:
                self._publish(task_id, actor)

        return await self.store.find_tasks(ids=task_ids, archived=None)

    def _publish(self, task_id: int, actor: ActorContext) -> None:
        if self.events is None:
            logger.warning(f"No completion publisher configured, task {task_id} cascade skipped")
            return
        self.events.publish(TaskCompletedEvent(task_id=task_id, organization_id=actor.organization_id))
