from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_
from sqlalchemy.orm import selectinload

from ..models.enums import EpicStatus, SprintStatus, StoryStatus
from ..models.epic import Epic
from ..models.sprint import Sprint, sprint_tasks
from ..models.story import Story
from ..models.task import Task
from ..utils.logging import get_logger

logger = get_logger(__name__)

TaskId = int
SprintId = int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkItemStore:
    """
    Read/write surface over tasks, stories, sprints and epics.

    Every read refreshes objects already present in the session, so callers
    always observe the latest committed state rather than the identity map.
    Writes that change status are conditional updates: they only match rows
    that are not yet in the target state and report whether a row changed.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # Reads

    async def get_task(self, task_id: TaskId) -> Optional[Task]:
        stmt = select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_story(self, story_id: int) -> Optional[Story]:
        stmt = select(Story).where(Story.id == story_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_epic(self, epic_id: int) -> Optional[Epic]:
        stmt = select(Epic).where(Epic.id == epic_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_sprint(self, sprint_id: SprintId, with_details: bool = False) -> Optional[Sprint]:
        stmt = select(Sprint).where(Sprint.id == sprint_id)
        if with_details:
            stmt = stmt.options(
                selectinload(Sprint.project),
                selectinload(Sprint.created_by),
                selectinload(Sprint.team_members),
                selectinload(Sprint.tasks),
            )
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def find_tasks(
        self,
        *,
        ids: Optional[Iterable[TaskId]] = None,
        story_ids: Optional[Iterable[int]] = None,
        epic_id: Optional[int] = None,
        sprint_id: Optional[SprintId] = None,
        organization_id: Optional[int] = None,
        archived: Optional[bool] = False,
        status_in: Optional[Sequence[str]] = None,
        status_not_in: Optional[Sequence[str]] = None
    ) -> List[Task]:
        """Find tasks by parent reference. ``archived=None`` disables the archived filter."""

        conditions = []
        if ids is not None:
            conditions.append(Task.id.in_(list(ids)))
        if story_ids is not None:
            story_ids = list(story_ids)
            if not story_ids:
                return []
            conditions.append(Task.story_id.in_(story_ids))
        if epic_id is not None:
            conditions.append(Task.epic_id == epic_id)
        if sprint_id is not None:
            conditions.append(Task.sprint_id == sprint_id)
        if organization_id is not None:
            conditions.append(Task.organization_id == organization_id)
        if archived is not None:
            conditions.append(Task.archived == archived)
        if status_in is not None:
            conditions.append(Task.status.in_(list(status_in)))
        if status_not_in is not None:
            conditions.append(Task.status.not_in(list(status_not_in)))

        stmt = (
            select(Task)
            .where(and_(*conditions))
            .order_by(Task.id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_stories(
        self,
        *,
        sprint_id: Optional[SprintId] = None,
        epic_id: Optional[int] = None,
        project_id: Optional[int] = None,
        archived: Optional[bool] = None
    ) -> List[Story]:
        conditions = []
        if sprint_id is not None:
            conditions.append(Story.sprint_id == sprint_id)
        if epic_id is not None:
            conditions.append(Story.epic_id == epic_id)
        if project_id is not None:
            conditions.append(Story.project_id == project_id)
        if archived is not None:
            conditions.append(Story.archived == archived)

        stmt = (
            select(Story)
            .where(and_(*conditions))
            .order_by(Story.id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def ledger_task_ids(self, sprint_id: SprintId) -> List[TaskId]:
        stmt = (
            select(sprint_tasks.c.task_id)
            .where(sprint_tasks.c.sprint_id == sprint_id)
            .order_by(sprint_tasks.c.added_at, sprint_tasks.c.task_id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Conditional status writes

    async def mark_story_done(self, story_id: int) -> bool:
        stmt = (
            update(Story)
            .where(Story.id == story_id, Story.status != StoryStatus.DONE.value)
            .values(status=StoryStatus.DONE.value, completed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def mark_epic_done(self, epic_id: int) -> bool:
        stmt = (
            update(Epic)
            .where(Epic.id == epic_id, Epic.status != EpicStatus.DONE.value)
            .values(status=EpicStatus.DONE.value, completed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def mark_epic_in_progress(self, epic_id: int) -> bool:
        stmt = (
            update(Epic)
            .where(
                Epic.id == epic_id,
                Epic.status.not_in([EpicStatus.IN_PROGRESS.value, EpicStatus.DONE.value])
            )
            .values(status=EpicStatus.IN_PROGRESS.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def transition_sprint(
        self,
        sprint_id: SprintId,
        from_status: SprintStatus,
        to_status: SprintStatus,
        **values: Any
    ) -> bool:
        """Move a sprint between states only if it is still in ``from_status``."""

        stmt = (
            update(Sprint)
            .where(Sprint.id == sprint_id, Sprint.status == from_status.value)
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def complete_sprint_if_active(self, sprint_id: SprintId) -> bool:
        return await self.transition_sprint(
            sprint_id,
            SprintStatus.ACTIVE,
            SprintStatus.COMPLETED,
            actual_end_date=utcnow()
        )

    # Task writes

    async def update_tasks(self, task_ids: Sequence[TaskId], **values: Any) -> int:
        if not task_ids:
            return 0
        stmt = (
            update(Task)
            .where(Task.id.in_(list(task_ids)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    # Sprint ledger

    async def add_to_ledger(self, sprint_id: SprintId, task_ids: Sequence[TaskId]) -> None:
        """Add tasks to a sprint ledger with set semantics."""

        task_ids = list(dict.fromkeys(task_ids))
        if not task_ids:
            return

        rows = [{"sprint_id": sprint_id, "task_id": task_id} for task_id in task_ids]
        insert = self._insert_ignoring_conflicts()
        if insert is not None:
            await self.db.execute(insert(sprint_tasks).values(rows).on_conflict_do_nothing())
            return

        existing = set(await self.ledger_task_ids(sprint_id))
        missing = [row for row in rows if row["task_id"] not in existing]
        if missing:
            await self.db.execute(sprint_tasks.insert().values(missing))

    async def remove_from_ledger(self, sprint_id: SprintId, task_ids: Sequence[TaskId]) -> None:
        if not task_ids:
            return
        stmt = delete(sprint_tasks).where(
            sprint_tasks.c.sprint_id == sprint_id,
            sprint_tasks.c.task_id.in_(list(task_ids))
        )
        await self.db.execute(stmt)

    def _insert_ignoring_conflicts(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
            return insert
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
            return insert
        logger.debug("No native add-to-set for dialect %s, using select-then-insert", dialect)
        return None

    # Transaction control

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
