import os
from typing import Iterable, Optional, Sequence

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("COMPLETION_WORKER_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workboard.core.context import ActorContext
from workboard.core.permissions import Permission
from workboard.database import create_tables
from workboard.models import (
    Epic, Organization, Project, Sprint, Story, Subtask, Task, User, sprint_tasks
)
from workboard.models.enums import EpicStatus, SprintStatus, StoryStatus, TaskStatus
from workboard.services.work_item_store import WorkItemStore


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'workboard-test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db) -> WorkItemStore:
    return WorkItemStore(db)


class WorkItemFactory:
    """Creates committed work items for one organization and project."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.organization: Optional[Organization] = None
        self.project: Optional[Project] = None
        self.user: Optional[User] = None

    async def setup(self, name: str = "Acme") -> "WorkItemFactory":
        self.organization = await self._save(Organization(name=name))
        self.project = await self._save(Project(name=f"{name} portal", organization_id=self.organization.id))
        self.user = await self._save(
            User(
                email=f"owner@{name.lower()}.example",
                first_name="Sam",
                last_name="Owner",
                organization_id=self.organization.id
            )
        )
        return self

    def actor(self, permissions: Iterable[Permission] = tuple(Permission)) -> ActorContext:
        return ActorContext.build(self.user.id, self.organization.id, [p.value for p in permissions])

    async def epic(self, status: EpicStatus = EpicStatus.BACKLOG, title: str = "Epic") -> Epic:
        return await self._save(
            Epic(
                title=title,
                status=status.value,
                organization_id=self.organization.id,
                project_id=self.project.id
            )
        )

    async def sprint(self, status: SprintStatus = SprintStatus.ACTIVE, name: str = "Sprint") -> Sprint:
        return await self._save(
            Sprint(
                name=name,
                status=status.value,
                organization_id=self.organization.id,
                project_id=self.project.id,
                created_by_id=self.user.id,
                team_members=[self.user]
            )
        )

    async def story(
        self,
        status: StoryStatus = StoryStatus.IN_PROGRESS,
        sprint: Optional[Sprint] = None,
        epic: Optional[Epic] = None,
        title: str = "Story"
    ) -> Story:
        return await self._save(
            Story(
                title=title,
                status=status.value,
                organization_id=self.organization.id,
                project_id=self.project.id,
                sprint_id=sprint.id if sprint else None,
                epic_id=epic.id if epic else None
            )
        )

    async def task(
        self,
        status: TaskStatus = TaskStatus.TODO,
        story: Optional[Story] = None,
        epic: Optional[Epic] = None,
        sprint: Optional[Sprint] = None,
        archived: bool = False,
        title: str = "Task",
        subtasks: Sequence[tuple] = ()
    ) -> Task:
        """``subtasks`` is a sequence of (title, status, is_completed)."""
        task = await self._save(
            Task(
                title=title,
                status=status.value,
                archived=archived,
                organization_id=self.organization.id,
                project_id=self.project.id,
                story_id=story.id if story else None,
                epic_id=epic.id if epic else None,
                sprint_id=sprint.id if sprint else None,
                subtasks=[
                    Subtask(title=sub_title, status=sub_status, is_completed=done, position=position)
                    for position, (sub_title, sub_status, done) in enumerate(subtasks)
                ]
            )
        )
        if sprint is not None:
            await self.db.execute(sprint_tasks.insert().values(sprint_id=sprint.id, task_id=task.id))
            await self.db.commit()
        return task

    async def _save(self, instance):
        self.db.add(instance)
        await self.db.commit()
        return instance


@pytest.fixture
async def factory(db) -> WorkItemFactory:
    return await WorkItemFactory(db).setup()


@pytest.fixture
def actor(factory) -> ActorContext:
    return factory.actor()


@pytest.fixture
async def other_factory(db) -> WorkItemFactory:
    """Work items of a second, unrelated organization."""
    return await WorkItemFactory(db).setup("Globex")
