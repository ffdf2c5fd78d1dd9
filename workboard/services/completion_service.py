from __future__ import annotations

from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.enums import EpicStatus, StoryStatus, TaskStatus
from ..services.work_item_store import WorkItemStore
from ..utils.logging import get_logger

logger = get_logger(__name__)

TaskId = int
StoryId = int
SprintId = int
EpicId = int


class CompletionService:
    """
    Upward completion cascade: Task -> Story -> Sprint / Epic.

    Every public check is best-effort. A failing step is logged, its partial
    writes are rolled back, and the caller never sees the error; writes that
    already committed (for example the story transition that triggered an epic
    check) stay committed. All status writes are conditional, so running a
    check twice, or concurrently, converges on the same outcome.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.store = WorkItemStore(db)

    async def handle_task_status_change(self, task_id: TaskId) -> None:
        """Entry point after a task's status has been written."""

        try:
            task = await self.store.get_task(task_id)
            if task is None or task.status != TaskStatus.DONE.value:
                return

            story_id, direct_epic_id = task.story_id, task.epic_id
            epic_ids: List[EpicId] = []

            if story_id is not None:
                await self.check_story_completion(story_id, cascade_to_epic=False)
                # Re-evaluate the story's epic even when the story was already done,
                # so a later task write repairs an epic check that failed earlier.
                story = await self.store.get_story(story_id)
                if story is not None and story.epic_id is not None:
                    epic_ids.append(story.epic_id)

            if direct_epic_id is not None:
                epic_ids.append(direct_epic_id)

            for epic_id in dict.fromkeys(epic_ids):
                await self.check_epic_completion(epic_id)

        except Exception as e:
            await self._discard(e, "Error handling task status change for task %s", task_id)

    async def check_story_completion(self, story_id: StoryId, cascade_to_epic: bool = True) -> bool:
        """
        Mark a story done when all of its non-archived tasks are done.

        Returns True only when this call moved the story to done. A story
        without active tasks is never completed here.
        """

        try:
            story = await self.store.get_story(story_id)
            if story is None:
                return False

            tasks = await self.store.find_tasks(story_ids=[story_id], archived=False)
            if not tasks:
                return False

            if not all(task.status == TaskStatus.DONE.value for task in tasks):
                return False

            if story.status == StoryStatus.DONE.value:
                return False

            sprint_id, epic_id = story.sprint_id, story.epic_id
            transitioned = await self.store.mark_story_done(story_id)
            await self.store.commit()

        except Exception as e:
            await self._discard(e, "Error checking story completion for story %s", story_id)
            return False

        if not transitioned:
            logger.debug("Story %s was completed by a concurrent update", story_id)
            return False

        logger.info("Story %s completed: all %d tasks done", story_id, len(tasks))

        if sprint_id is not None:
            await self.check_sprint_completion(sprint_id)

        if cascade_to_epic and epic_id is not None:
            await self.check_epic_completion(epic_id)

        return True

    async def check_sprint_completion(self, sprint_id: SprintId) -> bool:
        """
        Automatically complete an active sprint once every story in it is done.

        Only sprints in `active` move to `completed`; a sprint still in
        `planning` (or `cancelled`) is left alone even when all its stories
        are done. The write is the same conditional active -> completed update
        the manual closure uses, so whichever writer lands second is a no-op.
        """

        try:
            sprint = await self.store.get_sprint(sprint_id)
            if sprint is None:
                return False

            stories = await self.store.find_stories(sprint_id=sprint_id)
            if not stories:
                return False

            if not all(story.status == StoryStatus.DONE.value for story in stories):
                return False

            previous_status = sprint.status
            epic_ids = [story.epic_id for story in stories if story.epic_id is not None]
            transitioned = await self.store.complete_sprint_if_active(sprint_id)
            await self.store.commit()

        except Exception as e:
            await self._discard(e, "Error checking sprint completion for sprint %s", sprint_id)
            return False

        if not transitioned:
            logger.debug("Sprint %s not auto-completed (status %s)", sprint_id, previous_status)
            return False

        logger.info("Sprint %s auto-completed: all %d stories done", sprint_id, len(stories))

        for epic_id in dict.fromkeys(epic_ids):
            await self.check_epic_completion(epic_id)

        return True

    async def check_epic_completion(self, epic_id: EpicId) -> bool:
        """
        Mark an epic done when both of these hold:

        1. every story of the epic is done (true when it has no stories)
        2. every non-archived task reachable through those stories, or linked
           to the epic directly, is done (true when there are none)

        An epic with neither stories nor tasks therefore completes the first
        time it is evaluated.
        """

        try:
            epic = await self.store.get_epic(epic_id)
            if epic is None:
                return False

            stories = await self.store.find_stories(epic_id=epic_id)
            stories_complete = all(story.status == StoryStatus.DONE.value for story in stories)

            story_tasks = await self.store.find_tasks(
                story_ids=[story.id for story in stories],
                archived=False
            )
            direct_tasks = await self.store.find_tasks(epic_id=epic_id, archived=False)

            tasks = {task.id: task for task in story_tasks}
            tasks.update((task.id, task) for task in direct_tasks)
            tasks_complete = all(task.status == TaskStatus.DONE.value for task in tasks.values())

            if not (stories_complete and tasks_complete):
                return False

            if epic.status == EpicStatus.DONE.value:
                return False

            transitioned = await self.store.mark_epic_done(epic_id)
            await self.store.commit()

        except Exception as e:
            await self._discard(e, "Error checking epic completion for epic %s", epic_id)
            return False

        if transitioned:
            logger.info(
                "Epic %s completed: %d stories and %d tasks done",
                epic_id, len(stories), len(tasks)
            )
        return transitioned

    async def update_epic_status_on_task_added_to_sprint(self, task_id: TaskId) -> bool:
        """Move a task's direct epic to in_progress once the task enters a sprint."""

        try:
            task = await self.store.get_task(task_id)
            if task is None or task.epic_id is None:
                return False

            epic_id = task.epic_id
            transitioned = await self.store.mark_epic_in_progress(epic_id)
            await self.store.commit()

        except Exception as e:
            await self._discard(e, "Error updating epic status for task %s", task_id)
            return False

        if transitioned:
            logger.info("Epic %s moved to in_progress by task %s", epic_id, task_id)
        return transitioned

    async def check_project_completion(self, project_id: int) -> None:
        """Re-run sprint and epic evaluation for every story in a project."""

        try:
            stories = await self.store.find_stories(project_id=project_id)
        except Exception as e:
            await self._discard(e, "Error checking project completion for project %s", project_id)
            return

        sprint_ids = [story.sprint_id for story in stories if story.sprint_id is not None]
        epic_ids = [story.epic_id for story in stories if story.epic_id is not None]

        for sprint_id in dict.fromkeys(sprint_ids):
            await self.check_sprint_completion(sprint_id)

        for epic_id in dict.fromkeys(epic_ids):
            await self.check_epic_completion(epic_id)

        logger.info(
            "Project %s completion check covered %d sprints and %d epics",
            project_id, len(set(sprint_ids)), len(set(epic_ids))
        )

    async def _discard(self, error: Exception, message: str, *args: object) -> None:
        logger.error(message + ": %s", *args, str(error))
        try:
            await self.store.rollback()
        except Exception as rollback_error:
            logger.error("Rollback after completion failure also failed: %s", str(rollback_error))
