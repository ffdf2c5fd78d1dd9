import pytest

from workboard.models.enums import EpicStatus, SprintStatus, TaskStatus
from workboard.services.sprint_service import (
    IncompleteSubtasksError,
    InvalidStatusTransitionError,
    SprintAccessDeniedError,
    SprintNotFoundError,
    SprintService,
    SprintServiceError,
    SprintValidationError,
    TargetSprintNotFoundError,
    TaskNotFoundError,
)


async def test_closure_refused_while_subtasks_are_open(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    blocked = await factory.task(
        TaskStatus.IN_PROGRESS,
        sprint=sprint,
        title="Checkout flow",
        subtasks=[
            ("Write tests", "todo", False),
            ("Wire payment", "done", False),
            ("Update copy", "todo", True),
        ]
    )
    await factory.task(TaskStatus.DONE, sprint=sprint, subtasks=[("Deploy", "done", True)])

    with pytest.raises(IncompleteSubtasksError) as exc_info:
        await SprintService(db).complete_sprint(sprint.id, actor)

    assert exc_info.value.to_payload() == [
        {
            "taskId": blocked.id,
            "taskTitle": "Checkout flow",
            "incompleteSubtasks": [{"title": "Write tests", "status": "todo"}],
        }
    ]

    refreshed = await store.get_sprint(sprint.id)
    assert refreshed.status == SprintStatus.ACTIVE.value
    assert refreshed.actual_end_date is None
    assert (await store.get_task(blocked.id)).sprint_id == sprint.id


async def test_archived_tasks_do_not_block_closure(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    await factory.task(TaskStatus.TODO, sprint=sprint, archived=True, subtasks=[("Old", "todo", False)])

    await SprintService(db).complete_sprint(sprint.id, actor)

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.COMPLETED.value


async def test_target_sprint_bypasses_subtask_check(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    target = await factory.sprint(SprintStatus.PLANNING, name="Next")
    task = await factory.task(TaskStatus.IN_PROGRESS, sprint=sprint, subtasks=[("Open", "todo", False)])

    await SprintService(db).complete_sprint(sprint.id, actor, target_sprint_id=target.id)

    moved = await store.get_task(task.id)
    assert moved.sprint_id == target.id
    assert moved.status == TaskStatus.TODO.value
    assert (await store.get_sprint(sprint.id)).status == SprintStatus.COMPLETED.value


async def test_closure_partitions_tasks_between_target_and_backlog(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    target = await factory.sprint(SprintStatus.PLANNING, name="Next")
    finished = await factory.task(TaskStatus.DONE, sprint=sprint)
    selected = await factory.task(TaskStatus.IN_PROGRESS, sprint=sprint)
    unselected = await factory.task(TaskStatus.TODO, sprint=sprint)
    cancelled = await factory.task(TaskStatus.CANCELLED, sprint=sprint)

    summary = await SprintService(db).complete_sprint(
        sprint.id,
        actor,
        target_sprint_id=target.id,
        selected_task_ids=[selected.id]
    )

    assert summary.resumed is False
    assert summary.moved_to_sprint == [selected.id]
    assert summary.moved_to_backlog == [unselected.id]
    assert summary.archived == [finished.id]
    closed = await store.get_sprint(sprint.id)
    assert closed.status == SprintStatus.COMPLETED.value
    assert closed.actual_end_date is not None

    carried = await store.get_task(selected.id)
    assert carried.sprint_id == target.id
    assert carried.status == TaskStatus.TODO.value

    returned = await store.get_task(unselected.id)
    assert returned.sprint_id is None
    assert returned.status == TaskStatus.BACKLOG.value
    assert returned.moved_from_sprint_id == sprint.id

    archived = await store.get_task(finished.id)
    assert archived.archived is True
    assert archived.sprint_id == sprint.id

    untouched = await store.get_task(cancelled.id)
    assert untouched.status == TaskStatus.CANCELLED.value
    assert untouched.sprint_id == sprint.id
    assert untouched.archived is False

    assert await store.ledger_task_ids(target.id) == [selected.id]
    origin_ledger = await store.ledger_task_ids(sprint.id)
    assert set(origin_ledger) == {finished.id, selected.id, cancelled.id}


async def test_target_without_selection_takes_all_incomplete_tasks(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    target = await factory.sprint(SprintStatus.ACTIVE, name="Parallel")
    first = await factory.task(TaskStatus.REVIEW, sprint=sprint)
    second = await factory.task(TaskStatus.BLOCKED, sprint=sprint)

    await SprintService(db).complete_sprint(sprint.id, actor, target_sprint_id=target.id)

    for task_id in (first.id, second.id):
        task = await store.get_task(task_id)
        assert task.sprint_id == target.id
        assert task.status == TaskStatus.TODO.value
    assert set(await store.ledger_task_ids(target.id)) == {first.id, second.id}


async def test_no_target_returns_incomplete_tasks_to_backlog(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    finished = await factory.task(TaskStatus.COMPLETED, sprint=sprint)
    open_task = await factory.task(TaskStatus.TESTING, sprint=sprint)

    await SprintService(db).complete_sprint(sprint.id, actor)

    returned = await store.get_task(open_task.id)
    assert returned.sprint_id is None
    assert returned.status == TaskStatus.BACKLOG.value
    assert returned.moved_from_sprint_id == sprint.id
    assert (await store.get_task(finished.id)).archived is True
    assert await store.ledger_task_ids(sprint.id) == [finished.id]


async def test_selection_without_target_leaves_selected_tasks_in_place(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    selected = await factory.task(TaskStatus.IN_PROGRESS, sprint=sprint)
    other = await factory.task(TaskStatus.TODO, sprint=sprint)

    await SprintService(db).complete_sprint(sprint.id, actor, selected_task_ids=[selected.id])

    kept = await store.get_task(selected.id)
    assert kept.sprint_id == sprint.id
    assert kept.status == TaskStatus.IN_PROGRESS.value
    assert (await store.get_task(other.id)).sprint_id is None


async def test_target_ledger_has_no_duplicates(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    target = await factory.sprint(SprintStatus.PLANNING, name="Next")
    task = await factory.task(TaskStatus.TODO, sprint=sprint)
    await store.add_to_ledger(target.id, [task.id])
    await store.commit()

    await SprintService(db).complete_sprint(sprint.id, actor, target_sprint_id=target.id)

    assert await store.ledger_task_ids(target.id) == [task.id]


async def test_closing_into_itself_is_treated_as_no_target(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    await factory.task(TaskStatus.TODO, sprint=sprint, subtasks=[("Open", "todo", False)])

    with pytest.raises(IncompleteSubtasksError):
        await SprintService(db).complete_sprint(sprint.id, actor, target_sprint_id=sprint.id)

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.ACTIVE.value


@pytest.mark.parametrize("status", [SprintStatus.PLANNING, SprintStatus.CANCELLED])
async def test_only_active_sprints_can_be_closed(db, store, factory, actor, status):
    sprint = await factory.sprint(status)
    task = await factory.task(TaskStatus.TODO, sprint=sprint)

    with pytest.raises(InvalidStatusTransitionError, match="Only active sprints can be completed"):
        await SprintService(db).complete_sprint(sprint.id, actor)

    assert (await store.get_sprint(sprint.id)).status == status.value
    assert (await store.get_task(task.id)).sprint_id == sprint.id


async def test_fully_closed_sprint_cannot_be_closed_again(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.COMPLETED)
    await factory.task(TaskStatus.DONE, sprint=sprint, archived=True)
    await factory.task(TaskStatus.CANCELLED, sprint=sprint)

    with pytest.raises(InvalidStatusTransitionError, match="Only active sprints can be completed"):
        await SprintService(db).complete_sprint(sprint.id, actor)


async def test_closure_resumes_after_archival_failure(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    finished = await factory.task(TaskStatus.DONE, sprint=sprint)
    open_task = await factory.task(TaskStatus.TODO, sprint=sprint)
    sprint_id, finished_id, open_id = sprint.id, finished.id, open_task.id

    failing = SprintService(db)

    async def broken_archive(sprint_id):
        raise RuntimeError("connection reset")

    failing._archive_finished_tasks = broken_archive

    with pytest.raises(SprintServiceError, match="connection reset"):
        await failing.complete_sprint(sprint_id, actor)

    assert (await store.get_sprint(sprint_id)).status == SprintStatus.COMPLETED.value
    assert (await store.get_task(open_id)).sprint_id is None
    assert (await store.get_task(finished_id)).archived is False

    summary = await SprintService(db).complete_sprint(sprint_id, actor)

    assert summary.resumed is True
    assert summary.archived == [finished_id]
    assert summary.moved_to_backlog == []
    assert (await store.get_task(finished_id)).archived is True
    assert await store.ledger_task_ids(sprint_id) == [finished_id]


async def test_closure_resumes_after_rollover_failure(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    target = await factory.sprint(SprintStatus.PLANNING, name="Next")
    open_task = await factory.task(TaskStatus.IN_PROGRESS, sprint=sprint)
    sprint_id, target_id, open_id = sprint.id, target.id, open_task.id

    failing = SprintService(db)

    async def broken_rollover(sprint_id, target_sprint_id, selected_task_ids):
        raise RuntimeError("write conflict")

    failing._roll_over_incomplete_tasks = broken_rollover

    with pytest.raises(SprintServiceError):
        await failing.complete_sprint(sprint_id, actor, target_sprint_id=target_id)

    assert (await store.get_sprint(sprint_id)).status == SprintStatus.COMPLETED.value
    assert (await store.get_task(open_id)).sprint_id == sprint_id

    summary = await SprintService(db).complete_sprint(sprint_id, actor, target_sprint_id=target_id)

    assert summary.resumed is True
    assert summary.moved_to_sprint == [open_id]
    assert (await store.get_task(open_id)).sprint_id == target_id
    assert await store.ledger_task_ids(target_id) == [open_id]


async def test_auto_completed_sprint_can_still_be_closed(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.COMPLETED)
    finished = await factory.task(TaskStatus.DONE, sprint=sprint)

    summary = await SprintService(db).complete_sprint(sprint.id, actor)

    assert summary.resumed is True
    assert summary.archived == [finished.id]
    assert (await store.get_sprint(sprint.id)).actual_end_date is None


async def test_missing_sprint_is_not_found(db, actor):
    with pytest.raises(SprintNotFoundError):
        await SprintService(db).complete_sprint(999, actor)


async def test_other_organization_cannot_close_sprint(db, store, factory, other_factory):
    sprint = await factory.sprint(SprintStatus.ACTIVE)

    with pytest.raises(SprintAccessDeniedError):
        await SprintService(db).complete_sprint(sprint.id, other_factory.actor())

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.ACTIVE.value


async def test_missing_target_sprint_is_rejected(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)

    with pytest.raises(TargetSprintNotFoundError):
        await SprintService(db).complete_sprint(sprint.id, actor, target_sprint_id=999)

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.ACTIVE.value


async def test_target_sprint_of_other_organization_is_rejected(db, store, factory, other_factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    foreign = await other_factory.sprint(SprintStatus.PLANNING)

    with pytest.raises(SprintAccessDeniedError, match="Unauthorized to move tasks to this sprint"):
        await SprintService(db).complete_sprint(sprint.id, actor, target_sprint_id=foreign.id)

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.ACTIVE.value


@pytest.mark.parametrize("status", [SprintStatus.COMPLETED, SprintStatus.CANCELLED])
async def test_closed_target_sprint_is_rejected(db, store, factory, actor, status):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    target = await factory.sprint(status, name="Old")

    with pytest.raises(SprintValidationError):
        await SprintService(db).complete_sprint(sprint.id, actor, target_sprint_id=target.id)

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.ACTIVE.value


async def test_empty_sprint_can_be_closed_by_default(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)

    await SprintService(db, require_tasks_to_close=False).complete_sprint(sprint.id, actor)

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.COMPLETED.value


async def test_empty_sprint_rejected_when_tasks_are_required(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)

    with pytest.raises(SprintValidationError):
        await SprintService(db, require_tasks_to_close=True).complete_sprint(sprint.id, actor)

    assert (await store.get_sprint(sprint.id)).status == SprintStatus.ACTIVE.value


async def test_closed_sprint_details_include_ledger(db, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    task = await factory.task(TaskStatus.DONE, sprint=sprint)
    service = SprintService(db)

    await service.complete_sprint(sprint.id, actor)
    result = await service.get_sprint(sprint.id, actor)

    assert [t.id for t in result.tasks] == [task.id]
    assert result.project.id == factory.project.id
    assert [member.id for member in result.team_members] == [factory.user.id]


async def test_start_sprint_resets_tasks_to_todo(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.PLANNING)
    task = await factory.task(TaskStatus.BACKLOG, sprint=sprint)

    result = await SprintService(db).start_sprint(sprint.id, actor)

    assert result.status == SprintStatus.ACTIVE.value
    assert result.actual_start_date is not None
    started = await store.get_task(task.id)
    assert started.status == TaskStatus.TODO.value
    assert started.start_date is not None


async def test_start_sprint_requires_planning(db, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)

    with pytest.raises(InvalidStatusTransitionError, match="Only sprints in planning can be started"):
        await SprintService(db).start_sprint(sprint.id, actor)


async def test_assign_task_records_ledger_and_moves_epic(db, store, factory, actor):
    epic = await factory.epic(EpicStatus.BACKLOG)
    previous = await factory.sprint(SprintStatus.ACTIVE, name="Previous")
    sprint = await factory.sprint(SprintStatus.PLANNING, name="Next")
    task = await factory.task(TaskStatus.TODO, epic=epic, sprint=previous)

    assigned = await SprintService(db).assign_task_to_sprint(sprint.id, task.id, actor)

    assert assigned.sprint_id == sprint.id
    assert await store.ledger_task_ids(sprint.id) == [task.id]
    assert await store.ledger_task_ids(previous.id) == [task.id]
    assert (await store.get_epic(epic.id)).status == EpicStatus.IN_PROGRESS.value


async def test_assign_task_twice_keeps_single_ledger_entry(db, store, factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    task = await factory.task(TaskStatus.TODO)
    service = SprintService(db)

    await service.assign_task_to_sprint(sprint.id, task.id, actor)
    await service.assign_task_to_sprint(sprint.id, task.id, actor)

    assert await store.ledger_task_ids(sprint.id) == [task.id]


async def test_assign_task_to_closed_sprint_is_rejected(db, factory, actor):
    sprint = await factory.sprint(SprintStatus.COMPLETED)
    task = await factory.task(TaskStatus.TODO)

    with pytest.raises(SprintValidationError):
        await SprintService(db).assign_task_to_sprint(sprint.id, task.id, actor)


async def test_assign_foreign_task_is_not_found(db, factory, other_factory, actor):
    sprint = await factory.sprint(SprintStatus.ACTIVE)
    foreign = await other_factory.task(TaskStatus.TODO)

    with pytest.raises(TaskNotFoundError):
        await SprintService(db).assign_task_to_sprint(sprint.id, foreign.id, actor)
