from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

TaskId = int
SprintId = int


@dataclass(frozen=True)
class RolloverPlan:
    """Where each incomplete task of a closing sprint goes."""

    target_sprint_id: Optional[SprintId]
    to_target: List[TaskId] = field(default_factory=list)
    to_backlog: List[TaskId] = field(default_factory=list)

    @property
    def moves_to_target(self) -> List[TaskId]:
        """Tasks that will actually be moved; empty without a target sprint."""
        if self.target_sprint_id is None:
            return []
        return list(self.to_target)

    @property
    def left_in_place(self) -> List[TaskId]:
        """Selected tasks with no target sprint to receive them."""
        if self.target_sprint_id is not None:
            return []
        return list(self.to_target)


def resolve_rollover(
    incomplete_task_ids: Iterable[TaskId],
    target_sprint_id: Optional[SprintId] = None,
    selected_task_ids: Optional[Iterable[TaskId]] = None
) -> RolloverPlan:
    """
    Split a closing sprint's incomplete tasks between target sprint and backlog.

    With an explicit selection, selected tasks go to the target and every other
    incomplete task goes to the backlog. Selected tasks are still kept apart
    when there is no target sprint: they are neither moved nor archived.

    Without a selection everything follows the target: all tasks move to it
    when one is given, otherwise all return to the backlog.
    """

    incomplete = list(dict.fromkeys(incomplete_task_ids))
    selected = set(selected_task_ids or ())

    if selected:
        return RolloverPlan(
            target_sprint_id=target_sprint_id,
            to_target=[task_id for task_id in incomplete if task_id in selected],
            to_backlog=[task_id for task_id in incomplete if task_id not in selected]
        )

    if target_sprint_id is not None:
        return RolloverPlan(target_sprint_id=target_sprint_id, to_target=incomplete)

    return RolloverPlan(target_sprint_id=None, to_backlog=incomplete)
