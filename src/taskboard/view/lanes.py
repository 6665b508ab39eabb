# src/taskboard/view/lanes.py

"""
Swimlane grouping.

Label grouping is multi-membership on purpose: a task with N distinct labels
shows up in N lanes, so lane sizes may add up to more than the task count.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from ..tasks.task_models import Priority, Task
from .sorting import title_sort_key


class GroupBy(StrEnum):
    NONE = "none"
    ASSIGNEE = "assignee"
    PRIORITY = "priority"
    LABEL = "label"


@dataclass(slots=True, frozen=True)
class Lane:
    lane_id: str
    title: str
    tasks: tuple[Task, ...]

    def __len__(self) -> int:
        return len(self.tasks)


PRIORITY_LANE_ORDER: tuple[Priority, ...] = (Priority.URGENT, Priority.HIGH, Priority.MEDIUM, Priority.LOW)


def _assignee_lanes(tasks: list[Task]) -> list[Lane]:
    by_id: dict[str, list[Task]] = {}
    names: dict[str, str] = {}
    unassigned: list[Task] = []

    for task in tasks:
        if task.assignee is None:
            unassigned.append(task)
            continue
        by_id.setdefault(task.assignee.id, []).append(task)
        names.setdefault(task.assignee.id, task.assignee.name)

    lanes = [Lane(lane_id=f"assignee-{aid}", title=names[aid], tasks=tuple(items)) for aid, items in by_id.items()]
    lanes.sort(key=lambda lane: title_sort_key(lane.title))

    if unassigned:
        lanes.append(Lane(lane_id="unassigned", title="Unassigned", tasks=tuple(unassigned)))
    return lanes


def _priority_lanes(tasks: list[Task]) -> list[Lane]:
    lanes: list[Lane] = []
    for prio in PRIORITY_LANE_ORDER:
        items = tuple(t for t in tasks if t.priority == prio)
        if items:
            lanes.append(Lane(lane_id=f"priority-{prio.value}", title=prio.value.capitalize(), tasks=items))
    return lanes


def _label_lanes(tasks: list[Task]) -> list[Lane]:
    by_key: dict[str, list[Task]] = {}
    titles: dict[str, str] = {}
    unlabeled: list[Task] = []

    for task in tasks:
        if not task.labels:
            unlabeled.append(task)
            continue
        seen: set[str] = set()
        for lbl in task.labels:
            key = lbl.name.lower()
            if key in seen:
                continue
            seen.add(key)
            by_key.setdefault(key, []).append(task)
            # First spelling encountered names the lane.
            titles.setdefault(key, lbl.name)

    lanes = [Lane(lane_id=f"label-{key}", title=titles[key], tasks=tuple(items)) for key, items in by_key.items()]
    lanes.sort(key=lambda lane: title_sort_key(lane.title))

    if unlabeled:
        lanes.append(Lane(lane_id="no-label", title="No Label", tasks=tuple(unlabeled)))
    return lanes


def build_lanes(tasks: Iterable[Task], group_by: GroupBy = GroupBy.NONE) -> list[Lane]:
    items = list(tasks)
    if group_by == GroupBy.ASSIGNEE:
        return _assignee_lanes(items)
    if group_by == GroupBy.PRIORITY:
        return _priority_lanes(items)
    if group_by == GroupBy.LABEL:
        return _label_lanes(items)
    return [Lane(lane_id="all", title="All Tasks", tasks=tuple(items))]
