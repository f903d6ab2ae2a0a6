"""Reorder engine.

Computes a new board arrangement when a task moves within or across columns.
It is deterministic and free of I/O so the client can run it for optimistic
previews and the server can run it for the authoritative recompute.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Optional, Sequence, Tuple, TypeVar

from taskboard.board.positions import group_columns, normalize, order_board
from taskboard.schemas.task import TaskStatus

T = TypeVar("T")


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


def find_task(tasks: Sequence[T], task_id) -> Optional[T]:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


def locate(tasks: Sequence[T], task_id) -> Optional[Tuple[TaskStatus, int]]:
    """Return (status, index within column) of a task, or None."""
    task = find_task(tasks, task_id)
    if task is None:
        return None
    column = group_columns(tasks)[TaskStatus(task.status)]
    return TaskStatus(task.status), column.index(task)


def clamp_index(index: int, length: int) -> int:
    return max(0, min(index, length))


def move_to_position(tasks: Sequence[T], task_id, target_status, target_index: int) -> Tuple[T, ...]:
    """Move a task to target_index of target_status.

    The index is taken against the target column with the moved task removed
    and is clamped to [0, len]. Touched columns are normalized; columns not
    involved keep their positions. An unknown task_id returns the input
    arrangement unchanged.
    """
    moved = find_task(tasks, task_id)
    if moved is None:
        return tuple(tasks)

    target_status = TaskStatus(target_status)
    source_status = TaskStatus(moved.status)
    columns = group_columns(tasks)

    source = [task for task in columns[source_status] if task is not moved]
    destination = source if target_status == source_status else columns[target_status]

    if TaskStatus(moved.status) != target_status:
        moved = dataclasses.replace(moved, status=target_status)
    destination.insert(clamp_index(target_index, len(destination)), moved)

    columns[source_status] = normalize(source)
    if target_status != source_status:
        columns[target_status] = normalize(destination)

    return order_board(task for column in columns.values() for task in column)


def move_relative(tasks: Sequence[T], task_id, direction) -> Tuple[T, ...]:
    """Swap a task with its neighbour above or below; no-op at the column edge."""
    location = locate(tasks, task_id)
    if location is None:
        return tuple(tasks)

    status, index = location
    column_length = len(group_columns(tasks)[status])
    if Direction(direction) == Direction.UP:
        if index == 0:
            return tuple(tasks)
        return move_to_position(tasks, task_id, status, index - 1)

    if index >= column_length - 1:
        return tuple(tasks)
    return move_to_position(tasks, task_id, status, index + 1)


def changed_tasks(before: Sequence[T], after: Sequence[T]) -> Tuple[T, ...]:
    """Tasks of `after` whose status or position differs from `before`."""
    previous = {task.id: (TaskStatus(task.status), task.position) for task in before}
    return tuple(
        task for task in after
        if previous.get(task.id) != (TaskStatus(task.status), task.position)
    )
