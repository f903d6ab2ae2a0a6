"""Position model: what a valid ordering of tasks within one column looks like.

Within a (project, status) column, sorting by position gives render order
top to bottom. A normalized column has positions exactly 0..n-1.
"""

from __future__ import annotations

import dataclasses
from typing import Dict, Iterable, List, Sequence, Tuple, TypeVar

from taskboard.schemas.task import COLUMN_ORDER, TaskStatus

T = TypeVar("T")


def normalize(tasks_in_column: Sequence[T]) -> List[T]:
    """Reassign position = index, keeping the given order.

    Tasks whose position already matches are returned as the same object, so
    normalizing a normalized column is a no-op.
    """
    normalized = []
    for index, task in enumerate(tasks_in_column):
        if task.position != index:
            task = dataclasses.replace(task, position=index)
        normalized.append(task)
    return normalized


def is_contiguous(tasks_in_column: Iterable[T]) -> bool:
    positions = sorted(task.position for task in tasks_in_column)
    return positions == list(range(len(positions)))


def column_sort_key(task) -> Tuple[int, int]:
    return TaskStatus(task.status).rank, task.position


def order_board(tasks: Iterable[T]) -> Tuple[T, ...]:
    """Board order: column rank, then position. Ties keep input order."""
    return tuple(sorted(tasks, key=column_sort_key))


def group_columns(tasks: Iterable[T]) -> Dict[TaskStatus, List[T]]:
    """Split tasks into per-status columns, each sorted by position."""
    columns: Dict[TaskStatus, List[T]] = {status: [] for status in COLUMN_ORDER}
    for task in tasks:
        columns[TaskStatus(task.status)].append(task)
    for column in columns.values():
        column.sort(key=lambda task: task.position)
    return columns


def arrangement_key(tasks: Iterable[T]) -> Tuple[Tuple[str, Tuple[object, ...]], ...]:
    """Observable arrangement: the id order of every column."""
    columns = group_columns(tasks)
    return tuple((status.value, tuple(task.id for task in columns[status])) for status in COLUMN_ORDER)
