"""Turns pointer gestures and move buttons into board operations."""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from taskboard.board.positions import group_columns
from taskboard.board.reorder import locate
from taskboard.client.state import OptimisticBoard
from taskboard.schemas.task import TaskStatus

# Pointer travel, in pixels, before a press becomes a drag instead of a click.
ACTIVATION_DISTANCE = 8.0


@dataclass(frozen=True)
class DropTarget:
    """What the pointer is over: a column body or another task card."""

    status: Optional[TaskStatus] = None
    task_id: Optional[int] = None

    @classmethod
    def column(cls, status) -> "DropTarget":
        return cls(status=TaskStatus(status))

    @classmethod
    def card(cls, task_id) -> "DropTarget":
        return cls(task_id=task_id)


class DragController:
    def __init__(self, board: OptimisticBoard, activation_distance: float = ACTIVATION_DISTANCE):
        self.board = board
        self.activation_distance = activation_distance
        self._press: Optional[Tuple[int, float, float]] = None
        self.dragging = False

    def pointer_down(self, task_id, x: float, y: float) -> None:
        self._press = (task_id, x, y)
        self.dragging = False

    def pointer_move(self, x: float, y: float, over: Optional[DropTarget] = None) -> None:
        if self._press is None:
            return
        task_id, start_x, start_y = self._press
        if not self.dragging:
            if math.hypot(x - start_x, y - start_y) < self.activation_distance:
                return
            if not self.board.drag_start(task_id):
                self._press = None
                return
            self.dragging = True
        if over is not None:
            target = self.resolve(over)
            if target is not None:
                self.board.drag_over(*target)

    async def pointer_up(self, over: Optional[DropTarget] = None) -> bool:
        """Release the pointer; returns True when a move was saved."""
        was_dragging = self.dragging
        self._press = None
        self.dragging = False
        if not was_dragging:
            return False
        target = self.resolve(over) if over is not None else None
        if target is None:
            self.board.drag_cancel()
            return False
        return await self.board.drag_end(*target)

    def resolve(self, over: DropTarget) -> Optional[Tuple[TaskStatus, int]]:
        """Map a drop target to (status, index) against the drag origin.

        Dropping on a card takes that card's slot; dropping on a column body
        appends to the end of that column.
        """
        tasks = self.board.drag_origin or self.board.tasks
        if over.task_id is not None:
            return locate(tasks, over.task_id)
        if over.status is not None:
            return over.status, len(group_columns(tasks)[over.status])
        return None

    async def move_up(self, task_id) -> bool:
        return await self.board.move_up(task_id)

    async def move_down(self, task_id) -> bool:
        return await self.board.move_down(task_id)
