"""
Optimistic board state for one open board view.

Idle -> Dragging -> Reconciling -> Idle on success, or
Idle -> Dragging -> Reconciling -> RolledBack -> Idle on failure.

Drag-over previews are local only. Exactly one mutation is in flight per
board; drag ends and move buttons arriving meanwhile are refused with a
notice instead of racing on stale state.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence, Tuple

from taskboard.board.cards import TaskCard
from taskboard.board.positions import arrangement_key, group_columns, order_board
from taskboard.board.reorder import Direction, find_task, move_relative, move_to_position
from taskboard.core.exceptions import Forbidden, NotFound, TaskBoardError, TransientFailure

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Another change is still being saved, please wait"


class BoardState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RECONCILING = "reconciling"
    ROLLED_BACK = "rolled_back"


def failure_message(exc: TaskBoardError) -> str:
    if isinstance(exc, Forbidden):
        return "You don't have permission to change tasks in this project"
    if isinstance(exc, NotFound):
        return "This task no longer exists, the board has been refreshed"
    if isinstance(exc, TransientFailure):
        return "Couldn't save your change, please try again"
    return exc.detail


def _noop(*args) -> None:
    return None


class OptimisticBoard:
    def __init__(
        self,
        project_id: int,
        api,
        tasks: Iterable[TaskCard] = (),
        on_change: Callable[[Tuple[TaskCard, ...]], None] = None,
        on_notice: Callable[[str], None] = None,
        on_error: Callable[[str], None] = None,
    ):
        self.project_id = project_id
        self.api = api
        self.on_change = on_change or _noop
        self.on_notice = on_notice or _noop
        self.on_error = on_error or _noop

        self.server_tasks: Tuple[TaskCard, ...] = order_board(tasks)
        self.tasks: Tuple[TaskCard, ...] = self.server_tasks
        self.state = BoardState.IDLE
        self.active_task_id = None
        self.drag_origin: Optional[Tuple[TaskCard, ...]] = None
        self._stale = False
        self._pending_refresh: Optional[asyncio.Task] = None
        # Task whose change event is this board's own save echoing back.
        self._echo_task_id = None

    @property
    def is_busy(self) -> bool:
        return self.state == BoardState.RECONCILING

    def columns(self):
        return group_columns(self.tasks)

    def _render(self) -> None:
        self.on_change(self.tasks)

    def _finish(self) -> bool:
        """Return to Idle; True when a listing was deferred and a refetch is due."""
        self.state = BoardState.IDLE
        self.active_task_id = None
        self.drag_origin = None
        return self._stale

    def _refuse_busy(self) -> bool:
        self.on_notice(BUSY_MESSAGE)
        return False

    # ------------------------------------------------------------------
    # Authoritative data
    # ------------------------------------------------------------------

    def receive_server_tasks(self, tasks: Sequence[TaskCard]) -> None:
        """Accept a fresh server listing; deferred while a gesture or save is open."""
        if self.state != BoardState.IDLE:
            self._stale = True
            return
        self._stale = False
        self.server_tasks = order_board(tasks)
        self.tasks = self.server_tasks
        self._render()

    async def refresh(self) -> None:
        try:
            tasks = await self.api.list_tasks(self.project_id)
        except TaskBoardError as exc:
            logger.warning("Refetch of project %s failed: %s", self.project_id, exc.detail)
            return
        self.receive_server_tasks(tasks)

    def is_own_echo(self, payload: dict) -> bool:
        """True once for the change event of the move this board last saved."""
        task_id = payload.get("taskId")
        if task_id is None or task_id != self._echo_task_id:
            return False
        self._echo_task_id = None
        return True

    # ------------------------------------------------------------------
    # Drag gestures
    # ------------------------------------------------------------------

    def drag_start(self, task_id) -> bool:
        if self.is_busy:
            return self._refuse_busy()
        if self.state == BoardState.DRAGGING:
            self.drag_cancel()
        if find_task(self.tasks, task_id) is None:
            return False
        self.drag_origin = self.tasks
        self.active_task_id = task_id
        self.state = BoardState.DRAGGING
        return True

    def drag_over(self, target_status, target_index: int) -> None:
        """Preview the drop locally; recomputed from the drag origin each time."""
        if self.state != BoardState.DRAGGING:
            return
        preview = move_to_position(self.drag_origin, self.active_task_id, target_status, target_index)
        if arrangement_key(preview) != arrangement_key(self.tasks):
            self.tasks = preview
            self._render()

    def drag_cancel(self) -> None:
        if self.state != BoardState.DRAGGING:
            return
        changed = arrangement_key(self.tasks) != arrangement_key(self.drag_origin)
        self.tasks = self.drag_origin
        refresh_due = self._finish()
        if changed:
            self._render()
        if refresh_due:
            self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to run on; the flag stays set for the next refresh().
            return
        self._pending_refresh = loop.create_task(self.refresh())

    async def drag_end(self, target_status=None, target_index: Optional[int] = None) -> bool:
        """Finish the gesture; returns True when the server accepted a change."""
        if self.is_busy:
            return self._refuse_busy()
        if self.state != BoardState.DRAGGING:
            return False
        if target_status is not None:
            self.drag_over(target_status, len(self.drag_origin) if target_index is None else target_index)

        origin = self.drag_origin
        if arrangement_key(self.tasks) == arrangement_key(origin):
            if self._finish():
                await self.refresh()
            return False
        return await self._reconcile(self.active_task_id, origin)

    # ------------------------------------------------------------------
    # Move up / move down
    # ------------------------------------------------------------------

    async def move_up(self, task_id) -> bool:
        return await self._move_relative(task_id, Direction.UP)

    async def move_down(self, task_id) -> bool:
        return await self._move_relative(task_id, Direction.DOWN)

    async def _move_relative(self, task_id, direction: Direction) -> bool:
        if self.is_busy:
            return self._refuse_busy()
        if self.state != BoardState.IDLE:
            return False
        arranged = move_relative(self.tasks, task_id, direction)
        if arrangement_key(arranged) == arrangement_key(self.tasks):
            return False
        origin = self.tasks
        self.tasks = arranged
        self._render()
        return await self._reconcile(task_id, origin)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def _reconcile(self, task_id, origin: Tuple[TaskCard, ...]) -> bool:
        self.state = BoardState.RECONCILING
        self.active_task_id = task_id
        self._echo_task_id = task_id
        moved = find_task(self.tasks, task_id)
        try:
            confirmed = await self.api.update_task(
                self.project_id, task_id, status=moved.status, position=moved.position
            )
        except TaskBoardError as exc:
            await self._roll_back(origin, exc)
            return False
        except Exception as exc:
            logger.exception("Unexpected failure saving move of task %s", task_id)
            await self._roll_back(origin, TransientFailure(str(exc)))
            return False

        self.tasks = order_board(confirmed if task.id == task_id else task for task in self.tasks)
        self.server_tasks = self.tasks
        refresh_due = self._finish()
        self._render()
        if refresh_due:
            await self.refresh()
        return True

    async def _roll_back(self, origin: Tuple[TaskCard, ...], exc: TaskBoardError) -> None:
        logger.warning("Rolled back move of task %s: %s", self.active_task_id, exc.detail)
        self._echo_task_id = None
        self.state = BoardState.ROLLED_BACK
        self.tasks = origin
        self._render()
        self.on_error(failure_message(exc))
        refresh_due = self._finish()
        if isinstance(exc, NotFound) or refresh_due:
            await self.refresh()
