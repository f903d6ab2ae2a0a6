"""
Task mutation service.

The only writer of task positions. Every position-changing write runs under
the column locks of the columns it touches and commits as one unit; the
broadcast that follows a commit is best-effort.
"""

import logging
from contextlib import asynccontextmanager
from typing import Iterable, List, Optional

from sqlalchemy import case, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskboard.board.cards import TaskCard
from taskboard.board.reorder import changed_tasks, clamp_index, move_to_position
from taskboard.core.broadcast import TASK_CHANGED, Broadcaster, tasks_topic
from taskboard.core.exceptions import InvalidInput, NotFound, TransientFailure
from taskboard.core.locks import ColumnLockRegistry
from taskboard.models.project import ProjectMember
from taskboard.models.task import Task
from taskboard.schemas.task import COLUMN_ORDER, TaskCreate, TaskStatus, TaskUpdate
from taskboard.services.access import ensure_can_edit, ensure_member

logger = logging.getLogger(__name__)

# A task whose column changes between the unlocked read and the locked
# re-read is retried this many times before giving up.
MAX_LOCK_ATTEMPTS = 3

STATUS_RANK = case({status.value: status.rank for status in COLUMN_ORDER}, value=Task.status, else_=len(COLUMN_ORDER))


def clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise InvalidInput("Task title is required")
    return title


def clean_description(description: Optional[str]) -> Optional[str]:
    return (description or "").strip() or None


def clean_labels(labels: Optional[Iterable[str]]) -> List[str]:
    cleaned = {label.strip() for label in labels or () if label and label.strip()}
    return sorted(cleaned)


def check_position(position: Optional[int]) -> None:
    if position is not None and position < 0:
        raise InvalidInput("Position must not be negative")


class TaskService:
    def __init__(self, db: AsyncSession, broadcaster: Broadcaster, locks: ColumnLockRegistry):
        self.db = db
        self.broadcaster = broadcaster
        self.locks = locks

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_tasks(self, project_id: int, acting_user_id: Optional[int] = None) -> List[Task]:
        """Tasks ordered by column rank, then position."""
        if acting_user_id is not None:
            await ensure_member(self.db, project_id, acting_user_id)
        result = await self.db.execute(
            select(Task)
            .options(selectinload(Task.assigned_to))
            .where(Task.project_id == project_id)
            .order_by(STATUS_RANK, Task.position, Task.id)
        )
        return list(result.scalars().all())

    async def _get_task(
        self, project_id: int, task_id: int, *, for_update: bool = False, with_assignee: bool = False
    ) -> Task:
        stmt = select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        if with_assignee:
            stmt = stmt.options(selectinload(Task.assigned_to))
        task = (await self.db.execute(stmt)).scalar_one_or_none()
        if task is None or task.project_id != project_id:
            raise NotFound("Task not found")
        return task

    async def _load_columns(self, project_id: int, statuses: Iterable[TaskStatus]) -> List[Task]:
        result = await self.db.execute(
            select(Task)
            .where(
                Task.project_id == project_id,
                Task.status.in_([TaskStatus(status).value for status in set(statuses)]),
            )
            .order_by(STATUS_RANK, Task.position, Task.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _check_assignee(self, project_id: int, user_id: Optional[int]) -> None:
        if user_id is None:
            return
        result = await self.db.execute(
            select(ProjectMember.id).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == user_id,
            )
        )
        if result.scalar_one_or_none() is None:
            raise InvalidInput("Assignee must be a member of the project")

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _unit_of_work(self):
        """Commit on success; roll back everything on any error."""
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Task transaction aborted")
            raise TransientFailure("Storage unavailable, no changes were saved") from exc
        except Exception:
            await self.db.rollback()
            raise

    @asynccontextmanager
    async def _hold_task_columns(self, project_id: int, task_id: int, target_status: Optional[TaskStatus]):
        """Lock the task's current column and the target column, then re-read the task."""
        for _ in range(MAX_LOCK_ATTEMPTS):
            task = await self._get_task(project_id, task_id)
            source = TaskStatus(task.status)
            target = TaskStatus(target_status or source)
            async with self.locks.hold([(project_id, source), (project_id, target)]):
                task = await self._get_task(project_id, task_id, for_update=True)
                if TaskStatus(task.status) == source:
                    yield task, source, target
                    return
            logger.debug("Task %s changed column while waiting for locks, retrying", task_id)
        raise TransientFailure("Task is being moved by someone else, please retry")

    def _apply_arrangement(self, rows: List[Task], arrangement) -> int:
        """Copy status/position changes of an engine arrangement onto ORM rows."""
        before = [TaskCard.from_model(row) for row in rows]
        rows_by_id = {row.id: row for row in rows}
        changed = changed_tasks(before, arrangement)
        for card in changed:
            row = rows_by_id[card.id]
            row.status = card.status.value
            row.position = card.position
        return len(changed)

    async def _reposition(
        self, task: Task, source: TaskStatus, target: TaskStatus, position: Optional[int]
    ) -> None:
        rows = await self._load_columns(task.project_id, [source, target])
        others = [row for row in rows if row.status == target.value and row.id != task.id]
        if position is not None:
            index = clamp_index(position, len(others))
        elif target != source:
            index = len(others)
        else:
            return

        cards = [TaskCard.from_model(row) for row in rows]
        arrangement = move_to_position(cards, task.id, target, index)
        updated = self._apply_arrangement(rows, arrangement)
        logger.debug(
            "Task %s moved %s -> %s at index %s (%s rows renumbered)",
            task.id, source.value, target.value, index, updated,
        )

    async def _notify(self, project_id: int, task_id: int, action: str) -> None:
        await self.broadcaster.publish(
            tasks_topic(project_id),
            TASK_CHANGED,
            {"projectId": project_id, "taskId": task_id, "action": action},
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_task(self, project_id: int, acting_user_id: int, data: TaskCreate) -> Task:
        async with self._unit_of_work():
            await ensure_can_edit(self.db, project_id, acting_user_id)
            title = clean_title(data.title)
            check_position(data.position)
            await self._check_assignee(project_id, data.assigned_to_id)
            status = TaskStatus(data.status or TaskStatus.TODO)

            async with self.locks.hold([(project_id, status)]):
                column = await self._load_columns(project_id, [status])
                task = Task(
                    project_id=project_id,
                    title=title,
                    description=clean_description(data.description),
                    status=status.value,
                    position=max((row.position for row in column), default=-1) + 1,
                    assigned_to_id=data.assigned_to_id,
                    labels=clean_labels(data.labels),
                )
                self.db.add(task)
                await self.db.flush()

                if data.position is not None:
                    rows = column + [task]
                    cards = [TaskCard.from_model(row) for row in rows]
                    self._apply_arrangement(rows, move_to_position(cards, task.id, status, data.position))
                await self.db.commit()
            task_id = task.id

        task = await self._get_task(project_id, task_id, with_assignee=True)
        logger.info("Task %s created in project %s by user %s", task.id, project_id, acting_user_id)
        await self._notify(project_id, task.id, "created")
        return task

    async def update_task(self, project_id: int, task_id: int, acting_user_id: int, data: TaskUpdate) -> Task:
        updates = data.model_dump(exclude_unset=True)
        async with self._unit_of_work():
            await ensure_can_edit(self.db, project_id, acting_user_id)
            task = await self._get_task(project_id, task_id)
            if "title" in updates:
                updates["title"] = clean_title(updates["title"])
            check_position(updates.get("position"))
            if "assigned_to_id" in updates:
                await self._check_assignee(project_id, updates["assigned_to_id"])

            reorder = updates.get("status") is not None or updates.get("position") is not None
            if reorder:
                async with self._hold_task_columns(project_id, task_id, updates.get("status")) as (task, source, target):
                    await self._reposition(task, source, target, updates.get("position"))
                    self._apply_fields(task, updates)
                    await self.db.commit()
            else:
                self._apply_fields(task, updates)

        task = await self._get_task(project_id, task_id, with_assignee=True)
        logger.info("Task %s updated in project %s by user %s", task_id, project_id, acting_user_id)
        await self._notify(project_id, task_id, "updated")
        return task

    def _apply_fields(self, task: Task, updates: dict) -> None:
        if "title" in updates:
            task.title = updates["title"]
        if "description" in updates:
            task.description = clean_description(updates["description"])
        if "assigned_to_id" in updates:
            task.assigned_to_id = updates["assigned_to_id"]
        if "labels" in updates:
            task.labels = clean_labels(updates["labels"])

    async def delete_task(self, project_id: int, task_id: int, acting_user_id: int) -> None:
        """Remove a task. Siblings keep their positions until the next reorder."""
        async with self._unit_of_work():
            await ensure_can_edit(self.db, project_id, acting_user_id)
            async with self._hold_task_columns(project_id, task_id, None) as (task, _, _):
                await self.db.delete(task)
                await self.db.commit()

        logger.info("Task %s deleted from project %s by user %s", task_id, project_id, acting_user_id)
        await self._notify(project_id, task_id, "deleted")
