"""Dependency helpers shared across routers."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from taskboard.core.broadcast import Broadcaster
from taskboard.core.database import get_db
from taskboard.core.locks import ColumnLockRegistry
from taskboard.services.project_service import ProjectService
from taskboard.services.task_service import TaskService


def get_broadcaster(connection: HTTPConnection) -> Broadcaster:
    return connection.app.state.broadcaster


def get_column_locks(connection: HTTPConnection) -> ColumnLockRegistry:
    return connection.app.state.column_locks


def get_task_service(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    locks: ColumnLockRegistry = Depends(get_column_locks),
) -> TaskService:
    return TaskService(db, broadcaster, locks)


def get_project_service(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> ProjectService:
    return ProjectService(db, broadcaster)
