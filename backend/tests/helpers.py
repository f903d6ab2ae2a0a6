"""Shared fixtures-as-functions for the board tests."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy import select

from taskboard.board.cards import TaskCard
from taskboard.core.broadcast import Broadcaster
from taskboard.core.database import build_engine, build_session_factory, create_tables
from taskboard.core.locks import ColumnLockRegistry
from taskboard.core.security import create_access_token
from taskboard.models.project import Project, ProjectMember
from taskboard.models.task import Task
from taskboard.models.user import User
from taskboard.schemas.task import TaskStatus
from taskboard.services.task_service import TaskService

# TODO=[A, B, C], IN_PROGRESS=[D, E], COMPLETED=[F]
DEFAULT_LAYOUT = {
    "TODO": ["A", "B", "C"],
    "IN_PROGRESS": ["D", "E"],
    "COMPLETED": ["F"],
}


def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'board.db'}"


def token_for(user_id: int) -> str:
    return create_access_token({"sub": str(user_id)})


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {token_for(user_id)}"}


def card(task_id, status, position, title="") -> TaskCard:
    return TaskCard(id=task_id, status=TaskStatus(status), position=position, title=title or str(task_id))


async def seed_board(session, layout: Optional[Dict[str, list]] = None) -> dict:
    layout = DEFAULT_LAYOUT if layout is None else layout
    users = {}
    for name in ("owner", "editor", "viewer", "outsider"):
        user = User(username=name, full_name=name.title())
        session.add(user)
        users[name] = user
    await session.flush()

    project = Project(name="Board", owner_id=users["owner"].id)
    other = Project(name="Other board", owner_id=users["outsider"].id)
    session.add_all([project, other])
    await session.flush()

    session.add_all([
        ProjectMember(project_id=project.id, user_id=users["owner"].id, role="OWNER"),
        ProjectMember(project_id=project.id, user_id=users["editor"].id, role="EDITOR"),
        ProjectMember(project_id=project.id, user_id=users["viewer"].id, role="VIEWER"),
        ProjectMember(project_id=other.id, user_id=users["outsider"].id, role="OWNER"),
    ])

    tasks = {}
    for status, titles in layout.items():
        for position, title in enumerate(titles):
            task = Task(project_id=project.id, title=title, status=status, position=position, labels=[])
            session.add(task)
            tasks[title] = task
    stray = Task(project_id=other.id, title="Stray", status="TODO", position=0, labels=[])
    session.add(stray)
    await session.commit()

    ids = {name: user.id for name, user in users.items()}
    ids.update(project=project.id, other_project=other.id, stray=stray.id)
    ids["tasks"] = {title: task.id for title, task in tasks.items()}
    return ids


def seed_database_file(url: str, layout: Optional[Dict[str, list]] = None) -> dict:
    async def _seed():
        engine = build_engine(url)
        await create_tables(engine)
        try:
            async with build_session_factory(engine)() as session:
                return await seed_board(session, layout)
        finally:
            await engine.dispose()

    return asyncio.run(_seed())


@dataclass
class BoardEnv:
    session_factory: object
    broadcaster: Broadcaster
    locks: ColumnLockRegistry = field(default_factory=ColumnLockRegistry)
    ids: dict = field(default_factory=dict)

    def service(self, session) -> TaskService:
        return TaskService(session, self.broadcaster, self.locks)

    async def columns(self) -> Dict[str, list]:
        """Titles per column, sorted by stored position, read in a fresh session."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Task).where(Task.project_id == self.ids["project"]).order_by(Task.position, Task.id)
            )
            columns = {status.value: [] for status in TaskStatus}
            for task in result.scalars():
                columns[task.status].append(task.title)
            return columns

    async def positions(self, status: str) -> list:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Task.position)
                .where(Task.project_id == self.ids["project"], Task.status == status)
                .order_by(Task.position)
            )
            return list(result.scalars())


@asynccontextmanager
async def board_env(tmp_path, broadcaster: Optional[Broadcaster] = None, layout=None):
    engine = build_engine(database_url(tmp_path))
    await create_tables(engine)
    env = BoardEnv(build_session_factory(engine), broadcaster or Broadcaster())
    try:
        async with env.session_factory() as session:
            env.ids = await seed_board(session, layout)
        yield env
        await env.broadcaster.drain()
    finally:
        await engine.dispose()
