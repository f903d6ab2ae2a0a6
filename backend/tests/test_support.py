import asyncio
from datetime import timedelta

import pytest
from jose import JWTError
from sqlalchemy import func, select

from taskboard.core.database import build_engine, build_session_factory, create_tables
from taskboard.core.locks import ColumnLockRegistry
from taskboard.core.security import create_access_token, decode_access_token
from taskboard.models.task import Task
from taskboard.models.user import User
from taskboard.schemas.task import TaskStatus
from taskboard.seed import DEMO_TASKS, DEMO_USERS, seed_database

from helpers import database_url


def test_column_locks_serialize_holders_of_the_same_column():
    locks = ColumnLockRegistry()
    order = []

    async def hold(name, keys):
        async with locks.hold(keys):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    async def scenario():
        await asyncio.gather(
            hold("first", [(1, TaskStatus.TODO), (1, TaskStatus.COMPLETED)]),
            hold("second", [(1, TaskStatus.COMPLETED)]),
        )

    asyncio.run(scenario())
    assert order == ["first-in", "first-out", "second-in", "second-out"]


def test_column_locks_acquire_in_board_order():
    locks = ColumnLockRegistry()

    async def scenario():
        async with locks.hold([(2, "TODO"), (1, TaskStatus.COMPLETED), (1, TaskStatus.TODO), (1, "TODO")]) as held:
            return held

    held = asyncio.run(scenario())
    assert [(project, TaskStatus(status)) for project, status in held] == [
        (1, TaskStatus.TODO), (1, TaskStatus.COMPLETED), (2, TaskStatus.TODO),
    ]


def test_column_locks_are_dropped_once_released():
    locks = ColumnLockRegistry()
    seen = []

    async def hold(keys):
        async with locks.hold(keys):
            seen.append(locks.active_columns)
            await asyncio.sleep(0.01)

    async def scenario():
        await asyncio.gather(
            hold([(1, TaskStatus.TODO), (1, TaskStatus.COMPLETED)]),
            hold([(1, "TODO")]),
            hold([(2, TaskStatus.IN_PROGRESS)]),
        )
        for project_id in range(50):
            async with locks.hold([(project_id, TaskStatus.TODO)]):
                pass

    asyncio.run(scenario())
    assert max(seen) == 3
    assert locks.active_columns == 0


def test_access_tokens_round_trip():
    token = create_access_token({"sub": "7"})
    assert decode_access_token(token)["sub"] == "7"

    expired = create_access_token({"sub": "7"}, expires_delta=timedelta(minutes=-1))
    with pytest.raises(JWTError):
        decode_access_token(expired)


def test_seed_creates_demo_board_and_reuses_users(tmp_path):
    async def scenario():
        engine = build_engine(database_url(tmp_path))
        await create_tables(engine)
        try:
            async with build_session_factory(engine)() as session:
                first = await seed_database(session)
                second = await seed_database(session)
                users = await session.scalar(select(func.count(User.id)))
                positions = (
                    await session.execute(
                        select(Task.position)
                        .where(Task.project_id == first["project_id"], Task.status == "TODO")
                        .order_by(Task.position)
                    )
                ).scalars().all()
            return first, second, users, positions
        finally:
            await engine.dispose()

    first, second, users, positions = asyncio.run(scenario())
    assert users == len(DEMO_USERS)
    assert first["users"] == second["users"]
    assert first["project_id"] != second["project_id"]
    assert list(positions) == list(range(len(DEMO_TASKS["TODO"])))
