"""Seed a demo board: three users, one project and a few tasks per column.

Run with ``python -m taskboard.seed``. Existing users are left alone, so the
script can be re-run; it prints a bearer token for each demo user since
token issuance lives outside this service.
"""

import asyncio
import logging

from sqlalchemy import select

from taskboard.core.config import settings
from taskboard.core.database import build_engine, build_session_factory, create_tables
from taskboard.core.logging_config import setup_logging
from taskboard.core.security import create_access_token
from taskboard.models.project import Project, ProjectMember
from taskboard.models.task import Task
from taskboard.models.user import User

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {"username": "jiro", "full_name": "Jiro", "role": "OWNER"},
    {"username": "mulyadi", "full_name": "Mulyadi", "role": "EDITOR"},
    {"username": "ajiz", "full_name": "Ajiz", "role": "VIEWER"},
]

DEMO_TASKS = {
    "TODO": ["Write release notes", "Triage bug reports", "Plan sprint review"],
    "IN_PROGRESS": ["Migrate task positions", "Realtime board updates"],
    "COMPLETED": ["Set up CI"],
}


async def seed_database(session) -> dict:
    users = {}
    for spec in DEMO_USERS:
        result = await session.execute(select(User).where(User.username == spec["username"]))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(username=spec["username"], full_name=spec["full_name"])
            session.add(user)
            await session.flush()
            logger.info("Created user: %s", user.username)
        else:
            logger.info("User %s already exists", user.username)
        users[spec["username"]] = user

    owner = users[DEMO_USERS[0]["username"]]
    project = Project(name="Demo board", description="Seeded project", owner_id=owner.id)
    session.add(project)
    await session.flush()

    for spec in DEMO_USERS:
        session.add(ProjectMember(project_id=project.id, user_id=users[spec["username"]].id, role=spec["role"]))

    for status, titles in DEMO_TASKS.items():
        for position, title in enumerate(titles):
            session.add(Task(project_id=project.id, title=title, status=status, position=position, labels=[]))

    await session.commit()
    logger.info("Seeded project %s", project.id)
    return {"project_id": project.id, "users": {name: user.id for name, user in users.items()}}


async def main() -> None:
    engine = build_engine()
    await create_tables(engine)
    try:
        async with build_session_factory(engine)() as session:
            seeded = await seed_database(session)
    finally:
        await engine.dispose()

    print(f"Project id: {seeded['project_id']}")
    for name, user_id in seeded["users"].items():
        print(f"{name}: {create_access_token({'sub': str(user_id)})}")


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    asyncio.run(main())
