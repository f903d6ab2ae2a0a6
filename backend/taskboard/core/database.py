from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from starlette.requests import HTTPConnection
from .config import settings

Base = declarative_base()


def build_engine(database_url: str = None):
    url = database_url or settings.DATABASE_URL
    connect_args = {}
    if url.startswith("postgresql+asyncpg"):
        connect_args["server_settings"] = {"application_name": "taskboard"}
        if settings.DATABASE_SSL:
            connect_args["ssl"] = "require"
    return create_async_engine(url, echo=settings.SQL_ECHO, connect_args=connect_args)


def build_session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine):
    # Models register themselves on Base when imported.
    from taskboard import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(connection: HTTPConnection):
    session_factory = connection.app.state.session_factory
    async with session_factory() as session:
        yield session
