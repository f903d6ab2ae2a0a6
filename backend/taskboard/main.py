import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskboard.core.broadcast import Broadcaster
from taskboard.core.config import settings
from taskboard.core.database import build_engine, build_session_factory, create_tables
from taskboard.core.exceptions import TaskBoardError
from taskboard.core.locks import ColumnLockRegistry
from taskboard.core.logging_config import setup_logging
from taskboard.core.websocket import ConnectionManager
from taskboard.routers import auth, invitations, projects, realtime, tasks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables(app.state.engine)
    app.state.broadcaster.start()
    logger.info("Task board API started")
    try:
        yield
    finally:
        await app.state.broadcaster.stop()
        await app.state.engine.dispose()


async def handle_board_error(request: Request, exc: TaskBoardError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(database_url: Optional[str] = None, broadcaster: Optional[Broadcaster] = None) -> FastAPI:
    app = FastAPI(title="Task Board API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.engine = build_engine(database_url)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.broadcaster = broadcaster or Broadcaster.from_settings()
    app.state.connection_manager = ConnectionManager(app.state.broadcaster)
    app.state.column_locks = ColumnLockRegistry()

    app.add_exception_handler(TaskBoardError, handle_board_error)

    app.include_router(auth.router)
    app.include_router(projects.router)
    app.include_router(invitations.router)
    app.include_router(tasks.router)
    app.include_router(realtime.router)

    @app.get("/")
    async def root():
        return {"message": "Task Board API is running"}

    return app


setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
app = create_app()
