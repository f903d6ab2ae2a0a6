import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from taskboard.core.websocket import project_board_topics, user_topics
from taskboard.routers.auth import resolve_user
from taskboard.services.access import get_member_role

logger = logging.getLogger(__name__)

router = APIRouter()


async def _authorize(websocket: WebSocket, token: Optional[str], project_id: Optional[int] = None):
    async with websocket.app.state.session_factory() as db:
        user = await resolve_user(token, db)
        if user is None:
            return None
        if project_id is not None and await get_member_role(db, project_id, user.id) is None:
            return None
        return user


async def _serve(websocket: WebSocket, topics, label: str):
    manager = websocket.app.state.connection_manager
    try:
        await manager.connect(websocket, topics)
        logger.info("%s connected to WebSocket", label)
        while True:
            # Clients only listen; anything they send is treated as a keep-alive.
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("%s disconnected from WebSocket", label)
    finally:
        manager.disconnect(websocket)


@router.websocket("/ws/projects/{project_id}")
async def project_board_socket(websocket: WebSocket, project_id: int, token: Optional[str] = Query(None)):
    """Task, project and membership change hints for one board."""
    user = await _authorize(websocket, token, project_id)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _serve(websocket, project_board_topics(project_id), f"User {user.id} on project {project_id}")


@router.websocket("/ws/invitations")
async def invitations_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Per-user notifications about being added to projects."""
    user = await _authorize(websocket, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _serve(websocket, user_topics(user.id), f"User {user.id} invitations")
