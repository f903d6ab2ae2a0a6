import logging
from typing import Dict, Iterable, List, Tuple

from fastapi import WebSocket

from .broadcast import (
    Broadcaster,
    Subscription,
    INVITATION_CHANGED,
    MEMBER_CHANGED,
    PROJECT_DELETED,
    PROJECT_UPDATED,
    TASK_CHANGED,
    invitations_topic,
    members_topic,
    project_topic,
    tasks_topic,
)

logger = logging.getLogger(__name__)


def project_board_topics(project_id: int) -> List[Tuple[str, str]]:
    """(topic, event) pairs a board view listens to."""
    return [
        (tasks_topic(project_id), TASK_CHANGED),
        (project_topic(project_id), PROJECT_UPDATED),
        (project_topic(project_id), PROJECT_DELETED),
        (members_topic(project_id), MEMBER_CHANGED),
    ]


def user_topics(user_id: int) -> List[Tuple[str, str]]:
    return [(invitations_topic(user_id), INVITATION_CHANGED)]


class ConnectionManager:
    def __init__(self, broadcaster: Broadcaster):
        self.broadcaster = broadcaster
        self.active_connections: Dict[WebSocket, List[Subscription]] = {}

    async def connect(self, websocket: WebSocket, topics: Iterable[Tuple[str, str]]):
        subscriptions = []
        for topic, event in topics:
            subscriptions.append(self.broadcaster.subscribe(topic, event, self._forwarder(websocket, topic, event)))
        self.active_connections[websocket] = subscriptions
        await websocket.accept()

    def disconnect(self, websocket: WebSocket):
        for subscription in self.active_connections.pop(websocket, []):
            subscription.unsubscribe()

    def _forwarder(self, websocket: WebSocket, topic: str, event: str):
        async def forward(payload: dict):
            await self.send_personal_message({"topic": topic, "event": event, "payload": payload}, websocket)
        return forward

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        await websocket.send_json(message)
