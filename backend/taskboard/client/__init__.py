"""Client side of the board: HTTP API, optimistic state and drag handling."""

from taskboard.client.api import TaskBoardClient
from taskboard.client.drag import DragController, DropTarget
from taskboard.client.realtime import BoardSubscription
from taskboard.client.state import BoardState, OptimisticBoard

__all__ = [
    "BoardState",
    "BoardSubscription",
    "DragController",
    "DropTarget",
    "OptimisticBoard",
    "TaskBoardClient",
]
