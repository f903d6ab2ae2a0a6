"""Board ordering engine shared by the server and the client."""

from taskboard.board.cards import TaskCard
from taskboard.board.positions import arrangement_key, group_columns, is_contiguous, normalize, order_board
from taskboard.board.reorder import Direction, changed_tasks, locate, move_relative, move_to_position

__all__ = [
    "TaskCard",
    "Direction",
    "arrangement_key",
    "changed_tasks",
    "group_columns",
    "is_contiguous",
    "locate",
    "move_relative",
    "move_to_position",
    "normalize",
    "order_board",
]
