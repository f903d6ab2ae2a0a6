from taskboard.client.state import OptimisticBoard
from taskboard.core.broadcast import Broadcaster
from taskboard.core.websocket import project_board_topics


class BoardSubscription:
    """Refetch a board whenever its project reports a change.

    Event payloads only say that something changed. The one exception is the
    echo of this board's own confirmed move, which is already applied locally.
    """

    def __init__(self, broadcaster: Broadcaster, board: OptimisticBoard):
        self.board = board
        self.subscriptions = [
            broadcaster.subscribe(topic, event, self._on_event)
            for topic, event in project_board_topics(board.project_id)
        ]

    async def _on_event(self, payload: dict) -> None:
        if self.board.is_own_echo(payload):
            return
        await self.board.refresh()

    def close(self) -> None:
        for subscription in self.subscriptions:
            subscription.unsubscribe()
        self.subscriptions = []

    def __enter__(self) -> "BoardSubscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
