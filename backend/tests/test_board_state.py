import asyncio

from taskboard.board import arrangement_key, group_columns, move_to_position
from taskboard.board.reorder import find_task
from taskboard.client.realtime import BoardSubscription
from taskboard.client.state import BUSY_MESSAGE, BoardState, OptimisticBoard
from taskboard.core.broadcast import TASK_CHANGED, Broadcaster, tasks_topic
from taskboard.core.exceptions import Forbidden, NotFound, TransientFailure
from taskboard.schemas.task import TaskStatus

from helpers import card

PROJECT_ID = 1


def initial_tasks():
    return [
        card(1, "TODO", 0, "A"),
        card(2, "TODO", 1, "B"),
        card(3, "TODO", 2, "C"),
        card(4, "IN_PROGRESS", 0, "D"),
    ]


class FakeApi:
    """In-memory server: applies moves with the same engine, or fails on demand."""

    def __init__(self, tasks, error=None):
        self.tasks = tuple(tasks)
        self.error = error
        self.calls = []
        self.list_calls = 0
        self.gate = None

    async def update_task(self, project_id, task_id, **changes):
        self.calls.append((project_id, task_id, changes))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.tasks = move_to_position(self.tasks, task_id, changes["status"], changes["position"])
        return find_task(self.tasks, task_id)

    async def list_tasks(self, project_id):
        self.list_calls += 1
        return list(self.tasks)


def make_board(api=None, tasks=None):
    tasks = initial_tasks() if tasks is None else tasks
    api = api or FakeApi(tasks)
    events = {"renders": [], "notices": [], "errors": []}
    board = OptimisticBoard(
        PROJECT_ID,
        api,
        tasks,
        on_change=events["renders"].append,
        on_notice=events["notices"].append,
        on_error=events["errors"].append,
    )
    return board, api, events


def titles(board, status):
    return [task.title for task in board.columns()[TaskStatus(status)]]


def test_drag_over_previews_locally_without_calling_server():
    board, api, events = make_board()
    assert board.drag_start(3)
    assert board.state == BoardState.DRAGGING

    board.drag_over("TODO", 0)
    board.drag_over("IN_PROGRESS", 1)

    assert titles(board, "TODO") == ["A", "B"]
    assert titles(board, "IN_PROGRESS") == ["D", "C"]
    assert api.calls == []
    assert len(events["renders"]) == 2


def test_successful_drag_reconciles_with_server():
    board, api, events = make_board()
    board.drag_start(1)
    board.drag_over("IN_PROGRESS", 0)

    assert asyncio.run(board.drag_end())

    assert api.calls == [(PROJECT_ID, 1, {"status": TaskStatus.IN_PROGRESS, "position": 0})]
    assert board.state == BoardState.IDLE
    assert titles(board, "IN_PROGRESS") == ["A", "D"]
    assert board.server_tasks == board.tasks
    assert arrangement_key(board.tasks) == arrangement_key(api.tasks)
    assert events["errors"] == []


def test_drag_end_with_target_applies_it():
    board, api, _ = make_board()
    board.drag_start(3)
    assert asyncio.run(board.drag_end("TODO", 0))
    assert titles(board, "TODO") == ["C", "A", "B"]


def test_drop_in_original_slot_makes_no_request():
    board, api, events = make_board()
    board.drag_start(2)
    board.drag_over("COMPLETED", 0)
    board.drag_over("TODO", 1)

    assert not asyncio.run(board.drag_end())
    assert api.calls == []
    assert board.state == BoardState.IDLE
    assert titles(board, "TODO") == ["A", "B", "C"]


def test_transient_failure_rolls_back_with_one_error():
    board, api, events = make_board(FakeApi(initial_tasks(), error=TransientFailure("db down")))
    before = board.tasks
    board.drag_start(1)
    board.drag_over("IN_PROGRESS", 1)

    assert not asyncio.run(board.drag_end())

    assert board.tasks == before
    assert events["renders"][-1] == before
    assert len(events["errors"]) == 1
    assert board.state == BoardState.IDLE
    assert board.drag_origin is None


def test_forbidden_rolls_back_without_refetch():
    board, api, events = make_board(FakeApi(initial_tasks(), error=Forbidden("viewer")))
    before = board.tasks
    assert not asyncio.run(board.move_down(1))

    assert board.tasks == before
    assert events["errors"] == ["You don't have permission to change tasks in this project"]
    assert api.list_calls == 0


def test_not_found_rolls_back_and_refetches():
    api = FakeApi(initial_tasks(), error=NotFound("gone"))
    board, _, events = make_board(api)
    api.tasks = tuple(task for task in api.tasks if task.id != 1)

    assert not asyncio.run(board.move_down(1))

    assert len(events["errors"]) == 1
    assert api.list_calls == 1
    assert titles(board, "TODO") == ["B", "C"]


def test_mutations_are_refused_while_reconciling():
    api = FakeApi(initial_tasks())
    board, _, events = make_board(api)

    async def scenario():
        api.gate = asyncio.Event()
        first = asyncio.create_task(board.move_down(1))
        await asyncio.sleep(0)
        assert board.is_busy

        refused_move = await board.move_up(3)
        refused_drag = board.drag_start(2)
        api.gate.set()
        return await first, refused_move, refused_drag

    saved, refused_move, refused_drag = asyncio.run(scenario())
    assert saved
    assert not refused_move and not refused_drag
    assert events["notices"] == [BUSY_MESSAGE, BUSY_MESSAGE]
    assert len(api.calls) == 1
    assert titles(board, "TODO") == ["B", "A", "C"]


def test_move_up_and_down():
    board, api, _ = make_board()
    assert asyncio.run(board.move_up(3))
    assert titles(board, "TODO") == ["A", "C", "B"]
    assert asyncio.run(board.move_down(1))
    assert titles(board, "TODO") == ["C", "A", "B"]
    assert [task.position for task in board.columns()[TaskStatus.TODO]] == [0, 1, 2]


def test_move_at_column_edge_is_noop():
    board, api, events = make_board()
    assert not asyncio.run(board.move_up(1))
    assert not asyncio.run(board.move_down(3))
    assert not asyncio.run(board.move_down(4))
    assert api.calls == []
    assert events["renders"] == []


def test_drag_cancel_restores_origin():
    board, api, events = make_board()
    before = board.tasks
    board.drag_start(2)
    board.drag_over("COMPLETED", 0)
    board.drag_cancel()

    assert board.tasks == before
    assert board.state == BoardState.IDLE
    assert events["renders"][-1] == before


def test_server_data_during_drag_is_deferred_then_refetched():
    board, api, events = make_board()
    board.drag_start(1)
    board.drag_over("TODO", 2)

    # Another client added a task meanwhile.
    api.tasks = api.tasks + (card(9, "COMPLETED", 0, "Z"),)
    board.receive_server_tasks(api.tasks)
    assert titles(board, "COMPLETED") == []

    assert asyncio.run(board.drag_end())
    assert api.list_calls == 1
    assert titles(board, "COMPLETED") == ["Z"]
    assert titles(board, "TODO") == ["B", "C", "A"]


def add_task_elsewhere(board, api):
    api.tasks = api.tasks + (card(9, "COMPLETED", 0, "Z"),)
    board.receive_server_tasks(api.tasks)


def test_cancelled_drag_refetches_deferred_server_data():
    board, api, events = make_board()

    async def scenario():
        board.drag_start(1)
        board.drag_over("TODO", 2)
        add_task_elsewhere(board, api)
        board.drag_cancel()
        await board._pending_refresh

    asyncio.run(scenario())
    assert api.list_calls == 1
    assert board.state == BoardState.IDLE
    assert titles(board, "COMPLETED") == ["Z"]
    assert titles(board, "TODO") == ["A", "B", "C"]


def test_drop_in_original_slot_refetches_deferred_server_data():
    board, api, events = make_board()
    board.drag_start(1)
    board.drag_over("TODO", 2)
    add_task_elsewhere(board, api)

    assert not asyncio.run(board.drag_end("TODO", 0))
    assert api.calls == []
    assert api.list_calls == 1
    assert titles(board, "COMPLETED") == ["Z"]


def test_cancel_without_deferred_data_does_not_refetch():
    board, api, events = make_board()

    async def scenario():
        board.drag_start(1)
        board.drag_over("TODO", 2)
        board.drag_cancel()
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert api.list_calls == 0
    assert board._pending_refresh is None


def test_unexpected_api_error_rolls_back_and_unlocks():
    api = FakeApi(initial_tasks(), error=ValueError("bad json"))
    board, _, events = make_board(api)
    before = board.tasks
    board.drag_start(1)
    board.drag_over("TODO", 2)

    assert not asyncio.run(board.drag_end())
    assert board.state == BoardState.IDLE
    assert not board.is_busy
    assert board.tasks == before
    assert events["errors"] == ["Couldn't save your change, please try again"]

    api.error = None
    assert asyncio.run(board.move_down(1))
    assert events["notices"] == []
    assert titles(board, "TODO") == ["B", "A", "C"]


def test_own_change_event_is_recognised_once():
    board, api, _ = make_board()
    assert asyncio.run(board.move_down(1))

    assert not board.is_own_echo({"taskId": 2})
    assert board.is_own_echo({"projectId": PROJECT_ID, "taskId": 1, "action": "updated"})
    assert not board.is_own_echo({"taskId": 1})


def test_rejected_move_leaves_no_echo_to_skip():
    board, api, _ = make_board(FakeApi(initial_tasks(), error=Forbidden("viewer")))
    assert not asyncio.run(board.move_down(1))
    assert not board.is_own_echo({"taskId": 1})


def test_subscription_skips_refetch_for_own_move_only():
    board, api, _ = make_board()
    broadcaster = Broadcaster()

    async def scenario():
        with BoardSubscription(broadcaster, board):
            await board.move_down(1)
            await broadcaster.publish(tasks_topic(PROJECT_ID), TASK_CHANGED, {"taskId": 1, "action": "updated"})
            await broadcaster.drain()
            own = api.list_calls
            await broadcaster.publish(tasks_topic(PROJECT_ID), TASK_CHANGED, {"taskId": 3, "action": "updated"})
            await broadcaster.drain()
        return own, api.list_calls

    assert asyncio.run(scenario()) == (0, 1)


def test_refresh_when_idle_replaces_tasks():
    board, api, events = make_board()
    api.tasks = (card(1, "COMPLETED", 0, "A"),)
    asyncio.run(board.refresh())
    assert group_columns(board.tasks)[TaskStatus.COMPLETED][0].title == "A"
    assert len(board.tasks) == 1
    assert events["renders"] == [board.tasks]
