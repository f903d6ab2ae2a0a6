import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Dict, Iterable, Tuple

from taskboard.schemas.task import TaskStatus

ColumnKey = Tuple[int, TaskStatus]


class ColumnLockRegistry:
    """In-process mutual exclusion per (project_id, status) column.

    Row locks (SELECT ... FOR UPDATE) cover other processes on databases that
    support them; this registry covers concurrent requests inside one process,
    including SQLite deployments where row locks are not available.

    A column's lock lives only while someone holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[ColumnKey, asyncio.Lock] = {}
        self._users: Dict[ColumnKey, int] = {}

    @property
    def active_columns(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def _column(self, key: ColumnKey):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def hold(self, keys: Iterable[ColumnKey]):
        # Fixed acquisition order so two movers between the same columns cannot deadlock.
        ordered = sorted(set(keys), key=lambda key: (key[0], TaskStatus(key[1]).rank))
        async with AsyncExitStack() as stack:
            for key in ordered:
                await stack.enter_async_context(self._column(key))
            yield ordered
