"""
Keyed debouncer.

schedule(key, action) runs action after the delay unless another schedule()
for the same key comes first, in which case the earlier one is cancelled.
Once an action has started it is no longer replaced, only cancel_all()
stops it.
"""

import asyncio
from typing import Any, Awaitable, Callable


Action = Callable[[], Awaitable[Any]]


class KeyedDebouncer:
    def __init__(self, delay_seconds: float):
        self._delay = delay_seconds
        self._pending: dict[str, asyncio.Task] = {}
        self._running: set[asyncio.Task] = set()

    @property
    def delay_seconds(self) -> float:
        return self._delay

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def schedule(self, key: str, action: Action) -> asyncio.Task:
        """Must be called from inside a running event loop."""
        self.cancel(key)
        task = asyncio.ensure_future(self._fire(key, action))
        self._pending[key] = task
        return task

    async def _fire(self, key: str, action: Action) -> Any:
        await asyncio.sleep(self._delay)
        task = self._pending.pop(key, None)
        if task is not None:
            self._running.add(task)
        try:
            return await action()
        finally:
            if task is not None:
                self._running.discard(task)

    def cancel(self, key: str) -> bool:
        task = self._pending.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        tasks = list(self._pending.values()) + list(self._running)
        self._pending.clear()
        self._running.clear()
        for task in tasks:
            task.cancel()
        return len(tasks)

