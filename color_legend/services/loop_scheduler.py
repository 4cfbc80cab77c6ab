"""asyncio-backed scheduler shared by the watcher, panel and mapping store."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional, Set

_LOGGER = logging.getLogger("ColorLegend.Scheduler")


class LoopScheduler:
    """Single-threaded timers and fire-and-forget tasks on one event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, logger: Optional[logging.Logger] = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._logger = logger or _LOGGER
        self._tasks: Set[asyncio.Task[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def after(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0, delay_ms) / 1000.0, callback)

    def after_cancel(self, handle: object) -> None:
        if isinstance(handle, (asyncio.Handle, asyncio.TimerHandle)):
            handle.cancel()
            return
        raise TypeError(f"Not a scheduler handle: {handle!r}")

    def call_soon(self, callback: Callable[[], None]) -> asyncio.Handle:
        return self._loop.call_soon(callback)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    @property
    def pending_tasks(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def drain(self) -> None:
        """Wait for every spawned task, including ones spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Background task failed: %s", exc, exc_info=exc)
