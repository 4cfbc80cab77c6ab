import asyncio
import logging
import os
from collections import deque

import pytest

from color_legend.config import EngineConfig
from color_legend.engine import ColorLegendEngine
from color_legend.host_tree import HostDocument
from color_legend.services.storage import MemoryStorage

SIDEBAR_MARKUP = """
<div id="app">
  <div class="sidebar"><h1> Drawer </h1><div class="mini-calendar"></div></div>
  <div class="grid">
    <div class="event" id="e1" data-text="Tomato"></div>
    <div class="event" id="e2" aria-label=" tomato "></div>
    <div class="event" id="e3" title="Flamingo"></div>
    <div class="event" id="e4" data-tooltip="Standup"></div>
  </div>
</div>
"""


def pytest_runtest_setup(item):
    if item.get_closest_marker("pyqt_required"):
        if not os.getenv("PYQT_TESTS"):
            pytest.skip("PYQT_TESTS not set; skipping PyQt-dependent test")


class ManualScheduler:
    """Virtual clock: call_soon callbacks drain before any timer fires."""

    def __init__(self) -> None:
        self.now = 0
        self._seq = 0
        self._timers: dict[str, tuple[int, int, object]] = {}
        self._soon: deque = deque()
        self.scheduled: list[tuple[str, int]] = []
        self.cancelled: list[str] = []
        self.spawned = 0

    def after(self, delay_ms, callback) -> str:
        self._seq += 1
        handle = f"h{self._seq}"
        self._timers[handle] = (self.now + max(0, int(delay_ms)), self._seq, callback)
        self.scheduled.append((handle, int(delay_ms)))
        return handle

    def after_cancel(self, handle) -> None:
        self.cancelled.append(handle)
        self._timers.pop(handle, None)

    def call_soon(self, callback) -> None:
        self._soon.append(callback)

    def spawn(self, coro):
        self.spawned += 1
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)
        return loop.create_task(coro)

    def run_soon(self) -> None:
        while self._soon:
            self._soon.popleft()()

    def advance(self, ms: int) -> None:
        target = self.now + ms
        self.run_soon()
        while True:
            due = [(when, seq, handle) for handle, (when, seq, _cb) in self._timers.items() if when <= target]
            if not due:
                break
            when, _seq, handle = min(due)
            _when, _seq2, callback = self._timers.pop(handle)
            self.now = when
            callback()
            self.run_soon()
        self.now = target

    def pending_timers(self) -> int:
        return len(self._timers)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def document():
    return HostDocument.from_markup(SIDEBAR_MARKUP)


@pytest.fixture
def make_engine(scheduler, storage):
    def _make(document, *, confirm=lambda _message: True, config=None, backend=None):
        return ColorLegendEngine(
            document,
            backend if backend is not None else storage,
            confirm=confirm,
            scheduler=scheduler,
            config=config or EngineConfig(anchor_retry_ms=1, anchor_max_attempts=3),
        )

    return _make


@pytest.fixture(autouse=True)
def _restore_engine_logger():
    logger = logging.getLogger("ColorLegend")
    saved = (logger.level, logger.propagate, list(logger.handlers))
    yield
    for handler in list(logger.handlers):
        if handler not in saved[2]:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(saved[0])
    logger.propagate = saved[1]
