"""One engine instance per document: owns the mapping, panel, timers and watcher."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Coroutine, Optional, Protocol

from color_legend.config import CONFIG_FILE, EngineConfig, load_engine_config
from color_legend.host_tree import HostDocument, HostNode
from color_legend.logging_utils import configure_logging
from color_legend.mapping_store import MappingStore
from color_legend.overlay_panel import ConfirmFn, OverlayPanel, locate_anchor
from color_legend.rewriter import AttributeRewriter
from color_legend.services.loop_scheduler import LoopScheduler
from color_legend.services.storage import StorageBackend
from color_legend.services.watch_timers import WatchTimers
from color_legend.tree_watcher import TreeWatcher

_LOGGER = logging.getLogger("ColorLegend.Engine")


class Scheduler(Protocol):
    def after(self, delay_ms: int, callback: Callable[[], None]) -> object: ...
    def after_cancel(self, handle: object) -> None: ...
    def call_soon(self, callback: Callable[[], None]) -> object: ...
    def spawn(self, coro: Coroutine[Any, Any, Any]) -> object: ...


class ColorLegendEngine:
    """Wires the four components together for one host document.

    Startup is strictly sequential: locate the anchor (bounded retry), load the
    mapping, inject the panel, start watching. If the anchor never appears the
    engine stays inert for the rest of the document's life.
    """

    def __init__(
        self,
        document: HostDocument,
        storage: StorageBackend,
        *,
        confirm: ConfirmFn,
        scheduler: Scheduler,
        config: Optional[EngineConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.document = document
        self.config = config or EngineConfig()
        self.scheduler = scheduler
        self._logger = logger or _LOGGER
        self.store = MappingStore(storage, spawn=scheduler.spawn)
        self.rewriter = AttributeRewriter(self.store)
        self.panel = OverlayPanel(
            document,
            self.store,
            confirm=confirm,
            after=scheduler.after,
            call_soon=scheduler.call_soon,
            config=self.config,
        )
        self.timers = WatchTimers(
            after=scheduler.after,
            after_cancel=scheduler.after_cancel,
            debounce_ms=self.config.debounce_ms,
            watchdog_ms=self.config.watchdog_ms,
            logger=self._logger.debug,
        )
        self.watcher = TreeWatcher(
            document,
            self.rewriter,
            self.store,
            self.panel,
            timers=self.timers,
            call_soon=scheduler.call_soon,
        )
        if self.config.retroactive_sweep:
            self.store.add_listener(self._on_mapping_changed)
        self.anchor_attempts = 0
        self.initialized = False
        self.inert = False

    async def wait_for_anchor(self) -> Optional[HostNode]:
        interval = max(0, self.config.anchor_retry_ms) / 1000.0
        while True:
            self.anchor_attempts += 1
            anchor = locate_anchor(self.document)
            if anchor is not None:
                return anchor
            if self.anchor_attempts >= self.config.anchor_max_attempts:
                return None
            await asyncio.sleep(interval)

    async def start(self) -> bool:
        if self.initialized:
            return True
        if self.inert:
            return False
        anchor = await self.wait_for_anchor()
        if anchor is None:
            self.inert = True
            seconds = self.config.anchor_retry_ms * self.config.anchor_max_attempts / 1000.0
            self._logger.error("Sidebar not found after %.0fs; color legend inactive", seconds)
            return False
        await self.store.load()
        self.panel.inject()
        self.watcher.start()
        if self.config.retroactive_sweep and not self.store.is_empty():
            self.watcher.request_sweep()
        self.initialized = True
        self._logger.info("Initialized")
        return True

    def _on_mapping_changed(self, identifier: Optional[str], label: Optional[str]) -> None:
        if identifier is None or not label:
            return
        self.watcher.request_sweep()


async def start_engine(
    document: HostDocument,
    storage: StorageBackend,
    *,
    confirm: Optional[ConfirmFn] = None,
    config: Optional[EngineConfig] = None,
    config_dir: Optional[Path] = None,
    log_dir: Optional[Path] = None,
) -> ColorLegendEngine:
    """Build an engine on the running event loop and start it.

    Without an explicit ``config`` the timings come from ``color_legend.json``
    in ``config_dir`` (defaults when absent). Without ``confirm`` the reset
    prompt is a PyQt6 message box, which needs a live ``QApplication``.
    """
    if config is None:
        config = load_engine_config(Path(config_dir) / CONFIG_FILE if config_dir is not None else None)
    configure_logging(log_dir=log_dir, debug=config.debug)
    if confirm is None:
        from color_legend.qt_prompt import qt_confirm

        confirm = qt_confirm
    engine = ColorLegendEngine(
        document,
        storage,
        confirm=confirm,
        scheduler=LoopScheduler(asyncio.get_running_loop()),
        config=config,
    )
    await engine.start()
    return engine
