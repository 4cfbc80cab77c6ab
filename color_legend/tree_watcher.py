"""Live-tree synchronization: debounced rewrites plus the panel watchdog.

The watcher reacts to one raw notification stream with two independently
timed tasks:

* the rewrite debounce collects changed nodes into a pending set and runs a
  single rewrite pass once the tree has been quiet for ``debounce_ms``;
* the watchdog waits ``watchdog_ms`` after the last change and re-injects the
  panel if the host application discarded it.

Rewrites write back into the observed tree. Those writes produce notifications
of their own, and a pass must never schedule another pass off its own writes.
The ``REWRITING`` state is the guard: notifications seen while it is held are
dropped, and records still queued when the pass ends are discarded as
self-caused.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from color_legend.host_tree import ATTRIBUTES, HostDocument, HostNode, MutationRecord, TreeObserver
from color_legend.mapping_store import MappingStore
from color_legend.overlay_panel import OverlayPanel
from color_legend.rewriter import AttributeRewriter
from color_legend.services.watch_timers import REWRITE_KEY, WatchTimers

_LOGGER = logging.getLogger("ColorLegend.Watcher")


class WatcherState(enum.Enum):
    IDLE = "idle"
    BATCHING = "batching"
    REWRITING = "rewriting"


@dataclass
class WatcherStats:
    passes: int = 0
    skipped_passes: int = 0
    attributes_rewritten: int = 0
    dropped_records: int = 0
    watchdog_checks: int = 0
    reinjections: int = 0


class TreeWatcher:
    """Drives the attribute rewriter and panel repair from host tree changes."""

    def __init__(
        self,
        document: HostDocument,
        rewriter: AttributeRewriter,
        store: MappingStore,
        panel: OverlayPanel,
        *,
        timers: WatchTimers,
        call_soon: Callable[[Callable[[], None]], object],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._document = document
        self._rewriter = rewriter
        self._store = store
        self._panel = panel
        self._timers = timers
        self._logger = logger or _LOGGER
        self._observer = TreeObserver(self.handle_records, call_soon=call_soon)
        self._pending: Dict[HostNode, None] = {}
        self._state = WatcherState.IDLE
        self._started = False
        self.stats = WatcherStats()

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def pending(self) -> List[HostNode]:
        return list(self._pending)

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        self._observer.observe(
            self._document.body,
            child_list=True,
            subtree=True,
            attribute_filter=self._rewriter.attributes,
        )
        self._started = True
        self._logger.debug("Watching document body (attributes=%s)", ", ".join(self._rewriter.attributes))

    # Notification intake -------------------------------------------------

    def handle_records(self, records: List[MutationRecord], _observer: Optional[TreeObserver] = None) -> None:
        if self._state is WatcherState.REWRITING:
            self.stats.dropped_records += len(records)
            return
        self._collect(records)
        if self._pending:
            self._state = WatcherState.BATCHING
            self._timers.schedule_rewrite(self._on_debounce)
        self._timers.schedule_watchdog(self._on_watchdog)

    def _collect(self, records: Iterable[MutationRecord]) -> None:
        for record in records:
            if record.type == ATTRIBUTES:
                if record.attribute_name:
                    self._rewriter.forget(record.target, record.attribute_name)
                self._pending[record.target] = None
            else:
                for node in record.added_nodes:
                    self._pending[node] = None

    def request_sweep(self) -> None:
        """Queue the whole body for rewriting on the next debounce firing."""
        if not self._started or self._state is WatcherState.REWRITING:
            return
        self._pending[self._document.body] = None
        self._state = WatcherState.BATCHING
        self._timers.schedule_rewrite(self._on_debounce)

    # Rewrite pass --------------------------------------------------------

    def _on_debounce(self) -> None:
        if self._state is WatcherState.REWRITING:
            return
        self.run_pass()

    def run_pass(self) -> int:
        """Rewrite every pending node; returns the number of attributes changed."""
        # Records queued but not yet delivered predate this pass, so they are external.
        self._collect(self._observer.take_records())
        if not self._pending:
            self._state = WatcherState.IDLE
            return 0
        if self._store.is_empty():
            self._pending = {}
            self._state = WatcherState.IDLE
            self.stats.skipped_passes += 1
            return 0

        self._state = WatcherState.REWRITING
        nodes, self._pending = self._pending, {}
        changed = 0
        visited = 0
        try:
            for node in nodes:
                if not self._document.contains(node):
                    continue
                if self._panel.contains(node):
                    continue
                visited += 1
                changed += self._rewriter.rewrite_subtree(node, skip=self._panel.contains)
        finally:
            self_caused = self._observer.take_records()
            self.stats.dropped_records += len(self_caused)
            self._state = WatcherState.BATCHING if self._pending else WatcherState.IDLE
        self.stats.passes += 1
        self.stats.attributes_rewritten += changed
        self._logger.debug(
            "Rewrite pass %d: nodes=%d visited=%d rewritten=%d",
            self.stats.passes,
            len(nodes),
            visited,
            changed,
        )
        if self._state is WatcherState.BATCHING and not self._timers.is_pending(REWRITE_KEY):
            self._timers.schedule_rewrite(self._on_debounce)
        return changed

    # Watchdog ------------------------------------------------------------

    def _on_watchdog(self) -> None:
        self.stats.watchdog_checks += 1
        if self._panel.is_present():
            return
        self._logger.debug("Panel missing from tree; re-injecting")
        if self._panel.inject() is not None:
            self.stats.reinjections += 1
