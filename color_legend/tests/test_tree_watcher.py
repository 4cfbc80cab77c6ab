import asyncio

import pytest

from color_legend.config import PANEL_ID, STORAGE_KEY, EngineConfig
from color_legend.host_tree import HostDocument, HostNode
from color_legend.mapping_store import MappingStore
from color_legend.overlay_panel import OverlayPanel
from color_legend.rewriter import AttributeRewriter
from color_legend.services.storage import MemoryStorage
from color_legend.services.watch_timers import REWRITE_KEY, WatchTimers
from color_legend.tree_watcher import TreeWatcher, WatcherState

REBUILT_SIDEBAR = '<div class="sidebar"><h1>Drawer</h1><div title="Tomato" id="fresh"></div></div>'


@pytest.fixture
def started(document, storage, make_engine, scheduler):
    storage.data[STORAGE_KEY] = {"color_1": "Work"}
    engine = make_engine(document)
    assert asyncio.run(engine.start()) is True
    scheduler.advance(engine.config.watchdog_ms)
    return engine


def _grid(document):
    return document.query_all(".grid")[0]


def _panels(document):
    return [node for node in document.root.iter_tree() if node.id == PANEL_ID]


def test_startup_sweep_settles_to_idle(started, document):
    watcher = started.watcher
    assert watcher.state is WatcherState.IDLE
    assert watcher.stats.passes == 1
    assert document.get_element_by_id("e1").get_attribute("data-text") == "Work"
    assert document.get_element_by_id("e2").get_attribute("aria-label") == "Work"
    assert document.get_element_by_id("e3").get_attribute("title") == "Flamingo"


def test_burst_inside_window_coalesces_into_one_pass(started, document, scheduler):
    watcher = started.watcher
    added = []
    for _ in range(5):
        node = HostNode("div", {"title": "Tomato"})
        _grid(document).append_child(node)
        added.append(node)
        scheduler.advance(50)
    document.get_element_by_id("e1").set_attribute("data-text", " TOMATO")
    scheduler.advance(0)

    assert watcher.state is WatcherState.BATCHING
    assert watcher.stats.passes == 1
    assert set(map(id, watcher.pending)) == set(map(id, added + [document.get_element_by_id("e1")]))

    scheduler.advance(100)

    assert watcher.stats.passes == 2
    assert all(node.get_attribute("title") == "Work" for node in added)
    assert document.get_element_by_id("e1").get_attribute("data-text") == "Work"
    assert watcher.state is WatcherState.IDLE


def test_duplicate_changes_to_one_node_deduplicate(started, document, scheduler):
    node = document.get_element_by_id("e3")
    for _ in range(4):
        node.set_attribute("title", "Flamingo")
    scheduler.advance(0)
    assert started.watcher.pending == [node]


def test_own_writes_never_schedule_another_pass(started, document, scheduler):
    watcher = started.watcher
    for burst in range(3):
        _grid(document).append_child(HostNode("div", {"data-tooltip": "Tomato"}))
        scheduler.advance(10_000)
        assert watcher.stats.passes == 2 + burst
        assert watcher.state is WatcherState.IDLE
        assert not started.timers.is_pending(REWRITE_KEY)
    assert watcher.stats.dropped_records >= 3


def test_empty_mapping_skips_pass_and_drops_pending(document, storage, make_engine, scheduler):
    engine = make_engine(document)
    asyncio.run(engine.start())
    scheduler.advance(2000)

    node = _grid(document).append_child(HostNode("div", {"title": "Tomato"}))
    scheduler.advance(100)

    assert engine.watcher.stats.passes == 0
    assert engine.watcher.stats.skipped_passes >= 1
    assert engine.watcher.pending == []
    assert engine.watcher.state is WatcherState.IDLE
    assert node.get_attribute("title") == "Tomato"


def test_nodes_detached_before_pass_are_skipped(started, document, scheduler):
    node = _grid(document).append_child(HostNode("div", {"title": "Tomato"}))
    scheduler.advance(50)
    node.remove()
    scheduler.advance(100)
    assert node.get_attribute("title") == "Tomato"


def test_panel_internals_are_never_rewritten(started, document, scheduler):
    panel = started.panel.node
    decoy = HostNode("div", {"title": "Tomato"})
    panel.query(".ccl-content").append_child(decoy)
    _grid(document).append_child(HostNode("div"))
    scheduler.advance(100)

    assert decoy.get_attribute("title") == "Tomato"
    assert all(dot.get_attribute("title") != "Work" for dot in panel.query_all(".ccl-color-dot"))


def test_watchdog_restores_missing_panel_once(started, document, scheduler):
    watcher = started.watcher
    _panels(document)[0].remove()
    scheduler.advance(999)
    assert _panels(document) == []

    scheduler.advance(1)
    panels = _panels(document)
    assert len(panels) == 1
    assert panels[0].query(".ccl-color-input").value == "Work"
    assert watcher.stats.reinjections == 1

    scheduler.advance(10_000)
    assert len(_panels(document)) == 1
    assert watcher.stats.reinjections == 1


def test_every_change_pushes_the_watchdog_back(started, document, scheduler):
    _panels(document)[0].remove()
    for _ in range(5):
        scheduler.advance(600)
        _grid(document).append_child(HostNode("span"))
    assert _panels(document) == []
    scheduler.advance(1000)
    assert len(_panels(document)) == 1


def test_spa_rebuild_recovers_panel_and_rewrites(started, document, scheduler):
    app = document.get_element_by_id("app")
    app.query(".sidebar").remove()
    scheduler.advance(300)
    rebuilt = document.create_from_markup(REBUILT_SIDEBAR)
    app.append_child(rebuilt)
    scheduler.advance(100)

    assert document.get_element_by_id("fresh").get_attribute("title") == "Work"
    scheduler.advance(1000)
    panels = _panels(document)
    assert len(panels) == 1
    assert panels[0].parent is rebuilt


def test_watchdog_keeps_retrying_while_anchor_missing(started, document, scheduler):
    watcher = started.watcher
    app = document.get_element_by_id("app")
    app.query(".sidebar").remove()
    scheduler.advance(1000)
    assert watcher.stats.reinjections == 0
    checks = watcher.stats.watchdog_checks

    _grid(document).append_child(HostNode("div"))
    scheduler.advance(1000)
    assert watcher.stats.watchdog_checks == checks + 1
    assert _panels(document) == []

    app.append_child(document.create_from_markup(REBUILT_SIDEBAR))
    scheduler.advance(1000)
    assert len(_panels(document)) == 1


def test_guard_drops_notifications_delivered_during_a_pass(scheduler):
    document = HostDocument.from_markup('<div><h1>Drawer</h1></div><p id="p" title="Tomato"></p>')
    storage = MemoryStorage({STORAGE_KEY: {"color_1": "Work"}})
    store = MappingStore(storage, spawn=scheduler.spawn)
    asyncio.run(store.load())
    rewriter = AttributeRewriter(store)
    panel = OverlayPanel(
        document, store, confirm=lambda _m: True, after=scheduler.after, call_soon=scheduler.call_soon
    )
    timers = WatchTimers(after=scheduler.after, after_cancel=scheduler.after_cancel)
    states = []

    def deliver_now(callback):
        states.append(watcher.state)
        callback()

    watcher = TreeWatcher(document, rewriter, store, panel, timers=timers, call_soon=deliver_now)
    watcher.start()

    target = document.get_element_by_id("p")
    target.set_attribute("title", "Tomato")
    assert watcher.state is WatcherState.BATCHING
    scheduler.advance(EngineConfig().debounce_ms)

    assert target.get_attribute("title") == "Work"
    assert states == [WatcherState.IDLE, WatcherState.REWRITING]
    assert watcher.stats.dropped_records == 1
    assert watcher.stats.passes == 1
    assert watcher.state is WatcherState.IDLE
    assert not timers.is_pending(REWRITE_KEY)


def test_host_recolor_to_a_label_already_written_is_rewritten(document, storage, make_engine, scheduler):
    storage.data[STORAGE_KEY] = {"color_1": "Flamingo", "color_2": "Pink"}
    engine = make_engine(document)
    asyncio.run(engine.start())
    scheduler.advance(1000)

    e1 = document.get_element_by_id("e1")
    e3 = document.get_element_by_id("e3")
    assert e1.get_attribute("data-text") == "Flamingo"
    assert e3.get_attribute("title") == "Pink"

    scheduler.advance(5000)
    assert e1.get_attribute("data-text") == "Flamingo"

    e1.set_attribute("data-text", "Flamingo")
    scheduler.advance(100)
    assert e1.get_attribute("data-text") == "Pink"
    assert engine.watcher.state is WatcherState.IDLE
