from color_legend.host_tree import HostNode
from color_legend.mapping_store import MappingStore
from color_legend.palette import identifier_for_label
from color_legend.rewriter import AttributeRewriter


def _rewriter(scheduler, storage, **labels):
    store = MappingStore(storage, spawn=scheduler.spawn)
    for identifier, label in labels.items():
        store.set(identifier, label)
    return AttributeRewriter(store), store


def test_default_label_lookup_normalizes():
    assert identifier_for_label("  TOMATO ") == "color_1"
    assert identifier_for_label("Graphite") == "color_11"
    assert identifier_for_label("Work") is None
    assert identifier_for_label("") is None


def test_selective_rewrite(scheduler, storage):
    rewriter, _store = _rewriter(scheduler, storage, color_1="Work")
    tomato = HostNode("div", {"aria-label": "  tOmAtO "})
    flamingo = HostNode("div", {"title": "Flamingo"})
    already = HostNode("div", {"data-text": "Work"})

    assert rewriter.rewrite(tomato) == 1
    assert rewriter.rewrite(flamingo) == 0
    assert rewriter.rewrite(already) == 0

    assert tomato.get_attribute("aria-label") == "Work"
    assert flamingo.get_attribute("title") == "Flamingo"
    assert already.get_attribute("data-text") == "Work"


def test_rewrite_is_idempotent(scheduler, storage):
    rewriter, _store = _rewriter(scheduler, storage, color_1="Work", color_2="Pink things")
    node = HostNode("div", {"data-text": "Tomato", "title": "Flamingo", "data-tooltip": "Basil"})

    rewriter.rewrite(node)
    once = node.attributes
    assert rewriter.rewrite(node) == 0
    assert node.attributes == once
    assert once["data-tooltip"] == "Basil"


def test_ignore_marker_and_unwatched_attributes(scheduler, storage):
    rewriter, _store = _rewriter(scheduler, storage, color_1="Work")
    ignored = HostNode("span", {"title": "Tomato", "data-ccl-ignore": ""})
    other_attr = HostNode("span", {"alt": "Tomato", "data-text": ""})

    assert rewriter.rewrite(ignored) == 0
    assert rewriter.rewrite(other_attr) == 0
    assert ignored.get_attribute("title") == "Tomato"
    assert other_attr.get_attribute("alt") == "Tomato"


def test_custom_label_spelling_another_default_is_not_chained(scheduler, storage):
    rewriter, _store = _rewriter(scheduler, storage, color_1="Flamingo", color_2="Tomato")
    node = HostNode("div", {"title": "Tomato"})

    rewriter.rewrite(node)
    assert node.get_attribute("title") == "Flamingo"
    assert rewriter.rewrite(node) == 0
    assert node.get_attribute("title") == "Flamingo"

    node.set_attribute("title", "Tomato")
    assert rewriter.rewrite(node) == 1
    assert node.get_attribute("title") == "Flamingo"


def test_mapping_changes_apply_on_next_rewrite(scheduler, storage):
    rewriter, store = _rewriter(scheduler, storage)
    node = HostNode("div", {"title": "Sage"})
    assert rewriter.rewrite(node) == 0
    store.set("color_5", "Health")
    assert rewriter.rewrite(node) == 1
    assert node.get_attribute("title") == "Health"


def test_rewrite_subtree_skips_excluded_descendants(scheduler, storage):
    rewriter, _store = _rewriter(scheduler, storage, color_1="Work")
    root = HostNode("div", {"title": "Tomato"})
    kept = root.append_child(HostNode("div", {"data-text": "Tomato"}))
    plain = root.append_child(HostNode("div"))
    excluded = plain.append_child(HostNode("span", {"aria-label": "Tomato", "class": "skip"}))

    changed = rewriter.rewrite_subtree(root, skip=lambda node: node.has_class("skip"))

    assert changed == 2
    assert root.get_attribute("title") == "Work"
    assert kept.get_attribute("data-text") == "Work"
    assert excluded.get_attribute("aria-label") == "Tomato"


def test_forget_lets_a_host_write_be_rewritten_again(scheduler, storage):
    rewriter, _store = _rewriter(scheduler, storage, color_1="Flamingo", color_2="Pink")
    node = HostNode("div", {"title": "Tomato"})
    rewriter.rewrite(node)

    node.set_attribute("title", "Flamingo")
    rewriter.forget(node, "title")
    assert rewriter.rewrite(node) == 1
    assert node.get_attribute("title") == "Pink"
    rewriter.forget(HostNode("div"), "title")
