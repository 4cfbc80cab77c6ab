"""In-process model of the externally-owned document tree.

The engine never owns these nodes: the host application builds and tears them
down, and the engine only reads them, observes them and writes a handful of
attributes. Node identity is object identity, so sets of nodes deduplicate by
reference and never by structure.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

from lxml import etree
from lxml import html as lxml_html

ATTRIBUTES = "attributes"
CHILD_LIST = "childList"

ObserverCallback = Callable[[List["MutationRecord"], "TreeObserver"], None]
Listener = Callable[["HostEvent"], None]


@dataclass(frozen=True)
class MutationRecord:
    type: str
    target: "HostNode"
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None
    added_nodes: Tuple["HostNode", ...] = ()
    removed_nodes: Tuple["HostNode", ...] = ()


class HostEvent:
    """A UI event dispatched through the tree."""

    def __init__(self, type: str, *, key: Optional[str] = None, bubbles: bool = True) -> None:
        self.type = type
        self.key = key
        self.bubbles = bubbles
        self.target: Optional[HostNode] = None
        self.current_target: Optional[HostNode] = None
        self.propagation_stopped = False

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


# Selectors -------------------------------------------------------------------

_COMPOUND_RE = re.compile(r"^(?P<tag>\*|[A-Za-z][\w-]*)?(?P<parts>(?:#[\w-]+|\.[\w-]+|\[[\w-]+\])*)$")
_PART_RE = re.compile(r"#([\w-]+)|\.([\w-]+)|\[([\w-]+)\]")


@dataclass(frozen=True)
class _Compound:
    tag: Optional[str]
    ids: Tuple[str, ...]
    classes: Tuple[str, ...]
    attributes: Tuple[str, ...]

    def matches(self, node: "HostNode") -> bool:
        if self.tag is not None and node.tag != self.tag:
            return False
        if any(node.get_attribute("id") != ident for ident in self.ids):
            return False
        if any(not node.has_class(name) for name in self.classes):
            return False
        return all(node.has_attribute(name) for name in self.attributes)


@lru_cache(maxsize=128)
def _compile_selector(selector: str) -> Tuple[_Compound, ...]:
    compounds: List[_Compound] = []
    for raw in selector.split(","):
        token = raw.strip()
        match = _COMPOUND_RE.match(token)
        if not token or match is None or (match.group("tag") is None and not match.group("parts")):
            raise ValueError(f"Unsupported selector: {selector!r}")
        tag = match.group("tag")
        ids: List[str] = []
        classes: List[str] = []
        attributes: List[str] = []
        for ident, cls, attr in _PART_RE.findall(match.group("parts")):
            if ident:
                ids.append(ident)
            elif cls:
                classes.append(cls)
            else:
                attributes.append(attr.lower())
        compounds.append(
            _Compound(
                tag=None if tag in (None, "*") else tag.lower(),
                ids=tuple(ids),
                classes=tuple(classes),
                attributes=tuple(attributes),
            )
        )
    return tuple(compounds)


# Observation -----------------------------------------------------------------


@dataclass
class _Registration:
    observer: "TreeObserver"
    child_list: bool
    attributes: bool
    subtree: bool
    attribute_filter: Optional[FrozenSet[str]]

    def accepts(self, record: MutationRecord) -> bool:
        if record.type == CHILD_LIST:
            return self.child_list
        if not self.attributes:
            return False
        return self.attribute_filter is None or record.attribute_name in self.attribute_filter


class TreeObserver:
    """Collects mutation records and delivers them in batches on the next tick."""

    def __init__(self, callback: ObserverCallback, *, call_soon: Callable[[Callable[[], None]], object]) -> None:
        self._callback = callback
        self._call_soon = call_soon
        self._records: List[MutationRecord] = []
        self._targets: List[HostNode] = []
        self._delivery_scheduled = False

    def observe(
        self,
        target: "HostNode",
        *,
        child_list: bool = False,
        attributes: bool = False,
        subtree: bool = False,
        attribute_filter: Optional[Iterable[str]] = None,
    ) -> None:
        if attribute_filter is not None:
            attributes = True
        if not child_list and not attributes:
            raise ValueError("observe() needs child_list or attributes")
        registration = _Registration(
            observer=self,
            child_list=child_list,
            attributes=attributes,
            subtree=subtree,
            attribute_filter=frozenset(name.lower() for name in attribute_filter) if attribute_filter is not None else None,
        )
        target._registrations = [reg for reg in target._registrations if reg.observer is not self]
        target._registrations.append(registration)
        if not any(existing is target for existing in self._targets):
            self._targets.append(target)

    def disconnect(self) -> None:
        for target in self._targets:
            target._registrations = [reg for reg in target._registrations if reg.observer is not self]
        self._targets = []
        self._records = []

    def take_records(self) -> List[MutationRecord]:
        records = self._records
        self._records = []
        return records

    def _enqueue(self, record: MutationRecord) -> None:
        self._records.append(record)
        if not self._delivery_scheduled:
            self._delivery_scheduled = True
            self._call_soon(self._deliver)

    def _deliver(self) -> None:
        self._delivery_scheduled = False
        records = self.take_records()
        if records:
            self._callback(records, self)


# Nodes -----------------------------------------------------------------------


class HostNode:
    """An element in the host document."""

    def __init__(
        self,
        tag: str,
        attributes: Optional[Mapping[str, str]] = None,
        text: str = "",
        tail: str = "",
    ) -> None:
        self.tag = tag.lower()
        self._attributes: Dict[str, str] = {str(k).lower(): str(v) for k, v in (attributes or {}).items()}
        self.text = text
        self.tail = tail
        self.parent: Optional[HostNode] = None
        self._children: List[HostNode] = []
        self._registrations: List[_Registration] = []
        self._listeners: Dict[str, List[Listener]] = {}
        self._value = self._attributes.get("value", "")
        self._document_root = False

    def __repr__(self) -> str:
        ident = self._attributes.get("id")
        suffix = f"#{ident}" if ident else ""
        return f"<HostNode {self.tag}{suffix} at 0x{id(self):x}>"

    # Attributes ----------------------------------------------------------

    @property
    def attributes(self) -> Dict[str, str]:
        return dict(self._attributes)

    @property
    def id(self) -> Optional[str]:
        return self._attributes.get("id")

    def get_attribute(self, name: str) -> Optional[str]:
        return self._attributes.get(name.lower())

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self._attributes

    def set_attribute(self, name: str, value: str) -> None:
        key = name.lower()
        old_value = self._attributes.get(key)
        self._attributes[key] = str(value)
        self._notify(MutationRecord(ATTRIBUTES, self, attribute_name=key, old_value=old_value))

    def remove_attribute(self, name: str) -> None:
        key = name.lower()
        if key not in self._attributes:
            return
        old_value = self._attributes.pop(key)
        self._notify(MutationRecord(ATTRIBUTES, self, attribute_name=key, old_value=old_value))

    def class_names(self) -> List[str]:
        return (self._attributes.get("class") or "").split()

    def has_class(self, name: str) -> bool:
        return name in self.class_names()

    def add_class(self, name: str) -> None:
        names = self.class_names()
        if name not in names:
            names.append(name)
            self.set_attribute("class", " ".join(names))

    def remove_class(self, name: str) -> None:
        names = self.class_names()
        if name in names:
            self.set_attribute("class", " ".join(n for n in names if n != name))

    def toggle_class(self, name: str, force: Optional[bool] = None) -> bool:
        wanted = (not self.has_class(name)) if force is None else force
        if wanted:
            self.add_class(name)
        else:
            self.remove_class(name)
        return wanted

    # Text and form values ------------------------------------------------

    def text_content(self) -> str:
        parts = [self.text]
        for child in self._children:
            parts.append(child.text_content())
            parts.append(child.tail)
        return "".join(parts)

    def set_text_content(self, value: str) -> None:
        removed = tuple(self._children)
        for child in removed:
            child.parent = None
        self._children = []
        self.text = value
        self._notify(MutationRecord(CHILD_LIST, self, removed_nodes=removed))

    @property
    def value(self) -> str:
        return self._value

    @value.setter
    def value(self, new_value: Optional[str]) -> None:
        self._value = "" if new_value is None else str(new_value)

    def enter_text(self, text: str) -> None:
        """Replace the field value as typed input, honoring ``maxlength``."""
        limit = self.get_attribute("maxlength")
        try:
            max_length = int(limit) if limit is not None else None
        except ValueError:
            max_length = None
        if max_length is not None and max_length >= 0:
            text = text[:max_length]
        self._value = text

    # Structure -----------------------------------------------------------

    @property
    def children(self) -> Tuple[HostNode, ...]:
        return tuple(self._children)

    def append_child(self, child: HostNode) -> HostNode:
        if child.contains(self):
            raise ValueError("Cannot append a node inside its own subtree")
        if child.parent is not None:
            child.parent.remove_child(child)
        child.parent = self
        self._children.append(child)
        self._notify(MutationRecord(CHILD_LIST, self, added_nodes=(child,)))
        return child

    def remove_child(self, child: HostNode) -> HostNode:
        for index, existing in enumerate(self._children):
            if existing is child:
                del self._children[index]
                break
        else:
            raise ValueError("Node is not a child of this node")
        child.parent = None
        self._notify(MutationRecord(CHILD_LIST, self, removed_nodes=(child,)))
        return child

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)

    def _adopt(self, child: HostNode) -> None:
        child.parent = self
        self._children.append(child)

    def iter_descendants(self) -> Iterator[HostNode]:
        stack = list(reversed(self._children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node._children))

    def iter_tree(self) -> Iterator[HostNode]:
        yield self
        yield from self.iter_descendants()

    def contains(self, other: Optional[HostNode]) -> bool:
        node = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def is_connected(self) -> bool:
        node: Optional[HostNode] = self
        while node is not None:
            if node._document_root:
                return True
            node = node.parent
        return False

    def matches(self, selector: str) -> bool:
        return any(compound.matches(self) for compound in _compile_selector(selector))

    def closest(self, selector: str) -> Optional[HostNode]:
        compounds = _compile_selector(selector)
        node: Optional[HostNode] = self
        while node is not None:
            if any(compound.matches(node) for compound in compounds):
                return node
            node = node.parent
        return None

    def query_all(self, selector: str) -> List[HostNode]:
        compounds = _compile_selector(selector)
        return [node for node in self.iter_descendants() if any(c.matches(node) for c in compounds)]

    def query(self, selector: str) -> Optional[HostNode]:
        compounds = _compile_selector(selector)
        for node in self.iter_descendants():
            if any(c.matches(node) for c in compounds):
                return node
        return None

    # Events --------------------------------------------------------------

    def add_event_listener(self, event_type: str, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def dispatch_event(self, event: HostEvent) -> HostEvent:
        event.target = self
        node: Optional[HostNode] = self
        while node is not None:
            event.current_target = node
            for listener in list(node._listeners.get(event.type, ())):
                listener(event)
            if event.propagation_stopped or not event.bubbles:
                break
            node = node.parent
        event.current_target = None
        return event

    def click(self) -> HostEvent:
        return self.dispatch_event(HostEvent("click"))

    def blur(self) -> HostEvent:
        return self.dispatch_event(HostEvent("blur", bubbles=False))

    def key_down(self, key: str) -> HostEvent:
        return self.dispatch_event(HostEvent("keydown", key=key))

    # Notification --------------------------------------------------------

    def _notify(self, record: MutationRecord) -> None:
        delivered: List[TreeObserver] = []
        node: Optional[HostNode] = self
        while node is not None:
            for registration in node._registrations:
                observer = registration.observer
                if any(seen is observer for seen in delivered):
                    continue
                if node is not self and not registration.subtree:
                    continue
                if not registration.accepts(record):
                    continue
                delivered.append(observer)
                observer._enqueue(record)
            node = node.parent


# Markup ----------------------------------------------------------------------


def _from_lxml(element) -> HostNode:
    attributes = {str(key): "" if value is None else str(value) for key, value in element.attrib.items()}
    node = HostNode(str(element.tag), attributes, text=element.text or "", tail=element.tail or "")
    for child in element:
        if not isinstance(child.tag, str):
            # comments and processing instructions only contribute their tail text
            if child.tail:
                if node._children:
                    node._children[-1].tail += child.tail
                else:
                    node.text += child.tail
            continue
        node._adopt(_from_lxml(child))
    return node


def parse_fragment(markup: str) -> HostNode:
    """Parse markup holding exactly one element into a detached node."""
    try:
        element = lxml_html.fragment_fromstring(markup.strip())
    except (etree.ParserError, etree.XMLSyntaxError) as exc:
        raise ValueError(f"Invalid markup: {exc}") from exc
    node = _from_lxml(element)
    node.tail = ""
    return node


def parse_fragments(markup: str) -> Tuple[str, List[HostNode]]:
    """Parse markup holding any number of elements; returns leading text and nodes."""
    if not markup.strip():
        return "", []
    try:
        fragments = lxml_html.fragments_fromstring(markup)
    except (etree.ParserError, etree.XMLSyntaxError) as exc:
        raise ValueError(f"Invalid markup: {exc}") from exc
    leading = ""
    nodes: List[HostNode] = []
    for fragment in fragments:
        if isinstance(fragment, str):
            leading += fragment
        elif isinstance(fragment.tag, str):
            nodes.append(_from_lxml(fragment))
    return leading, nodes


class HostDocument:
    """The live document: a ``html`` root with a ``body`` child."""

    def __init__(self) -> None:
        self.root = HostNode("html")
        self.root._document_root = True
        self.body = HostNode("body")
        self.root._adopt(self.body)

    @classmethod
    def from_markup(cls, body_markup: str) -> HostDocument:
        document = cls()
        leading, nodes = parse_fragments(body_markup)
        document.body.text = leading
        for node in nodes:
            document.body._adopt(node)
        return document

    def contains(self, node: Optional[HostNode]) -> bool:
        return self.root.contains(node)

    def get_elements_by_tag(self, tag: str) -> List[HostNode]:
        wanted = tag.lower()
        return [node for node in self.root.iter_tree() if node.tag == wanted]

    def get_element_by_id(self, element_id: str) -> Optional[HostNode]:
        for node in self.root.iter_tree():
            if node.get_attribute("id") == element_id:
                return node
        return None

    def query_all(self, selector: str) -> List[HostNode]:
        return self.root.query_all(selector)

    def create_element(
        self,
        tag: str,
        attributes: Optional[Mapping[str, str]] = None,
        text: str = "",
    ) -> HostNode:
        return HostNode(tag, attributes, text=text)

    def create_from_markup(self, markup: str) -> HostNode:
        return parse_fragment(markup)
