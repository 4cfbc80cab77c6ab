"""Substitutes custom labels into label-bearing attributes of host nodes."""
from __future__ import annotations

import weakref
from typing import Callable, Dict, Optional, Sequence

from color_legend.config import IGNORE_ATTR, REPLACE_ATTRS
from color_legend.host_tree import HostNode
from color_legend.mapping_store import MappingStore
from color_legend.palette import identifier_for_label


class AttributeRewriter:
    """Rewrites default color labels to the user's custom labels.

    Only values that still read as a default label are touched, so running
    twice over the same node changes nothing the second time. The rewriter
    also remembers the last value it wrote per node and attribute: a custom
    label that happens to spell another color's default label is left alone
    instead of being rewritten again, until the host itself writes that
    attribute (see ``forget``).
    """

    def __init__(
        self,
        store: MappingStore,
        *,
        attributes: Sequence[str] = REPLACE_ATTRS,
        ignore_attr: str = IGNORE_ATTR,
    ) -> None:
        self._store = store
        self._attributes = tuple(attributes)
        self._ignore_attr = ignore_attr
        self._written: "weakref.WeakKeyDictionary[HostNode, Dict[str, str]]" = weakref.WeakKeyDictionary()

    @property
    def attributes(self) -> Sequence[str]:
        return self._attributes

    def forget(self, node: HostNode, name: str) -> None:
        """Drop the remembered write for ``name`` once the host changes it again."""
        written = self._written.get(node)
        if written is not None:
            written.pop(name, None)

    def carries_label_attribute(self, node: HostNode) -> bool:
        return any(node.has_attribute(name) for name in self._attributes)

    def rewrite(self, node: HostNode) -> int:
        if node.has_attribute(self._ignore_attr):
            return 0
        changed = 0
        for name in self._attributes:
            value = node.get_attribute(name)
            if not value:
                continue
            written = self._written.get(node)
            if written is not None and written.get(name) == value:
                continue
            identifier = identifier_for_label(value)
            if identifier is None:
                continue
            label = self._store.label_for(identifier)
            if not label:
                continue
            node.set_attribute(name, label)
            self._written.setdefault(node, {})[name] = label
            changed += 1
        return changed

    def rewrite_subtree(self, node: HostNode, *, skip: Optional[Callable[[HostNode], bool]] = None) -> int:
        """Rewrite ``node`` and every descendant carrying a label attribute."""
        changed = self.rewrite(node)
        for descendant in list(node.iter_descendants()):
            if not self.carries_label_attribute(descendant):
                continue
            if skip is not None and skip(descendant):
                continue
            changed += self.rewrite(descendant)
        return changed
