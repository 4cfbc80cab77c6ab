"""The injected color legend panel and the anchor it lives under."""
from __future__ import annotations

import html
import logging
from typing import Callable, Optional

from color_legend.config import (
    ANCHOR_TAG,
    ANCHOR_TEXT,
    IGNORE_ATTR,
    MAX_LABEL_LENGTH,
    PANEL_ID,
    RESET_PROMPT,
    EngineConfig,
)
from color_legend.host_tree import HostDocument, HostEvent, HostNode
from color_legend.mapping_store import MappingStore
from color_legend.palette import CALENDAR_COLORS

AfterFn = Callable[[int, Callable[[], None]], object]
ConfirmFn = Callable[[str], bool]

ICON_COLLAPSED = "▶"
ICON_EXPANDED = "▼"
SAVED_TEXT = "✓ Saved"
RESET_GLYPH = "↺"

_LOGGER = logging.getLogger("ColorLegend.Panel")


def locate_anchor(document: HostDocument) -> Optional[HostNode]:
    """Return the parent of the heading whose text is exactly the anchor label."""
    for heading in document.get_elements_by_tag(ANCHOR_TAG):
        if heading.text_content().strip() == ANCHOR_TEXT and heading.parent is not None:
            return heading.parent
    return None


class OverlayPanel:
    """Builds, injects and wires the single legend panel node."""

    def __init__(
        self,
        document: HostDocument,
        store: MappingStore,
        *,
        confirm: ConfirmFn,
        after: AfterFn,
        call_soon: Callable[[Callable[[], None]], object],
        config: Optional[EngineConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._document = document
        self._store = store
        self._confirm = confirm
        self._after = after
        self._call_soon = call_soon
        self._config = config or EngineConfig()
        self._logger = logger or _LOGGER
        self.node: Optional[HostNode] = None
        self.injections = 0

    # Presence ------------------------------------------------------------

    def is_present(self) -> bool:
        return self._document.get_element_by_id(PANEL_ID) is not None

    def contains(self, node: HostNode) -> bool:
        return node.closest(f"#{PANEL_ID}") is not None

    # Rendering -----------------------------------------------------------

    def render_markup(self) -> str:
        mapping = self._store.mapping
        collapsed = self._store.collapsed
        last_index = len(CALENDAR_COLORS) - 1
        rows = []
        for index, color in enumerate(CALENDAR_COLORS):
            saved = mapping.get(color.identifier, "")
            row_class = "ccl-color-row ccl-last-row" if index == last_index else "ccl-color-row"
            rows.append(
                f'<div class="{row_class}" data-color-id="{color.identifier}">'
                f'<span class="ccl-color-dot" style="background-color: {color.hex};" '
                f'title="{html.escape(color.name)}" {IGNORE_ATTR}=""></span>'
                f'<input type="text" class="ccl-color-input" placeholder="{html.escape(color.name)}" '
                f'value="{html.escape(saved)}" data-color-id="{color.identifier}" maxlength="{MAX_LABEL_LENGTH}">'
                f"</div>"
            )
        panel_class = "ccl-panel ccl-collapsed" if collapsed else "ccl-panel"
        return (
            f'<div id="{PANEL_ID}" class="{panel_class}">'
            f'<div class="ccl-header">'
            f'<span class="ccl-toggle-icon">{ICON_COLLAPSED if collapsed else ICON_EXPANDED}</span>'
            f'<span class="ccl-title">Color Legend</span>'
            f'<button class="ccl-restore-btn" title="Restore defaults">{RESET_GLYPH}</button>'
            f"</div>"
            f'<div class="ccl-content">{"".join(rows)}</div>'
            f"</div>"
        )

    def build(self) -> HostNode:
        return self._document.create_from_markup(self.render_markup())

    def inject(self) -> Optional[HostNode]:
        existing = self._document.get_element_by_id(PANEL_ID)
        if existing is not None:
            existing.remove()
        anchor = locate_anchor(self._document)
        if anchor is None:
            self._logger.debug("Panel anchor not found; injection skipped")
            self.node = None
            return None
        panel = self.build()
        anchor.append_child(panel)
        self.node = panel
        self._attach_event_listeners(panel)
        self.injections += 1
        self._logger.debug("Panel injected (count=%d)", self.injections)
        return panel

    # Interaction ---------------------------------------------------------

    def _attach_event_listeners(self, panel: HostNode) -> None:
        header = panel.query(".ccl-header")
        if header is not None:
            header.add_event_listener("click", lambda _event: self.toggle())
        restore = panel.query(".ccl-restore-btn")
        if restore is not None:
            restore.add_event_listener("click", self._on_restore_click)
        for field in panel.query_all(".ccl-color-input"):
            field.add_event_listener("blur", self._on_field_blur)
            field.add_event_listener("keydown", self._on_field_keydown)
            field.add_event_listener("click", lambda event: event.stop_propagation())

    def _on_restore_click(self, event: HostEvent) -> None:
        event.stop_propagation()
        self.restore_defaults()

    def _on_field_blur(self, event: HostEvent) -> None:
        if event.target is not None:
            self.commit_field(event.target)

    def _on_field_keydown(self, event: HostEvent) -> None:
        if event.key == "Enter" and event.target is not None:
            event.target.blur()

    def toggle(self) -> bool:
        collapsed = self._store.toggle_collapsed()
        panel = self.node
        if panel is not None:
            panel.toggle_class("ccl-collapsed", collapsed)
            icon = panel.query(".ccl-toggle-icon")
            if icon is not None:
                icon.set_text_content(ICON_COLLAPSED if collapsed else ICON_EXPANDED)
        return collapsed

    def restore_defaults(self) -> bool:
        if not self._confirm(RESET_PROMPT):
            return False
        self._store.clear()
        if self.node is not None:
            for field in self.node.query_all(".ccl-color-input"):
                field.value = ""
        self._logger.info("Custom color names cleared")
        return True

    def commit_field(self, field: HostNode) -> None:
        identifier = field.get_attribute("data-color-id")
        if not identifier:
            return
        self._store.set(identifier, field.value.strip())
        self.show_saved_indicator(field)

    def show_saved_indicator(self, field: HostNode) -> Optional[HostNode]:
        row = field.closest(".ccl-color-row")
        if row is None:
            return None
        previous = row.query(".ccl-saved-indicator")
        if previous is not None:
            previous.remove()
        indicator = self._document.create_element("span", {"class": "ccl-saved-indicator"}, text=SAVED_TEXT)
        row.append_child(indicator)
        self._call_soon(lambda: indicator.add_class("ccl-show"))

        def _fade() -> None:
            indicator.remove_class("ccl-show")
            self._after(self._config.indicator_fade_ms, indicator.remove)

        self._after(self._config.indicator_display_ms, _fade)
        return indicator
