"""Fixed identifiers and tunable timings for the color legend engine."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from color_legend.version import DEV_MODE_ENV_VAR

CONFIG_FILE = "color_legend.json"

STORAGE_KEY = "colorLegendData"
PANEL_STATE_KEY = "panelCollapsed"
PANEL_ID = "ccl-color-legend-panel"
IGNORE_ATTR = "data-ccl-ignore"
REPLACE_ATTRS: Tuple[str, ...] = ("data-text", "aria-label", "data-tooltip", "title")
ANCHOR_TAG = "h1"
ANCHOR_TEXT = "Drawer"
MAX_LABEL_LENGTH = 30
RESET_PROMPT = "Clear all custom color names?"

DEBOUNCE_MIN_MS = 10
WATCHDOG_MIN_MS = 100


@dataclass(frozen=True)
class EngineConfig:
    debounce_ms: int = 100
    watchdog_ms: int = 1000
    anchor_retry_ms: int = 500
    anchor_max_attempts: int = 60
    indicator_display_ms: int = 1500
    indicator_fade_ms: int = 200
    retroactive_sweep: bool = True
    debug: bool = False


def dev_mode_enabled() -> bool:
    value = os.getenv(DEV_MODE_ENV_VAR)
    if value is None:
        return False
    token = value.strip().lower()
    if token in {"1", "true", "yes", "on"}:
        return True
    return False


def _coerce_int(data: Mapping[str, Any], key: str, default: int, minimum: int, maximum: int) -> int:
    try:
        value = int(data.get(key, default))
    except (TypeError, ValueError):
        value = default
    return max(minimum, min(value, maximum))


def _coerce_bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if isinstance(value, str):
        token = value.strip().lower()
        if token in {"1", "true", "yes", "on"}:
            return True
        if token in {"0", "false", "no", "off"}:
            return False
        return default
    return bool(value)


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """Read engine timings from ``color_legend.json``.

    Missing or malformed files yield the defaults. Each value is clamped so a
    bad file can never disable debouncing or make the watchdog fire faster
    than rewrites settle.
    """

    defaults = EngineConfig()
    data: dict[str, Any] = {}
    if path is not None:
        try:
            loaded = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            loaded = {}
        if isinstance(loaded, dict):
            data = loaded

    debounce_ms = _coerce_int(data, "debounce_ms", defaults.debounce_ms, DEBOUNCE_MIN_MS, 5000)
    watchdog_ms = _coerce_int(data, "watchdog_ms", defaults.watchdog_ms, WATCHDOG_MIN_MS, 60000)
    watchdog_ms = max(watchdog_ms, debounce_ms + 1)
    return EngineConfig(
        debounce_ms=debounce_ms,
        watchdog_ms=watchdog_ms,
        anchor_retry_ms=_coerce_int(data, "anchor_retry_ms", defaults.anchor_retry_ms, 10, 60000),
        anchor_max_attempts=_coerce_int(data, "anchor_max_attempts", defaults.anchor_max_attempts, 1, 10000),
        indicator_display_ms=_coerce_int(data, "indicator_display_ms", defaults.indicator_display_ms, 0, 60000),
        indicator_fade_ms=_coerce_int(data, "indicator_fade_ms", defaults.indicator_fade_ms, 0, 10000),
        retroactive_sweep=_coerce_bool(data, "retroactive_sweep", defaults.retroactive_sweep),
        debug=dev_mode_enabled() or _coerce_bool(data, "debug", defaults.debug),
    )
