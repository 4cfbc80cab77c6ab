"""Static color table of the host calendar and default-label lookup."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class ColorSpec:
    identifier: str
    name: str
    hex: str


CALENDAR_COLORS: Tuple[ColorSpec, ...] = (
    ColorSpec("color_1", "Tomato", "#D50000"),
    ColorSpec("color_2", "Flamingo", "#E67C73"),
    ColorSpec("color_3", "Tangerine", "#F4511E"),
    ColorSpec("color_4", "Banana", "#F6BF26"),
    ColorSpec("color_5", "Sage", "#33B679"),
    ColorSpec("color_6", "Basil", "#0B8043"),
    ColorSpec("color_7", "Peacock", "#039BE5"),
    ColorSpec("color_8", "Blueberry", "#3F51B5"),
    ColorSpec("color_9", "Grape", "#7986CB"),
    ColorSpec("color_10", "Lavender", "#8E24AA"),
    ColorSpec("color_11", "Graphite", "#616161"),
)


def normalize_label(value: str) -> str:
    return value.strip().casefold()


DEFAULT_NAME_TO_ID: Dict[str, str] = {normalize_label(color.name): color.identifier for color in CALENDAR_COLORS}


def identifier_for_label(value: Optional[str]) -> Optional[str]:
    """Return the color identifier whose default label matches ``value``.

    Matching ignores surrounding whitespace and case. Anything that is not a
    default label (including custom labels) yields ``None``.
    """

    if not value:
        return None
    return DEFAULT_NAME_TO_ID.get(normalize_label(value))
