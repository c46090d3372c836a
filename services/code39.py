"""Code 39 symbol construction for the printable label sheet.

Each character is nine elements, bar and space alternating and starting
with a bar. Three of the nine are wide (3 modules), six are narrow
(1 module). Characters are separated by a one-module gap and the symbol is
framed by ``*`` guards and a quiet zone of at least ten modules per side.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from html import escape
from typing import Any, Dict, List, Optional, Tuple

WIDE_UNITS = 3
NARROW_UNITS = 1
GAP_UNITS = 1
QUIET_ZONE_UNITS = 10
GUARD = "*"

# 1 = wide element, 0 = narrow; order is bar, space, bar, ... bar.
PATTERNS: Dict[str, str] = {
    "0": "000110100", "1": "100100001", "2": "001100001", "3": "101100000",
    "4": "000110001", "5": "100110000", "6": "001110000", "7": "000100101",
    "8": "100100100", "9": "001100100", "A": "100001001", "B": "001001001",
    "C": "101001000", "D": "000011001", "E": "100011000", "F": "001011000",
    "G": "000001101", "H": "100001100", "I": "001001100", "J": "000011100",
    "K": "100000011", "L": "001000011", "M": "101000010", "N": "000010011",
    "O": "100010010", "P": "001010010", "Q": "000000111", "R": "100000110",
    "S": "001000110", "T": "000010110", "U": "110000001", "V": "011000001",
    "W": "111000000", "X": "010010001", "Y": "110010000", "Z": "011010000",
    "-": "010000101", ".": "110000100", " ": "011000100", "$": "010101000",
    "/": "010100010", "+": "010001010", "%": "000101010", "*": "010010100",
}

CHARACTER_UNITS = 6 * NARROW_UNITS + 3 * WIDE_UNITS


@dataclass(frozen=True)
class Element:
    is_bar: bool
    units: int


def sanitize(text: Any) -> str:
    """Upper-case ``text`` and silently drop characters Code 39 cannot encode."""

    value = str(text or "").upper()
    return "".join(ch for ch in value if ch in PATTERNS and ch != GUARD)


def payload(text: Any) -> str:
    """Return the guarded payload, e.g. ``*12345*``."""

    return f"{GUARD}{sanitize(text)}{GUARD}"


def encode(text: Any) -> List[Element]:
    """Return the bar/space elements of the guarded symbol, without quiet zones."""

    elements: List[Element] = []
    symbol = payload(text)
    for index, char in enumerate(symbol):
        if index:
            elements.append(Element(is_bar=False, units=GAP_UNITS))
        for position, flag in enumerate(PATTERNS[char]):
            elements.append(
                Element(
                    is_bar=position % 2 == 0,
                    units=WIDE_UNITS if flag == "1" else NARROW_UNITS,
                )
            )
    return elements


def total_units(text: Any, quiet_units: int = QUIET_ZONE_UNITS) -> int:
    """Width of the full symbol in modules, quiet zones included."""

    chars = len(payload(text))
    return 2 * quiet_units + chars * CHARACTER_UNITS + (chars - 1) * GAP_UNITS


def module_width(available_width: float, units: int) -> int:
    """Whole-pixel module width that fits ``units`` modules into ``available_width``."""

    if units <= 0:
        return 1
    return max(1, int(math.floor(available_width / units)))


def bar_rects(
    text: Any, module: float, quiet_units: int = QUIET_ZONE_UNITS
) -> List[Tuple[float, float]]:
    """Return ``(x, width)`` for each bar; spaces only advance ``x``."""

    rects: List[Tuple[float, float]] = []
    x = quiet_units * module
    for element in encode(text):
        width = element.units * module
        if element.is_bar:
            rects.append((x, width))
        x += width
    return rects


def fit_rects(text: Any, available_width: float) -> Tuple[int, List[Tuple[float, float]]]:
    """Module width and bars for a symbol filling ``available_width``."""

    module = module_width(available_width, total_units(text))
    return module, bar_rects(text, module)


def render_svg(
    text: Any,
    *,
    module: float,
    height: float,
    show_text: bool = True,
    font_size: float = 12.0,
    max_width: Optional[float] = None,
) -> str:
    """Render the symbol as an inline SVG element.

    When the symbol is wider than ``max_width`` the element is drawn at
    ``max_width`` and the bars are compressed horizontally, never clipped.
    """

    width = total_units(text) * module
    display_width = min(width, max_width) if max_width else width
    text_band = font_size + 4 if show_text else 0
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" class="barcode" '
        f'width="{display_width:.2f}" height="{height + text_band:.2f}" '
        f'viewBox="0 0 {width:.2f} {height + text_band:.2f}" preserveAspectRatio="none" role="img" '
        f'aria-label="{escape(payload(text))}">',
        f'<rect x="0" y="0" width="{width:.2f}" height="{height + text_band:.2f}" fill="#fff"/>',
    ]
    for x, bar_width in bar_rects(text, module):
        parts.append(
            f'<rect x="{x:.2f}" y="0" width="{bar_width:.2f}" height="{height:.2f}" fill="#000"/>'
        )
    if show_text:
        parts.append(
            f'<text x="{width / 2:.2f}" y="{height + font_size:.2f}" font-family="monospace" '
            f'font-size="{font_size:.1f}" text-anchor="middle">{escape(payload(text))}</text>'
        )
    parts.append("</svg>")
    return "".join(parts)


def draw_on_canvas(canvas: Any, text: Any, x: float, y: float, *, module: float, height: float) -> float:
    """Draw the symbol on a reportlab canvas with its lower-left corner at ``(x, y)``.

    Returns the drawn width in points.
    """

    canvas.saveState()
    canvas.setFillColorRGB(0, 0, 0)
    for offset, bar_width in bar_rects(text, module):
        canvas.rect(x + offset, y, bar_width, height, stroke=0, fill=1)
    canvas.restoreState()
    return total_units(text) * module


__all__ = [
    "Element",
    "PATTERNS",
    "QUIET_ZONE_UNITS",
    "bar_rects",
    "draw_on_canvas",
    "encode",
    "fit_rects",
    "module_width",
    "payload",
    "render_svg",
    "sanitize",
    "total_units",
]
