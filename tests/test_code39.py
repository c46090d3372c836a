import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from services import code39


def test_every_character_has_nine_elements_three_wide():
    for char, pattern in code39.PATTERNS.items():
        assert len(pattern) == 9, char
        assert pattern.count("1") == 3, char


def test_payload_is_guarded_and_sanitized():
    assert code39.payload("ab-12") == "*AB-12*"
    assert code39.payload("12#3*4") == "*1234*"
    assert code39.payload(None) == "**"


def test_encode_alternates_bars_and_spaces_with_gaps():
    elements = code39.encode("1")
    # three characters of nine elements plus two inter-character gaps
    assert len(elements) == 3 * 9 + 2
    assert elements[0].is_bar
    assert not elements[9].is_bar and elements[9].units == code39.GAP_UNITS
    assert sum(1 for e in elements[:9] if e.units == code39.WIDE_UNITS) == 3


def test_total_units_matches_encoded_width():
    for text in ("1", "12345", "ABC-9"):
        encoded = sum(e.units for e in code39.encode(text))
        assert code39.total_units(text) == encoded + 2 * code39.QUIET_ZONE_UNITS
        assert code39.total_units(text, quiet_units=0) == encoded


def test_module_width_floors_and_never_drops_below_one():
    units = code39.total_units("12345")
    assert code39.module_width(units * 2.9, units) == 2
    assert code39.module_width(units * 0.5, units) == 1
    assert code39.module_width(100, 0) == 1


def test_fit_rects_stays_inside_available_width():
    available = 400.0
    module, rects = code39.fit_rects("12345", available)
    last_x, last_width = rects[-1]
    assert last_x + last_width + code39.QUIET_ZONE_UNITS * module <= available


def test_render_svg_contains_bars_and_label():
    svg = code39.render_svg("12345", module=2, height=40)
    assert svg.startswith("<svg")
    assert svg.count('fill="#000"') == len(code39.bar_rects("12345", 2))
    assert "*12345*" in svg


class _Canvas:
    def __init__(self):
        self.rects = []

    def saveState(self):
        pass

    def restoreState(self):
        pass

    def setFillColorRGB(self, *rgb):
        pass

    def rect(self, x, y, width, height, stroke=1, fill=0):
        self.rects.append((x, y, width, height))


def test_draw_on_canvas_draws_one_rect_per_bar():
    canvas = _Canvas()
    width = code39.draw_on_canvas(canvas, "42", 10, 20, module=1.5, height=30)
    assert len(canvas.rects) == len(code39.bar_rects("42", 1.5))
    assert width == code39.total_units("42") * 1.5
    assert all(rect[1] == 20 and rect[3] == 30 for rect in canvas.rects)
