import asyncio
import os
import sys
from types import SimpleNamespace

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.inventory_rows import ResultRow
from services import code39
from services.label_layout import LabelLayoutEngine, LayoutState, RelayoutScheduler, clamp_columns
from services.label_sheet import render_labels_html, render_labels_pdf

ROWS = [
    ResultRow(article="12345", description="Widget", mpl=10, soh=4),
    ResultRow(article="9", description="Bolt 7mm", mpl=3, soh=0),
]

SETTINGS = SimpleNamespace(
    label_baseline_size=60.0,
    label_min_size=28.0,
    label_max_size=90.0,
    label_cell_padding=16.0,
)


def _engine(columns, width=1000.0, **kwargs):
    return LabelLayoutEngine(ROWS[:1], columns=columns, container_width=width, **kwargs)


def test_fewer_columns_never_shrink_the_symbol():
    sizes = []
    for columns in (6, 5, 4, 3, 2, 1):
        sizes.append(_engine(columns, max_size=10_000).layout()[0].size)
    assert sizes == sorted(sizes)
    assert sizes[0] < sizes[-1]


def test_size_plateaus_at_max():
    narrow = _engine(2, width=5000).layout()[0]
    wide = _engine(1, width=5000).layout()[0]
    assert narrow.size == wide.size == 90.0


def test_size_never_drops_below_min():
    entry = _engine(6, width=60).layout()[0]
    assert entry.size == 28.0


def test_unclamped_symbol_fills_the_cell_with_whole_modules():
    engine = _engine(4, width=1000, min_size=1, max_size=10_000)
    entry = engine.layout()[0]
    assert entry.state is LayoutState.COMMIT
    assert entry.module == code39.module_width(engine.available_width, entry.units)
    assert engine.available_width - entry.units < entry.rendered_width <= engine.available_width


def test_module_width_is_whole_and_at_least_one():
    for columns in range(1, 7):
        for entry in _engine(columns, width=700).layout():
            assert entry.module >= 1
            assert entry.module == int(entry.module)


def test_long_article_is_never_wider_than_its_cell():
    engine = LabelLayoutEngine(
        [ResultRow(article="1234567890123", description="Long", mpl=1, soh=0)],
        columns=6,
        container_width=1000,
    )
    entry = engine.layout()[0]
    assert entry.size == 28.0
    assert entry.rendered_width <= engine.available_width
    assert entry.draw_module < 1

    svg = code39.render_svg(entry.row.article, module=entry.module, height=entry.size, max_width=entry.max_width)
    assert f'width="{engine.available_width:.2f}"' in svg


def test_layout_is_idempotent_without_input_change():
    engine = _engine(3)
    first = [(e.size, e.module) for e in engine.layout()]
    second = [(e.size, e.module) for e in engine.layout()]
    assert first == second


def test_column_change_sends_labels_back_to_measure():
    engine = _engine(3)
    engine.layout()
    engine.set_columns(2)
    assert all(entry.state is LayoutState.MEASURE for entry in engine.entries)
    assert engine.layout()[0].fitted_for == (2, 1000.0)


@pytest.mark.parametrize("value, expected", [(0, 1), (3, 3), (9, 6), ("4", 4), ("x", 1), (None, 1)])
def test_clamp_columns(value, expected):
    assert clamp_columns(value) == expected


def test_min_above_max_is_rejected():
    with pytest.raises(ValueError):
        LabelLayoutEngine(ROWS, min_size=100, max_size=50)


def test_scheduler_coalesces_triggers_in_one_turn():
    async def scenario():
        engine = _engine(3)
        scheduler = RelayoutScheduler(engine)
        engine.set_columns(2)
        engine.resize(800)
        engine.set_columns(4)
        assert scheduler.runs == 0
        await asyncio.sleep(0)
        return engine, scheduler

    engine, scheduler = asyncio.run(scenario())
    assert scheduler.runs == 1
    assert scheduler.reasons == []
    assert engine.entries[0].fitted_for == (4, 800.0)


def test_scheduler_refits_immediately_without_event_loop():
    engine = _engine(3)
    scheduler = RelayoutScheduler(engine)
    engine.set_columns(2)
    assert scheduler.runs == 1
    assert scheduler.reasons == []
    assert engine.entries[0].state is LayoutState.COMMIT
    assert engine.entries[0].fitted_for == (2, 1000.0)


def test_before_print_refits_synchronously():
    engine = _engine(3)
    scheduler_calls = []
    engine.on_invalidate = scheduler_calls.append
    entries = engine.before_print(print_width=700)
    assert scheduler_calls == []
    assert entries[0].state is LayoutState.COMMIT
    assert entries[0].fitted_for == (3, 700.0)


def test_render_labels_html_lists_every_row():
    html = render_labels_html(ROWS, columns=2, page_width=800, settings=SETTINGS)
    assert "repeat(2, 1fr)" in html
    assert html.count('class="label"') == 2
    assert "*12345*" in html
    assert "window.print()" in html


def test_render_labels_html_without_rows():
    html = render_labels_html([], columns=3, page_width=800, settings=SETTINGS)
    assert "No rows yet" in html


def test_render_labels_pdf_returns_pdf_bytes():
    pdf = render_labels_pdf(ROWS * 40, columns=3, settings=SETTINGS)
    assert pdf.startswith(b"%PDF")
