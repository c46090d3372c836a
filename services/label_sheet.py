"""HTML and PDF renderings of the barcode label sheet."""

from __future__ import annotations

import logging
from html import escape
from io import BytesIO
from typing import Any, List, Optional, Sequence

from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas as pdf_canvas

from models.inventory_rows import ResultRow
from services import code39
from services.label_layout import (
    MAX_COLUMNS,
    MIN_COLUMNS,
    LabelEntry,
    LabelLayoutEngine,
    RelayoutScheduler,
)

logger = logging.getLogger(__name__)

PDF_MARGIN = 36.0
PDF_ROW_TEXT = 30.0
PDF_ROW_GAP = 10.0


def build_engine(rows: Sequence[ResultRow], *, columns: int, container_width: float, settings: Any) -> LabelLayoutEngine:
    """Engine at the configured grid, then moved to the requested one through its scheduler."""

    engine = LabelLayoutEngine(
        rows,
        columns=getattr(settings, "label_default_columns", 3),
        container_width=getattr(settings, "label_page_width", 1000.0),
        baseline_size=getattr(settings, "label_baseline_size", 60.0),
        min_size=getattr(settings, "label_min_size", 28.0),
        max_size=getattr(settings, "label_max_size", 90.0),
        cell_padding=getattr(settings, "label_cell_padding", 16.0),
    )
    RelayoutScheduler(engine)
    engine.set_columns(columns)
    engine.resize(container_width)
    return engine


def _label_cell(entry: LabelEntry) -> str:
    row = entry.row
    svg = code39.render_svg(
        row.article, module=entry.module, height=entry.size, max_width=entry.max_width or None
    )
    return (
        '<div class="label">'
        f'<div class="desc">{escape(row.description)}</div>'
        f'<div class="meta">Art. {escape(row.article)} &middot; MPL {row.mpl} &middot; SOH {row.soh}</div>'
        f'<div class="code">{svg}</div>'
        "</div>"
    )


def render_labels_html(
    rows: Sequence[ResultRow],
    *,
    columns: int,
    page_width: float,
    settings: Any,
) -> str:
    """Return the printable labels page for ``rows``."""

    engine = build_engine(rows, columns=columns, container_width=page_width, settings=settings)
    entries = engine.before_print()
    options = "".join(
        f'<option value="{n}"{" selected" if n == engine.columns else ""}>{n}</option>'
        for n in range(MIN_COLUMNS, MAX_COLUMNS + 1)
    )
    if entries:
        body = "".join(_label_cell(entry) for entry in entries)
    else:
        body = '<p class="empty">No rows yet. Upload a report first.</p>'

    return f"""<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>MPL labels</title>
<style>
  body {{ font-family: sans-serif; margin: 0 auto; width: {engine.container_width:.0f}px; }}
  .toolbar {{ display: flex; gap: 12px; align-items: center; padding: 12px 0; }}
  .grid {{ display: grid; grid-template-columns: repeat({engine.columns}, 1fr); }}
  .label {{ box-sizing: border-box; padding: {engine.cell_padding / 2:.0f}px; border: 1px dashed #bbb;
            break-inside: avoid; page-break-inside: avoid; overflow: hidden; }}
  .desc {{ font-weight: bold; font-size: 13px; }}
  .meta {{ font-size: 11px; color: #444; margin-bottom: 4px; }}
  @media print {{ .toolbar {{ display: none; }} .label {{ border-color: transparent; }} }}
</style>
</head>
<body>
<form class="toolbar" method="get" action="">
  <label>Columns <select name="columns" onchange="this.form.submit()">{options}</select></label>
  <input type="hidden" name="page_width" value="{engine.container_width:.0f}">
  <button type="button" onclick="window.print()">Print</button>
  <a href="labels.pdf?columns={engine.columns}">PDF</a>
  <span>{len(entries)} labels</span>
</form>
<div class="grid">{body}</div>
</body>
</html>
"""


def render_labels_pdf(rows: Sequence[ResultRow], *, columns: int, settings: Any) -> bytes:
    """Return a letter-size PDF with one Code 39 label per row."""

    page_width, page_height = letter
    container = page_width - 2 * PDF_MARGIN
    engine = LabelLayoutEngine(
        rows,
        columns=columns,
        container_width=container,
        baseline_size=40.0,
        min_size=18.0,
        max_size=60.0,
        cell_padding=12.0,
        baseline_module=1.0,
    )
    entries: List[LabelEntry] = engine.before_print()

    buffer = BytesIO()
    c = pdf_canvas.Canvas(buffer, pagesize=letter)
    c.setTitle("MPL labels")

    if not entries:
        c.setFont("Helvetica", 11)
        c.drawString(PDF_MARGIN, page_height - PDF_MARGIN, "No rows yet. Upload a report first.")

    row_height: Optional[float] = None
    y = page_height - PDF_MARGIN
    for index, entry in enumerate(entries):
        col = index % engine.columns
        if col == 0:
            line_entries = entries[index:index + engine.columns]
            row_height = max(e.size for e in line_entries) + PDF_ROW_TEXT + PDF_ROW_GAP
            if y - row_height < PDF_MARGIN:
                c.showPage()
                y = page_height - PDF_MARGIN
            y -= row_height

        x = PDF_MARGIN + col * engine.cell_width + engine.cell_padding / 2
        text_top = y + row_height - PDF_ROW_GAP
        c.setFont("Helvetica-Bold", 8)
        c.drawString(x, text_top - 8, entry.row.description[:48])
        c.setFont("Helvetica", 7)
        c.drawString(x, text_top - 18, f"{entry.row.article}  MPL {entry.row.mpl}  SOH {entry.row.soh}")
        code39.draw_on_canvas(c, entry.row.article, x, y, module=entry.draw_module, height=entry.size)

    c.showPage()
    c.save()
    logger.info("Rendered %d labels into %d-column PDF", len(entries), engine.columns)
    return buffer.getvalue()


__all__ = ["build_engine", "render_labels_html", "render_labels_pdf"]
