"""Auto-fit of Code 39 symbols into an N-column label grid.

Every label walks INIT -> MEASURE -> SCALE -> COMMIT. MEASURE takes the
symbol's natural width at the baseline size, SCALE stretches the size so
the symbol fills its cell (cell width minus padding) and clamps it to the
configured range, COMMIT stores the result with a whole module width of at
least one. A symbol that still overflows at one unit per module is drawn
compressed to the cell width. Column changes, container resizes and print
requests send every label back to MEASURE.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from models.inventory_rows import ResultRow
from services import code39

logger = logging.getLogger(__name__)

MIN_COLUMNS = 1
MAX_COLUMNS = 6


class LayoutState(str, Enum):
    INIT = "init"
    MEASURE = "measure"
    SCALE = "scale"
    COMMIT = "commit"


@dataclass
class LabelEntry:
    row: ResultRow
    payload: str
    state: LayoutState = LayoutState.INIT
    measured_width: float = 0.0
    size: float = 0.0
    module: float = 0.0
    fitted_for: Optional[Tuple[int, float]] = None
    max_width: float = 0.0

    @property
    def units(self) -> int:
        return code39.total_units(self.row.article)

    @property
    def rendered_width(self) -> float:
        natural = self.units * self.module
        if self.max_width > 0:
            return min(natural, self.max_width)
        return natural

    @property
    def draw_module(self) -> float:
        """Module width actually drawn; below 1 only when one unit per module overflows the cell."""
        return self.rendered_width / self.units


def clamp_columns(columns: int) -> int:
    try:
        value = int(columns)
    except (TypeError, ValueError):
        return MIN_COLUMNS
    return max(MIN_COLUMNS, min(MAX_COLUMNS, value))


class LabelLayoutEngine:
    """Compute a per-label symbol size for the current grid."""

    def __init__(
        self,
        rows: Iterable[ResultRow],
        *,
        columns: int = 3,
        container_width: float = 1000.0,
        baseline_size: float = 60.0,
        min_size: float = 28.0,
        max_size: float = 90.0,
        cell_padding: float = 16.0,
        baseline_module: float = 2.0,
        on_invalidate: Optional[Callable[[str], None]] = None,
    ) -> None:
        if min_size > max_size:
            raise ValueError("min_size must not exceed max_size")
        self.columns = clamp_columns(columns)
        self.container_width = max(0.0, float(container_width))
        self.baseline_size = float(baseline_size)
        self.min_size = float(min_size)
        self.max_size = float(max_size)
        self.cell_padding = float(cell_padding)
        self.baseline_module = float(baseline_module)
        self.on_invalidate = on_invalidate
        self.entries: List[LabelEntry] = [
            LabelEntry(row=row, payload=code39.payload(row.article)) for row in rows
        ]

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    @property
    def cell_width(self) -> float:
        return self.container_width / self.columns

    @property
    def available_width(self) -> float:
        return max(0.0, self.cell_width - self.cell_padding)

    def _inputs(self) -> Tuple[int, float]:
        return self.columns, self.container_width

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def measure(self, entry: LabelEntry) -> float:
        entry.state = LayoutState.MEASURE
        entry.measured_width = code39.total_units(entry.row.article) * self.baseline_module
        return entry.measured_width

    def scale(self, entry: LabelEntry) -> float:
        entry.state = LayoutState.SCALE
        if entry.measured_width <= 0:
            return self.min_size
        size = self.baseline_size * self.available_width / entry.measured_width
        return max(self.min_size, min(self.max_size, size))

    def commit(self, entry: LabelEntry, size: float) -> LabelEntry:
        entry.size = size
        scaled = math.floor(self.baseline_module * size / self.baseline_size + 1e-9)
        entry.module = min(
            code39.module_width(self.available_width, entry.units),
            max(1, scaled),
        )
        entry.max_width = self.available_width
        entry.state = LayoutState.COMMIT
        entry.fitted_for = self._inputs()
        return entry

    def fit(self, entry: LabelEntry) -> LabelEntry:
        if entry.state is LayoutState.COMMIT and entry.fitted_for == self._inputs():
            return entry
        self.measure(entry)
        return self.commit(entry, self.scale(entry))

    def layout(self) -> List[LabelEntry]:
        for entry in self.entries:
            self.fit(entry)
        return self.entries

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    def _invalidate(self, reason: str, *, schedule: bool = True) -> None:
        for entry in self.entries:
            entry.state = LayoutState.MEASURE
        logger.debug("Label layout invalidated: %s", reason)
        if schedule and self.on_invalidate is not None:
            self.on_invalidate(reason)

    def set_columns(self, columns: int) -> None:
        columns = clamp_columns(columns)
        if columns != self.columns:
            self.columns = columns
            self._invalidate("columns")

    def resize(self, container_width: float) -> None:
        container_width = max(0.0, float(container_width))
        if container_width != self.container_width:
            self.container_width = container_width
            self._invalidate("resize")

    def before_print(self, print_width: Optional[float] = None) -> List[LabelEntry]:
        """Refit synchronously against the width the print surface will use."""

        if print_width is not None:
            self.container_width = max(0.0, float(print_width))
        self._invalidate("print", schedule=False)
        return self.layout()


class RelayoutScheduler:
    """Coalesce layout triggers raised in one event-loop turn into one refit."""

    def __init__(self, engine: LabelLayoutEngine, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.engine = engine
        self._loop = loop
        self._pending = False
        self.reasons: List[str] = []
        self.runs = 0
        engine.on_invalidate = self.request

    def request(self, reason: str = "manual") -> None:
        self.reasons.append(reason)
        if self._pending:
            return
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # No event loop in this thread: refit right away.
                self._flush()
                return
        self._pending = True
        loop.call_soon(self._flush)

    def _flush(self) -> None:
        self._pending = False
        self.runs += 1
        self.engine.layout()
        logger.debug("Relayout #%d after %s", self.runs, ", ".join(self.reasons))
        self.reasons.clear()


__all__ = [
    "LabelEntry",
    "LabelLayoutEngine",
    "LayoutState",
    "RelayoutScheduler",
    "clamp_columns",
]
