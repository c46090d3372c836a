"""Pick the authoritative MPL/SOH pair for an extracted inventory row.

The extraction model reports every row twice: once anchored on the column
headers it believes read "MPL" and "SOH", and once positionally from the
three right-most numeric cells (SOH, MPL, Capacity in that order). Capacity,
MPL and SOH sit next to each other in the source reports, so the header
pair is occasionally read from the wrong column. The positional trio is a
cheap independent check for that.

Precedence is fixed: header pair, then the swap checks, then the
positional fallback. The function never raises; rows that still break the
``soh <= mpl`` rule are dropped later by :mod:`services.row_normalizer`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Optional, Tuple

from models.inventory_rows import CandidateRow, ReconciledPair
from utils.numbers import coerce_count

logger = logging.getLogger(__name__)

_INTEGER_TOKEN = re.compile(
    r"(?<![\w.])\d{1,3}(?:,\d{3})+(?![\w.])"
    r"|(?<![\w.])(?<!\d,)\d+(?![\w.])(?!,\d)"
)


def derive_tail_from_raw(raw_row: str) -> Optional[Tuple[int, int, int]]:
    """Return ``(soh, mpl, capacity)`` from the three right-most integers in ``raw_row``."""

    if not raw_row:
        return None
    tokens = _INTEGER_TOKEN.findall(raw_row)
    if len(tokens) < 3:
        return None
    soh, mpl, capacity = (coerce_count(token) for token in tokens[-3:])
    return soh, mpl, capacity


def _with_tail(candidate: CandidateRow) -> CandidateRow:
    if candidate.tail_soh or candidate.tail_mpl or candidate.tail_capacity:
        return candidate
    derived = derive_tail_from_raw(candidate.raw_row)
    if derived is None:
        return candidate
    soh, mpl, capacity = derived
    logger.debug(
        "Derived positional trio %s from raw row for article %r",
        derived,
        candidate.article,
    )
    return replace(candidate, tail_soh=soh, tail_mpl=mpl, tail_capacity=capacity)


def header_looks_right(candidate: CandidateRow) -> bool:
    mpl_label = (candidate.header_mpl_label or "").strip().upper()
    soh_label = (candidate.header_soh_label or "").strip().upper()
    return mpl_label == "MPL" and soh_label == "SOH"


def looks_swapped(
    header_mpl: int, header_soh: int, tail_soh: int, tail_mpl: int, tail_capacity: int
) -> bool:
    """Detect a header pair read from the capacity column or read back to front."""

    capacity_misread = header_mpl == tail_capacity and tail_mpl != tail_capacity
    reversed_pair = header_mpl == tail_soh and header_soh == tail_mpl
    return capacity_misread or reversed_pair


def reconcile(candidate: CandidateRow) -> ReconciledPair:
    candidate = _with_tail(candidate)

    header_mpl = coerce_count(candidate.header_mpl)
    header_soh = coerce_count(candidate.header_soh)
    tail_soh = coerce_count(candidate.tail_soh)
    tail_mpl = coerce_count(candidate.tail_mpl)
    tail_capacity = coerce_count(candidate.tail_capacity)

    swapped = looks_swapped(header_mpl, header_soh, tail_soh, tail_mpl, tail_capacity)
    spurious_zero = header_mpl == 0 and tail_mpl > 0
    usable = header_looks_right(candidate) and not swapped and not spurious_zero

    if usable:
        return ReconciledPair(mpl=header_mpl, soh=header_soh, source="header")

    logger.debug(
        "Using positional pair for article %r (labels=%r/%r swapped=%s zero=%s)",
        candidate.article,
        candidate.header_mpl_label,
        candidate.header_soh_label,
        swapped,
        spurious_zero,
    )
    return ReconciledPair(mpl=tail_mpl, soh=tail_soh, source="tail")


__all__ = ["derive_tail_from_raw", "header_looks_right", "looks_swapped", "reconcile"]
