"""Text cleanup and the ``soh <= mpl`` filter applied to reconciled rows."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

from models.inventory_rows import CandidateRow, ReconciledPair, ResultRow
from services.row_reconciler import reconcile

logger = logging.getLogger(__name__)

# Short supplier codes such as "PI ", "WW ", "BW " printed ahead of the description.
_SUPPLIER_PREFIX = re.compile(r"^[A-Z]{1,3}\s+")
_WHITESPACE_RUN = re.compile(r"\s{2,}")


def clean_description(description: Optional[str]) -> str:
    text = (description or "").strip()
    text = _SUPPLIER_PREFIX.sub("", text, count=1)
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.strip()


def normalize(candidate: CandidateRow, pair: ReconciledPair) -> Optional[ResultRow]:
    """Return the display row for ``candidate`` or ``None`` when it must be dropped."""

    article = (candidate.article or "").strip()
    if not article:
        return None
    if pair.soh > pair.mpl:
        return None
    return ResultRow(
        article=article,
        description=clean_description(candidate.description),
        mpl=pair.mpl,
        soh=pair.soh,
    )


def filter_rows(candidates: Iterable[CandidateRow]) -> List[ResultRow]:
    """Reconcile and filter a batch of candidates, keeping input order."""

    rows: List[ResultRow] = []
    considered = 0
    for candidate in candidates:
        considered += 1
        row = normalize(candidate, reconcile(candidate))
        if row is not None:
            rows.append(row)
    logger.info("Kept %d of %d candidate rows with SOH <= MPL", len(rows), considered)
    return rows


__all__ = ["clean_description", "filter_rows", "normalize"]
