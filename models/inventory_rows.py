"""Row types flowing from the extraction provider to the label sheet.

``CandidateRow`` is what a provider guessed for one table row of the
inventory report: a header-anchored MPL/SOH pair, the positional trio read
from the three right-most numeric cells, and the raw row text.
``ResultRow`` is the reconciled, filtered row handed to the UI, the
export layer and the label sheet. Every result row satisfies
``soh <= mpl`` and carries a non-empty article.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from utils.numbers import coerce_count


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] not in (None, ""):
            return payload[key]
    return None


@dataclass(frozen=True)
class CandidateRow:
    article: str = ""
    description: str = ""
    header_mpl: int = 0
    header_soh: int = 0
    header_mpl_label: str = ""
    header_soh_label: str = ""
    tail_soh: int = 0
    tail_mpl: int = 0
    tail_capacity: int = 0
    raw_row: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CandidateRow":
        """Build a candidate from a loosely-typed provider dict.

        Numeric cells are coerced to non-negative integers (blank -> 0).
        Older provider dialects and the parser service report the header pair
        as bare ``mpl``/``soh`` keys, which count as header-anchored when no
        labels are given, and the positional trio as a ``tail``/``trio`` list
        ordered ``[soh, mpl, capacity]``.
        """

        trio: Sequence[Any] = ()
        raw_trio = _first(payload, "tail", "trio", "tail_trio")
        if isinstance(raw_trio, (list, tuple)):
            trio = list(raw_trio)[:3]

        def _trio_at(index: int) -> Any:
            return trio[index] if index < len(trio) else None

        mpl_label = _text(_first(payload, "header_mpl_label", "mpl_label"))
        soh_label = _text(_first(payload, "header_soh_label", "soh_label"))
        bare_pair = (
            "header_mpl" not in payload
            and "header_soh" not in payload
            and ("mpl" in payload or "soh" in payload)
        )
        if bare_pair and not mpl_label and not soh_label:
            mpl_label, soh_label = "MPL", "SOH"

        return cls(
            article=_text(_first(payload, "article", "article_number", "item")),
            description=_text(_first(payload, "description", "desc")),
            header_mpl=coerce_count(_first(payload, "header_mpl", "mpl")),
            header_soh=coerce_count(_first(payload, "header_soh", "soh")),
            header_mpl_label=mpl_label,
            header_soh_label=soh_label,
            tail_soh=coerce_count(_first(payload, "tail_soh") or _trio_at(0)),
            tail_mpl=coerce_count(_first(payload, "tail_mpl") or _trio_at(1)),
            tail_capacity=coerce_count(
                _first(payload, "tail_capacity", "capacity", "om") or _trio_at(2)
            ),
            raw_row=_text(_first(payload, "raw_row", "raw", "row_text")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReconciledPair:
    mpl: int
    soh: int
    source: str = "header"


@dataclass(frozen=True)
class ResultRow:
    article: str
    description: str
    mpl: int
    soh: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "article": self.article,
            "description": self.description,
            "mpl": self.mpl,
            "soh": self.soh,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Optional["ResultRow"]:
        """Rehydrate a stored row; rows breaking the invariant are refused."""

        article = _text(payload.get("article")).strip()
        mpl = coerce_count(payload.get("mpl"))
        soh = coerce_count(payload.get("soh"))
        if not article or soh > mpl:
            return None
        return cls(
            article=article,
            description=_text(payload.get("description")).strip(),
            mpl=mpl,
            soh=soh,
        )


@dataclass
class ExtractionConstraints:
    """Per-upload limits handed to the orchestrator."""

    max_bytes: int
    limit_pages: int = 0
    timeout_seconds: float = 90.0
    filename: str = "report.pdf"
    content_type: str = "application/pdf"


@dataclass
class ExtractionResult:
    candidates: List[CandidateRow] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


__all__ = [
    "CandidateRow",
    "ExtractionConstraints",
    "ExtractionResult",
    "ReconciledPair",
    "ResultRow",
]
