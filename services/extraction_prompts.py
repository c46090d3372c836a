"""Output schema and instruction text sent to the extraction provider."""

from __future__ import annotations

from typing import Any, Dict, Optional

ROW_FIELD_DESCRIPTIONS = {
    "article": "the article / item number printed in the row, as text",
    "description": "the item description exactly as printed, including any short supplier code prefix",
    "header_mpl": "integer read from the column whose header is exactly MPL",
    "header_soh": "integer read from the column whose header is exactly SOH",
    "header_mpl_label": "the exact header text of the column used for header_mpl",
    "header_soh_label": "the exact header text of the column used for header_soh",
    "tail_soh": "first of the three right-most numeric cells in the row",
    "tail_mpl": "second of the three right-most numeric cells in the row",
    "tail_capacity": "third (last) of the three right-most numeric cells in the row",
    "raw_row": "the full row text, verbatim, left to right",
}

_INTEGER_FIELDS = {
    "header_mpl",
    "header_soh",
    "tail_soh",
    "tail_mpl",
    "tail_capacity",
}


def _row_schema() -> Dict[str, Any]:
    properties: Dict[str, Any] = {}
    for name, description in ROW_FIELD_DESCRIPTIONS.items():
        properties[name] = {
            "type": "integer" if name in _INTEGER_FIELDS else "string",
            "description": description,
        }
    return {
        "type": "object",
        "properties": properties,
        "required": list(ROW_FIELD_DESCRIPTIONS),
        "additionalProperties": False,
    }


ROW_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "rows": {"type": "array", "items": _row_schema()},
    },
    "required": ["rows"],
    "additionalProperties": False,
}

SCHEMA_NAME = "inventory_rows"

EXTRACTION_INSTRUCTIONS = """
You are reading a retail store inventory report. Return every product row of
the stock table as JSON matching the provided schema. Do not skip rows and do
not invent rows.

HEADER-ANCHORED VALUES
- header_mpl comes ONLY from the column whose header text is exactly "MPL".
- header_soh comes ONLY from the column whose header text is exactly "SOH".
- Put the header text you actually used into header_mpl_label and
  header_soh_label. If no column is headed exactly MPL or SOH, return the
  closest header text you used so the mismatch is visible.
- Never take MPL from a "Capacity", "Cap" or "OM" column.

POSITIONAL VALUES
- Independently of the headers, take the three RIGHT-MOST numeric cells of
  the row, left to right, and return them as tail_soh, tail_mpl,
  tail_capacity in that order. Do not relabel or reorder them.

NUMBERS
- Every numeric field is a whole number. Remove thousands separators.
- A blank cell is 0. Never return null for a numeric field.

TEXT
- article is the item number exactly as printed.
- description is the item text exactly as printed.
- raw_row is the whole row as one line of text.
""".strip()


def build_instructions(limit_pages: Optional[int] = None) -> str:
    """Return the instruction text, with a page restriction when ``limit_pages`` > 0."""

    text = EXTRACTION_INSTRUCTIONS
    if limit_pages and limit_pages > 0:
        plural = "page" if limit_pages == 1 else f"{limit_pages} pages"
        text += (
            f"\n\nSPEED\n- Only read the first {plural} of the document. "
            "Ignore everything after that."
        )
    return text


__all__ = [
    "EXTRACTION_INSTRUCTIONS",
    "ROW_FIELD_DESCRIPTIONS",
    "ROW_SCHEMA",
    "SCHEMA_NAME",
    "build_instructions",
]
