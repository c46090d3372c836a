"""Drive one upload through the extraction provider and the row filter.

The orchestrator owns everything that happens around the provider call:
size and type guards before anything leaves the process, prompt and schema
selection, the wall-clock timeout, and folding the many response shapes
providers produce into one list of :class:`CandidateRow`. No retries are
attempted; a failed or slow extraction is reported to the caller, who can
re-submit with a smaller page limit.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.inventory_rows import (
    CandidateRow,
    ExtractionConstraints,
    ExtractionResult,
    ResultRow,
)
from services.extraction_errors import InputError, PayloadTooLarge, ProviderTimeout
from services.extraction_prompts import ROW_SCHEMA, build_instructions
from services.extraction_providers import (
    SUPPORTED_SUFFIXES,
    ExtractionProvider,
    SourceDocument,
)
from services.row_normalizer import filter_rows

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", flags=re.DOTALL)


def _parse_json_text(text: str) -> Optional[Any]:
    """Parse model text that may be fenced or wrapped in prose."""

    text = (text or "").strip()
    if not text:
        return None
    match = _FENCED_JSON.search(text)
    if match:
        text = match.group(1).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    match = re.search(r"\{.*\}", text, flags=re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    logger.warning("Provider output was not valid JSON; first 200 chars: %r", text[:200])
    return None


def _output_text(body: Dict[str, Any]) -> Optional[str]:
    """Collect the model text from the envelopes the providers are known to use."""

    direct = body.get("output_text")
    if isinstance(direct, str) and direct.strip():
        return direct

    pieces: List[str] = []
    for item in body.get("output") or []:
        if not isinstance(item, dict):
            continue
        for part in item.get("content") or []:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                pieces.append(part["text"])
    if pieces:
        return "".join(pieces)

    choices = body.get("choices") or []
    if choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str):
            return content

    for part in body.get("content") or []:
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            pieces.append(part["text"])
    if pieces:
        return "".join(pieces)

    text = body.get("text")
    if isinstance(text, str):
        return text
    return None


def normalize_provider_payload(body: Any) -> Dict[str, Any]:
    """Return ``{"rows": [...]}`` for any provider body; malformed input gives no rows."""

    parsed: Any = body
    if isinstance(body, (bytes, bytearray)):
        parsed = _parse_json_text(body.decode("utf-8", errors="ignore"))
    elif isinstance(body, str):
        parsed = _parse_json_text(body)
    elif isinstance(body, dict) and "rows" not in body:
        text = _output_text(body)
        if text is not None:
            parsed = _parse_json_text(text)

    if isinstance(parsed, list):
        parsed = {"rows": parsed}
    if not isinstance(parsed, dict):
        return {"rows": []}

    rows = parsed.get("rows")
    if rows is None:
        rows = parsed.get("items") or parsed.get("data") or []
    if not isinstance(rows, list):
        rows = []
    normalized = dict(parsed)
    normalized["rows"] = [row for row in rows if isinstance(row, dict)]
    return normalized


@dataclass
class UploadOutcome:
    rows: List[ResultRow] = field(default_factory=list)
    candidates_considered: int = 0
    meta: Dict[str, Any] = field(default_factory=dict)


class ExtractionOrchestrator:
    """Run a single upload against an :class:`ExtractionProvider`."""

    def __init__(self, provider: ExtractionProvider, *, schema: Optional[Dict[str, Any]] = None) -> None:
        self.provider = provider
        self.schema = schema or ROW_SCHEMA

    def validate(self, file_bytes: Optional[bytes], constraints: ExtractionConstraints) -> None:
        if not file_bytes:
            raise InputError('No file provided (expected a non-empty form field "file")')
        size = len(file_bytes)
        if constraints.max_bytes and size > constraints.max_bytes:
            raise PayloadTooLarge(size, constraints.max_bytes)
        document = SourceDocument(filename=constraints.filename, content=b"")
        if document.suffix not in SUPPORTED_SUFFIXES:
            allowed = ", ".join(sorted(SUPPORTED_SUFFIXES))
            raise InputError(
                f"Unsupported file type '{document.suffix or 'unknown'}'. Allowed types: {allowed}"
            )

    def _call_provider(self, document: SourceDocument, instructions: str, timeout: float):
        abort = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="extraction")
        future = executor.submit(
            self.provider.extract, document, self.schema, instructions, abort
        )
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError as exc:
            abort.set()
            logger.warning(
                "Provider %s exceeded %.1fs for %s",
                getattr(self.provider, "name", "?"),
                timeout,
                document.filename,
            )
            raise ProviderTimeout(timeout) from exc
        finally:
            executor.shutdown(wait=False)

    def extract_with_meta(
        self, file_bytes: Optional[bytes], constraints: ExtractionConstraints
    ) -> ExtractionResult:
        self.validate(file_bytes, constraints)
        limit_pages = max(0, int(constraints.limit_pages or 0))
        document = SourceDocument(
            filename=constraints.filename,
            content=file_bytes,
            content_type=constraints.content_type,
            limit_pages=limit_pages,
        )
        instructions = build_instructions(limit_pages)

        started = time.monotonic()
        response = self._call_provider(document, instructions, constraints.timeout_seconds)
        elapsed = time.monotonic() - started

        payload = normalize_provider_payload(response.body)
        candidates = [CandidateRow.from_payload(row) for row in payload["rows"]]

        meta: Dict[str, Any] = dict(response.meta or {})
        if isinstance(payload.get("meta"), dict):
            for key, value in payload["meta"].items():
                meta.setdefault(key, value)
        meta["rows_considered"] = len(candidates)
        meta["limit_pages"] = limit_pages
        meta["elapsed_seconds"] = round(elapsed, 3)
        logger.info(
            "Provider %s returned %d candidate rows for %s in %.2fs",
            getattr(self.provider, "name", "?"),
            len(candidates),
            constraints.filename,
            elapsed,
        )
        return ExtractionResult(candidates=candidates, meta=meta)

    def extract(self, file_bytes: Optional[bytes], constraints: ExtractionConstraints) -> List[CandidateRow]:
        return self.extract_with_meta(file_bytes, constraints).candidates

    def run(self, file_bytes: Optional[bytes], constraints: ExtractionConstraints) -> UploadOutcome:
        """Extract, reconcile and filter one upload."""

        result = self.extract_with_meta(file_bytes, constraints)
        rows = filter_rows(result.candidates)
        meta = dict(result.meta)
        meta["rows_returned"] = len(rows)
        return UploadOutcome(rows=rows, candidates_considered=len(result.candidates), meta=meta)


__all__ = ["ExtractionOrchestrator", "UploadOutcome", "normalize_provider_payload"]
