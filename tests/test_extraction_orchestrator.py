import json
import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.inventory_rows import ExtractionConstraints
from services.extraction_errors import InputError, PayloadTooLarge, ProviderTimeout
from services.extraction_orchestrator import ExtractionOrchestrator, normalize_provider_payload
from services.extraction_providers import ProviderResponse


ROWS = [
    {
        "article": "12345",
        "description": "PI Widget",
        "header_mpl": 10,
        "header_soh": 4,
        "header_mpl_label": "MPL",
        "header_soh_label": "SOH",
        "tail_soh": 4,
        "tail_mpl": 10,
        "tail_capacity": 20,
        "raw_row": "",
    },
    {
        "article": "777",
        "description": "WW Overstocked",
        "header_mpl": 2,
        "header_soh": 9,
        "header_mpl_label": "MPL",
        "header_soh_label": "SOH",
        "tail_soh": 9,
        "tail_mpl": 2,
        "tail_capacity": 5,
        "raw_row": "",
    },
]


class _StubProvider:
    name = "stub"

    def __init__(self, body=None, meta=None):
        self.body = body if body is not None else {"rows": ROWS}
        self.meta = meta or {}
        self.calls = []

    def extract(self, document, schema, instructions, abort):
        self.calls.append((document, schema, instructions))
        return ProviderResponse(body=self.body, meta=dict(self.meta))


class _NeverCalledProvider:
    name = "never"

    def extract(self, document, schema, instructions, abort):  # pragma: no cover - must not run
        raise AssertionError("provider must not be called")


class _SlowProvider:
    name = "slow"

    def __init__(self):
        self.aborted = False

    def extract(self, document, schema, instructions, abort):
        self.aborted = abort.wait(2)
        return ProviderResponse(body={"rows": []})


def _constraints(**overrides):
    values = dict(max_bytes=1024, limit_pages=0, timeout_seconds=5.0, filename="report.pdf")
    values.update(overrides)
    return ExtractionConstraints(**values)


def test_oversized_upload_rejected_before_provider_call():
    orchestrator = ExtractionOrchestrator(_NeverCalledProvider())
    with pytest.raises(PayloadTooLarge) as excinfo:
        orchestrator.run(b"x" * 2048, _constraints())
    assert excinfo.value.status_code == 413
    assert "2,048" in str(excinfo.value)


def test_empty_upload_rejected():
    orchestrator = ExtractionOrchestrator(_NeverCalledProvider())
    with pytest.raises(InputError):
        orchestrator.run(b"", _constraints())


def test_unsupported_suffix_rejected():
    orchestrator = ExtractionOrchestrator(_NeverCalledProvider())
    with pytest.raises(InputError) as excinfo:
        orchestrator.run(b"data", _constraints(filename="report.docx"))
    assert excinfo.value.status_code == 400
    assert ".docx" in str(excinfo.value)


def test_slow_provider_times_out_and_is_signalled():
    provider = _SlowProvider()
    orchestrator = ExtractionOrchestrator(provider)
    with pytest.raises(ProviderTimeout) as excinfo:
        orchestrator.run(b"%PDF-1.4", _constraints(timeout_seconds=0.05))
    assert excinfo.value.status_code == 504
    assert "page limit" in str(excinfo.value)


def test_run_reconciles_filters_and_reports_meta():
    provider = _StubProvider(meta={"provider": "stub", "pages_scanned": 2})
    orchestrator = ExtractionOrchestrator(provider)

    outcome = orchestrator.run(b"%PDF-1.4", _constraints(limit_pages=2))

    assert [row.to_dict() for row in outcome.rows] == [
        {"article": "12345", "description": "Widget", "mpl": 10, "soh": 4}
    ]
    assert outcome.candidates_considered == 2
    assert outcome.meta["rows_considered"] == 2
    assert outcome.meta["rows_returned"] == 1
    assert outcome.meta["limit_pages"] == 2
    assert outcome.meta["pages_scanned"] == 2

    document, schema, instructions = provider.calls[0]
    assert document.limit_pages == 2
    assert schema["required"] == ["rows"]
    assert "first 2 pages" in instructions


def test_empty_provider_result_is_not_an_error():
    orchestrator = ExtractionOrchestrator(_StubProvider(body={"rows": []}))
    outcome = orchestrator.run(b"a,b\n1,2\n", _constraints(filename="report.csv"))
    assert outcome.rows == []
    assert outcome.meta["rows_returned"] == 0


def test_normalize_accepts_known_response_shapes():
    rows_json = json.dumps({"rows": ROWS[:1]})
    shapes = [
        {"rows": ROWS[:1]},
        ROWS[:1],
        {"output_text": rows_json},
        {"output": [{"type": "message", "content": [{"type": "output_text", "text": rows_json}]}]},
        {"choices": [{"message": {"content": f"```json\n{rows_json}\n```"}}]},
        {"content": [{"type": "text", "text": rows_json}]},
        f"Here you go: {rows_json} thanks",
        rows_json.encode("utf-8"),
        {"items": ROWS[:1]},
    ]
    for shape in shapes:
        assert normalize_provider_payload(shape)["rows"] == ROWS[:1], shape


@pytest.mark.parametrize("body", [None, "", "not json", {"output_text": "nope"}, {"rows": "bad"}, 42])
def test_normalize_malformed_gives_empty_rows(body):
    assert normalize_provider_payload(body)["rows"] == []


def test_parser_shaped_rows_keep_their_mpl_and_soh():
    body = {
        "rows": [
            {"article": "1", "description": "PI Widget", "mpl": 10, "soh": 4},
            {"article": "2", "description": "Bolt", "mpl": 3, "soh": 9},
        ],
        "meta": {"pages_scanned": 1},
    }
    outcome = ExtractionOrchestrator(_StubProvider(body=body)).run(b"%PDF-1.4", _constraints())

    assert [row.to_dict() for row in outcome.rows] == [
        {"article": "1", "description": "Widget", "mpl": 10, "soh": 4}
    ]
    assert outcome.meta["rows_considered"] == 2
    assert outcome.meta["rows_returned"] == 1
