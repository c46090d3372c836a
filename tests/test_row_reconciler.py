import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.inventory_rows import CandidateRow
from services.row_normalizer import filter_rows
from services.row_reconciler import derive_tail_from_raw, looks_swapped, reconcile


def _candidate(**overrides):
    base = dict(
        article="12345",
        description="PI Widget",
        header_mpl=10,
        header_soh=4,
        header_mpl_label="MPL",
        header_soh_label="SOH",
        tail_soh=4,
        tail_mpl=10,
        tail_capacity=20,
    )
    base.update(overrides)
    return CandidateRow(**base)


def test_header_pair_used_when_labels_match_and_no_swap():
    pair = reconcile(_candidate())
    assert (pair.mpl, pair.soh, pair.source) == (10, 4, "header")


def test_header_reading_capacity_falls_back_to_tail():
    pair = reconcile(_candidate(header_mpl=20, header_soh=10))
    assert (pair.mpl, pair.soh, pair.source) == (10, 4, "tail")


def test_reversed_header_pair_falls_back_to_tail():
    pair = reconcile(_candidate(header_mpl=4, header_soh=10))
    assert (pair.mpl, pair.soh) == (10, 4)
    assert pair.source == "tail"


def test_equal_pairs_give_the_same_values_either_way():
    pair = reconcile(_candidate(header_mpl=6, header_soh=6, tail_soh=6, tail_mpl=6, tail_capacity=12))
    assert (pair.mpl, pair.soh) == (6, 6)


def test_capacity_equal_to_mpl_is_not_a_misread():
    assert not looks_swapped(10, 4, 4, 10, 10)


def test_wrong_labels_use_positional_pair():
    pair = reconcile(_candidate(header_mpl_label="OM", header_soh_label="SOH", header_mpl=7))
    assert (pair.mpl, pair.soh, pair.source) == (10, 4, "tail")


def test_label_comparison_ignores_case_and_padding():
    pair = reconcile(_candidate(header_mpl_label=" mpl ", header_soh_label="Soh"))
    assert pair.source == "header"


def test_zero_header_mpl_is_rejected_when_tail_has_value():
    pair = reconcile(_candidate(header_mpl=0, header_soh=0))
    assert (pair.mpl, pair.soh, pair.source) == (10, 4, "tail")


def test_all_zero_row_keeps_header_zeros():
    pair = reconcile(
        CandidateRow(article="1", header_mpl_label="MPL", header_soh_label="SOH")
    )
    assert (pair.mpl, pair.soh) == (0, 0)


def test_raw_row_fills_empty_trio():
    candidate = CandidateRow(
        article="555",
        header_mpl=20,
        header_soh=3,
        header_mpl_label="MPL",
        header_soh_label="SOH",
        raw_row="555  BW Hinge 40mm   3   8   20",
    )
    pair = reconcile(candidate)
    assert (pair.mpl, pair.soh, pair.source) == (8, 3, "tail")


def test_raw_row_ignored_when_trio_present():
    candidate = _candidate(raw_row="12345 Widget 1 2 3")
    assert reconcile(candidate).source == "header"


def test_derive_tail_from_raw_handles_grouped_and_short_rows():
    assert derive_tail_from_raw("998877 Pallet wrap 1,200 2,400 4,800") == (1200, 2400, 4800)
    assert derive_tail_from_raw("only 2 numbers 5") is None
    assert derive_tail_from_raw("") is None
    assert derive_tail_from_raw("A1 x 2.5 kg 3 4 5") == (3, 4, 5)


def test_end_to_end_filter_produces_clean_rows():
    rows = filter_rows([_candidate(), _candidate(article="2", header_mpl=20, header_soh=10)])
    assert [row.to_dict() for row in rows] == [
        {"article": "12345", "description": "Widget", "mpl": 10, "soh": 4},
        {"article": "2", "description": "Widget", "mpl": 10, "soh": 4},
    ]


def test_filter_rows_is_idempotent():
    candidates = [
        _candidate(),
        _candidate(article="2", header_mpl=20, header_soh=10),
        _candidate(article="3", header_mpl=2, header_soh=9, tail_soh=9, tail_mpl=2, tail_capacity=4),
        CandidateRow(
            article="555",
            description="BW  Hinge   40mm",
            header_mpl=20,
            header_soh=3,
            header_mpl_label="MPL",
            header_soh_label="SOH",
            raw_row="555  BW Hinge 40mm   3   8   20",
        ),
        CandidateRow(article="", header_mpl=5, header_soh=1, header_mpl_label="MPL", header_soh_label="SOH"),
    ]
    first = filter_rows(candidates)
    second = filter_rows(candidates)
    assert first == second
    assert [(row.article, row.mpl, row.soh) for row in first] == [
        ("12345", 10, 4),
        ("2", 10, 4),
        ("555", 8, 3),
    ]
    assert first[-1].description == "Hinge 40mm"
