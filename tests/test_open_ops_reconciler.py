"""
Tests for services.open_ops_reconciler.
"""
import pytest

from schemas import Company, OpenOpsSet, WIPRecord
from services.open_ops_reconciler import (
    build_open_ops_set,
    extract_sequence,
    group_by_order,
    is_open,
    reconcile,
)


def _rec(ops_no, company=Company.EMPL, total=2, buyer_code="B1", buyer_name="Buyer", **stages):
    return WIPRecord(company=company, ops_no=ops_no, total_pcs=total,
                     buyer_code=buyer_code, buyer_name=buyer_name, **stages)


class TestExtractSequence:

    @pytest.mark.parametrize("ops_no, expected", [
        ("EM-25-1131", 1131),
        ("EM-25-139 B", 139),
        ("EM-25-770-B", 770),
        ("X-25-050", 50),
        ("  EM-26-0007", 7),
    ])
    def test_sequence(self, ops_no, expected):
        assert extract_sequence(ops_no) == expected

    @pytest.mark.parametrize("ops_no", ["", "SAMPLE", "EM-25", "1131", None])
    def test_no_sequence(self, ops_no):
        assert extract_sequence(ops_no) is None


class TestBuildOpenOpsSet:

    def test_dedupes_and_derives_max(self):
        ops = build_open_ops_set([" EM-25-0101", "EM-25-0139 B", "EM-25-0101", ""])
        assert ops.ops_numbers == ["EM-25-0101", "EM-25-0139 B"]
        assert ops.max_sequence == 139

    def test_explicit_max_sequence_kept(self):
        assert build_open_ops_set(["EM-25-0001"], max_sequence=500).max_sequence == 500


class TestGroupByOrder:

    def test_sums_items(self):
        groups = group_by_order([
            _rec("EM-25-0001", total=5, on_loom=2),
            _rec("EM-25-0001", total=3, packed_pcs=3),
            _rec("EM-25-0002", total=1),
        ])
        assert [g.ops_no for g in groups] == ["EM-25-0001", "EM-25-0002"]
        first = groups[0]
        assert first.item_count == 2
        assert first.total_pcs == 8
        assert first.on_loom == 2
        assert first.packed_pcs == 3
        assert first.untracked_pcs == 3
        assert len(first.items) == 2

    def test_first_seen_wins_on_case_and_whitespace(self):
        groups = group_by_order([
            _rec("EM-25-0100", buyer_code="FIRST", buyer_name="First Buyer"),
            _rec(" em-25-0100 ", buyer_code="SECOND", buyer_name="Second Buyer"),
        ])
        assert len(groups) == 1
        assert groups[0].ops_no == "EM-25-0100"
        assert groups[0].buyer_code == "FIRST"
        assert groups[0].buyer_name == "First Buyer"
        assert groups[0].item_count == 2

    def test_grouping_is_company_scoped(self):
        groups = group_by_order([_rec("EM-25-0100"), _rec("EM-25-0100", company=Company.EHI)])
        assert [g.company for g in groups] == [Company.EMPL, Company.EHI]


class TestReconcile:

    @pytest.fixture
    def groups(self):
        return group_by_order([_rec("X-25-050"), _rec("X-25-150"), _rec("X-25-010")])

    @pytest.fixture
    def open_ops(self):
        return OpenOpsSet(ops_numbers=["X-25-010"], max_sequence=100)

    def test_open_view(self, groups, open_ops):
        """X-25-050 is unlisted and older than the export; X-25-010 is listed despite its low sequence."""
        outcome = reconcile(groups, open_ops)
        assert [g.ops_no for g in outcome.visible] == ["X-25-150", "X-25-010"]
        assert outcome.hidden_count == 1
        assert outcome.open_ops_loaded is True

    def test_all_view_flags_closed(self, groups, open_ops):
        outcome = reconcile(groups, open_ops, show_all=True)
        assert {g.ops_no: g.is_open for g in outcome.visible} == {
            "X-25-050": False, "X-25-150": True, "X-25-010": True,
        }
        assert outcome.hidden_count == 1

    def test_no_document_means_everything_open(self, groups):
        outcome = reconcile(groups, None)
        assert len(outcome.visible) == 3
        assert all(g.is_open for g in outcome.visible)
        assert outcome.hidden_count == 0
        assert outcome.open_ops_loaded is False

    def test_membership_ignores_case_and_whitespace(self):
        ops = OpenOpsSet(ops_numbers=[" x-25-010 "], max_sequence=100)
        assert is_open("X-25-010", ops)

    def test_equal_sequence_is_not_newer(self):
        ops = OpenOpsSet(ops_numbers=[], max_sequence=100)
        assert not is_open("X-25-100", ops)
        assert is_open("X-25-101", ops)

    def test_unparseable_number_not_in_set_is_closed(self):
        assert not is_open("SAMPLE-ORDER", OpenOpsSet(ops_numbers=["X-25-050"], max_sequence=100))
