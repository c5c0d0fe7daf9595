"""Unit tests for anchor date resolution."""

from datetime import date

import pytest

from care_recurrence.recurrence import AnchorPolicy, resolve_anchor

DUE = date(2024, 1, 10)


class TestResolveAnchor:
    """Test resolve_anchor()."""

    @pytest.mark.parametrize(
        "policy,completed_on,expected",
        [
            (AnchorPolicy.DUE_DATE, date(2024, 1, 8), DUE),
            (AnchorPolicy.DUE_DATE, date(2024, 1, 15), DUE),
            (AnchorPolicy.COMPLETION_DATE, date(2024, 1, 8), date(2024, 1, 8)),
            (AnchorPolicy.COMPLETION_DATE, date(2024, 1, 15), date(2024, 1, 15)),
            (AnchorPolicy.LATER_OF, date(2024, 1, 8), DUE),
            (AnchorPolicy.LATER_OF, date(2024, 1, 15), date(2024, 1, 15)),
        ],
    )
    def test_policies(self, policy, completed_on, expected):
        assert resolve_anchor(policy, DUE, completed_on) == expected

    @pytest.mark.parametrize("policy", list(AnchorPolicy))
    def test_undated_item_uses_completion_date(self, policy):
        assert resolve_anchor(policy, None, date(2024, 1, 8)) == date(2024, 1, 8)

    @pytest.mark.parametrize(
        "policy,due_date,completed_on,last_occurrence,expected",
        [
            # The occurrence due on the 6th was completed early, on the 5th
            (AnchorPolicy.COMPLETION_DATE, date(2024, 1, 6), date(2024, 1, 5), date(2024, 1, 6), date(2024, 1, 6)),
            (AnchorPolicy.COMPLETION_DATE, date(2024, 1, 6), date(2024, 1, 9), date(2024, 1, 6), date(2024, 1, 9)),
            (AnchorPolicy.LATER_OF, date(2024, 1, 6), date(2024, 1, 5), date(2024, 1, 8), date(2024, 1, 8)),
            (AnchorPolicy.COMPLETION_DATE, None, date(2024, 1, 5), date(2024, 1, 6), date(2024, 1, 6)),
            # Due-date anchors are distinct per occurrence already
            (AnchorPolicy.DUE_DATE, date(2024, 1, 6), date(2024, 1, 5), date(2024, 1, 8), date(2024, 1, 6)),
        ],
    )
    def test_completion_anchor_not_before_latest_occurrence(
        self, policy, due_date, completed_on, last_occurrence, expected
    ):
        assert resolve_anchor(policy, due_date, completed_on, last_occurrence) == expected

    def test_no_occurrences_yet(self):
        assert resolve_anchor(AnchorPolicy.COMPLETION_DATE, DUE, date(2024, 1, 8), None) == date(2024, 1, 8)
