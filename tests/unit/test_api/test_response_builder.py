"""
Unit tests for response builder utilities.

Tests conversion of engine outcomes and processing results to API responses.
"""

import uuid
from datetime import date

from care_recurrence.api.response_builder import (
    build_error_response,
    build_process_response,
    build_rejected_response,
    build_rule_response,
    build_schedule_response,
)
from care_recurrence.exceptions import FieldError
from care_recurrence.recurrence import NextOccurrence, SeriesEnded, validate_rule
from care_recurrence.services.completion import ProcessingResult

ANCHOR = date(2024, 1, 1)


def build_rule(**raw):
    raw.setdefault("pattern_type", "daily")
    raw.setdefault("interval_value", 1)
    raw.setdefault("end_type", "never")
    return validate_rule(
        raw,
        parent_item_id=uuid.uuid4(),
        group_id=uuid.uuid4(),
        created_on=date(2023, 12, 1),
    )


class TestBuildScheduleResponse:
    """Test build_schedule_response()."""

    def test_scheduled(self):
        rule = build_rule(interval_value=2)

        response = build_schedule_response(NextOccurrence(due_date=date(2024, 1, 3)), rule, ANCHOR)

        assert response.status == "scheduled"
        assert response.next_due_date == date(2024, 1, 3)
        assert response.updated_rule.created_occurrences == 1
        assert response.updated_rule.last_occurrence_date == date(2024, 1, 3)
        assert response.upcoming == []
        assert response.description == "Every 2 days"

    def test_scheduled_with_upcoming(self):
        rule = build_rule(interval_value=2)

        response = build_schedule_response(NextOccurrence(due_date=date(2024, 1, 3)), rule, ANCHOR, limit=3)

        assert response.upcoming == [date(2024, 1, 5), date(2024, 1, 7)]

    def test_upcoming_stops_at_end_condition(self):
        rule = build_rule(end_type="after_occurrences", end_after_occurrences=2)

        response = build_schedule_response(NextOccurrence(due_date=date(2024, 1, 2)), rule, ANCHOR, limit=5)

        assert response.upcoming == [date(2024, 1, 3)]

    def test_does_not_change_rule(self):
        rule = build_rule()
        build_schedule_response(NextOccurrence(due_date=date(2024, 1, 2)), rule, ANCHOR)

        assert rule.created_occurrences == 0

    def test_ended(self):
        rule = build_rule(end_type="after_occurrences", end_after_occurrences=2)

        response = build_schedule_response(SeriesEnded(reason="2 occurrences already created"), rule, ANCHOR)

        assert response.status == "ended"
        assert response.reason == "2 occurrences already created"
        assert response.next_due_date is None
        assert response.description == "Every day, 2 times"


class TestBuildRejectedResponse:
    """Test build_rejected_response()."""

    def test_keeps_every_error(self):
        response = build_rejected_response(
            [
                FieldError("interval_value", "is required"),
                FieldError("weekly_days", "select at least one weekday"),
            ]
        )

        assert response.status == "rejected"
        assert [e.field for e in response.field_errors] == ["interval_value", "weekly_days"]


class TestBuildRuleResponse:
    """Test build_rule_response()."""

    def test_flattens_rule(self):
        rule = build_rule(pattern_type="monthly", monthly_nth_weekday=2, monthly_weekday=2)

        response = build_rule_response(rule)

        assert response.pattern_type == "monthly"
        assert response.monthly_nth_weekday == 2
        assert response.monthly_weekday == 2
        assert response.monthly_day_of_month is None
        assert response.weekly_days is None
        assert response.end_type == "never"
        assert response.description == "Every month on the 2nd Tuesday"
        assert response.created_on == date(2023, 12, 1)


class TestBuildProcessResponse:
    """Test build_process_response()."""

    def test_counts(self):
        results = [
            ProcessingResult(event_id=uuid.uuid4(), status="processed", next_due_date=date(2024, 1, 3)),
            ProcessingResult(event_id=uuid.uuid4(), status="processed", already_processed=True),
            ProcessingResult(event_id=uuid.uuid4(), status="ended"),
            ProcessingResult(event_id=uuid.uuid4(), status="failed", warning="retry later"),
            ProcessingResult(event_id=uuid.uuid4(), status="skipped"),
        ]

        response = build_process_response(results)

        assert (response.processed, response.ended, response.failed, response.skipped) == (2, 1, 1, 1)
        assert len(response.results) == 5
        assert response.results[3].warning == "retry later"

    def test_empty(self):
        response = build_process_response([])

        assert response.processed == 0
        assert response.results == []


class TestBuildErrorResponse:
    """Test build_error_response()."""

    def test_basic(self):
        assert build_error_response("not_found", "Item missing") == {
            "error_type": "not_found",
            "message": "Item missing",
            "details": None,
            "retryable": False,
        }

    def test_with_details(self):
        response = build_error_response("recurrence_error", "Busy", details={"attempts": 3}, retryable=True)

        assert response["details"] == {"attempts": 3}
        assert response["retryable"] is True
