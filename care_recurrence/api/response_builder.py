"""
Response builder utilities for transforming engine outcomes to API responses.

Builds the three outcome shapes callers see:
- scheduled: next due date plus the rule counters it would leave behind
- ended: the series is over (not an error)
- rejected: field errors from rule validation
"""

from datetime import date
from typing import Any, Optional

from care_recurrence.api.models import (
    EventResult,
    FieldErrorResponse,
    ProcessEventsResponse,
    RejectedResponse,
    RuleResponse,
    ScheduleResponse,
    UpdatedRule,
)
from care_recurrence.exceptions import FieldError
from care_recurrence.recurrence import (
    NextOccurrence,
    Outcome,
    RecurrenceRule,
    preview_series,
)
from care_recurrence.services.completion import ProcessingResult
from care_recurrence.services.rule_store import rule_to_raw


def build_schedule_response(
    outcome: Outcome,
    rule: RecurrenceRule,
    anchor: date,
    limit: int = 1,
) -> ScheduleResponse:
    """
    Build a ScheduleResponse from a scheduler outcome.

    Args:
        outcome: Result of ``schedule(anchor, rule)``
        rule: Rule the outcome was computed for
        anchor: Anchor date used
        limit: Total dates to list, the next due date included

    Returns:
        ScheduleResponse with status ``scheduled`` or ``ended``
    """
    if not isinstance(outcome, NextOccurrence):
        return ScheduleResponse(
            status="ended",
            reason=outcome.reason,
            description=rule.describe(),
        )

    advanced = rule.advanced(outcome.due_date)
    upcoming: list[date] = []
    if limit > 1:
        upcoming = preview_series(outcome.due_date, advanced, limit - 1)

    return ScheduleResponse(
        status="scheduled",
        next_due_date=outcome.due_date,
        updated_rule=UpdatedRule(
            created_occurrences=advanced.created_occurrences,
            last_occurrence_date=advanced.last_occurrence_date,
        ),
        upcoming=upcoming,
        description=rule.describe(),
    )


def build_rejected_response(field_errors: list[FieldError]) -> RejectedResponse:
    """Build the ``rejected`` outcome from validation errors."""
    return RejectedResponse(
        field_errors=[
            FieldErrorResponse(field=error.field, message=error.message)
            for error in field_errors
        ]
    )


def build_rule_response(rule: RecurrenceRule) -> RuleResponse:
    """Flatten a stored rule for the editing form."""
    return RuleResponse(
        id=rule.id,
        parent_item_id=rule.parent_item_id,
        group_id=rule.group_id,
        description=rule.describe(),
        created_on=rule.created_on,
        created_occurrences=rule.created_occurrences,
        last_occurrence_date=rule.last_occurrence_date,
        **rule_to_raw(rule),
    )


def build_process_response(results: list[ProcessingResult]) -> ProcessEventsResponse:
    """Summarize a queue drain."""
    response = ProcessEventsResponse(
        results=[
            EventResult(
                event_id=result.event_id,
                status=result.status,
                next_due_date=result.next_due_date,
                created_item_id=result.created_item_id,
                already_processed=result.already_processed,
                warning=result.warning,
            )
            for result in results
        ]
    )
    for result in results:
        if result.status == "processed":
            response.processed += 1
        elif result.status == "ended":
            response.ended += 1
        elif result.status == "failed":
            response.failed += 1
        else:
            response.skipped += 1
    return response


def build_error_response(
    error_type: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    retryable: bool = False,
) -> dict[str, Any]:
    """Build standardized error response dictionary."""
    return {
        "error_type": error_type,
        "message": message,
        "details": details,
        "retryable": retryable,
    }
