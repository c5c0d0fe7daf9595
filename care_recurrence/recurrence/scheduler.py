"""
Recurrence scheduler.

Combines the pattern evaluators and the end-condition checker into a single
decision: the next occurrence's due date, or the end of the series.

The scheduler never mutates the rule. Whether a series has ended is always
re-derived from the rule's counters, so calling ``schedule`` again on an ended
series keeps returning SeriesEnded.
"""

from dataclasses import dataclass
from datetime import date
from typing import Literal, Union

from care_recurrence.recurrence.end_conditions import EndCheck, check_end_condition, is_exhausted
from care_recurrence.recurrence.patterns import get_evaluator
from care_recurrence.recurrence.rules import RecurrenceRule


@dataclass(frozen=True)
class NextOccurrence:
    """The series continues with an occurrence due on ``due_date``."""

    due_date: date
    status: Literal["scheduled"] = "scheduled"


@dataclass(frozen=True)
class SeriesEnded:
    """The series is over; no occurrence is produced."""

    reason: str = "end condition reached"
    status: Literal["ended"] = "ended"


Outcome = Union[NextOccurrence, SeriesEnded]


def schedule(anchor: date, rule: RecurrenceRule) -> Outcome:
    """
    Decide the next occurrence for a rule.

    Args:
        anchor: Due/completion date of the occurrence just finished
        rule: Rule with its current counters

    Returns:
        NextOccurrence(candidate) or SeriesEnded
    """
    if is_exhausted(rule):
        return SeriesEnded(reason=f"{rule.created_occurrences} occurrences already created")

    evaluator = get_evaluator(rule.pattern_type)
    candidate = evaluator.next_candidate(anchor, rule)

    if check_end_condition(candidate, rule) == EndCheck.ENDED:
        return SeriesEnded(reason=f"next date {candidate.isoformat()} is past the end date")

    return NextOccurrence(due_date=candidate)


def preview_series(anchor: date, rule: RecurrenceRule, limit: int) -> list[date]:
    """
    List upcoming due dates, as successive real runs would produce them.

    Each step anchors on the previous candidate and advances the counters the
    way the materializer does, so the list matches what completing every
    occurrence on its due date would create.

    Args:
        anchor: Starting anchor date
        rule: Rule with its current counters
        limit: Maximum number of dates to return

    Returns:
        Up to ``limit`` due dates, shorter if the series ends first
    """
    dates: list[date] = []
    current_anchor = anchor
    current_rule = rule

    while len(dates) < limit:
        outcome = schedule(current_anchor, current_rule)
        if isinstance(outcome, SeriesEnded):
            break
        dates.append(outcome.due_date)
        current_anchor = outcome.due_date
        current_rule = current_rule.advanced(outcome.due_date)

    return dates
