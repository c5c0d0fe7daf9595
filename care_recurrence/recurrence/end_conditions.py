"""End-condition checks for a recurrence series."""

from datetime import date
from enum import Enum

from care_recurrence.recurrence.rules import (
    AfterOccurrences,
    NeverEnds,
    RecurrenceRule,
    UntilDate,
)


class EndCheck(str, Enum):
    CONTINUE = "continue"
    ENDED = "ended"


def is_exhausted(rule: RecurrenceRule) -> bool:
    """True once an occurrence-limited rule has produced all its occurrences."""
    end = rule.end_condition
    return isinstance(end, AfterOccurrences) and rule.created_occurrences + 1 > end.count


def check_end_condition(candidate: date, rule: RecurrenceRule) -> EndCheck:
    """
    Decide whether a candidate date may still be produced.

    - NeverEnds: always continue
    - AfterOccurrences(n): continue while created_occurrences + 1 <= n
    - UntilDate(limit): continue while candidate <= limit (inclusive)

    Args:
        candidate: Date computed by the pattern evaluator
        rule: Rule with its current counters

    Returns:
        EndCheck.CONTINUE or EndCheck.ENDED
    """
    end = rule.end_condition

    if isinstance(end, NeverEnds):
        return EndCheck.CONTINUE

    if isinstance(end, AfterOccurrences):
        return EndCheck.ENDED if is_exhausted(rule) else EndCheck.CONTINUE

    if isinstance(end, UntilDate):
        return EndCheck.CONTINUE if candidate <= end.until else EndCheck.ENDED

    raise TypeError(f"Unknown end condition: {end!r}")
