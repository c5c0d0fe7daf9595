"""
Recurrence engine.

Pure, side-effect-free calendar logic:
- Rule model (tagged unions for patterns and end conditions)
- Validation of flat rule input
- Pattern evaluators (daily, weekly, monthly, yearly)
- End-condition checks
- Scheduler combining them into a single outcome
"""

from care_recurrence.recurrence.rules import (
    AfterOccurrences,
    AnchorPolicy,
    DailyPattern,
    DayOfMonth,
    EndType,
    MonthlyPattern,
    NeverEnds,
    NthWeekday,
    PatternType,
    RecurrenceRule,
    UntilDate,
    WeeklyPattern,
    YearlyPattern,
    weekday_ordinal,
)
from care_recurrence.recurrence.validation import collect_field_errors, validate_rule
from care_recurrence.recurrence.patterns import (
    get_evaluator,
    next_candidate,
    nth_weekday_of_month,
)
from care_recurrence.recurrence.end_conditions import EndCheck, check_end_condition, is_exhausted
from care_recurrence.recurrence.anchors import resolve_anchor
from care_recurrence.recurrence.scheduler import (
    NextOccurrence,
    Outcome,
    SeriesEnded,
    preview_series,
    schedule,
)

__all__ = [
    # Rule model
    "AfterOccurrences",
    "AnchorPolicy",
    "DailyPattern",
    "DayOfMonth",
    "EndType",
    "MonthlyPattern",
    "NeverEnds",
    "NthWeekday",
    "PatternType",
    "RecurrenceRule",
    "UntilDate",
    "WeeklyPattern",
    "YearlyPattern",
    "weekday_ordinal",
    # Validation
    "collect_field_errors",
    "validate_rule",
    # Evaluators
    "get_evaluator",
    "next_candidate",
    "nth_weekday_of_month",
    # End conditions
    "EndCheck",
    "check_end_condition",
    "is_exhausted",
    # Anchors
    "resolve_anchor",
    # Scheduler
    "NextOccurrence",
    "Outcome",
    "SeriesEnded",
    "preview_series",
    "schedule",
]
