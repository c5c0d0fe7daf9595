"""
Pattern evaluators.

Each evaluator answers one question: given the anchor date of the occurrence
just finished, on which date is the next candidate due? Evaluators are pure and
total; dates that do not exist are resolved by clamping:

- Monthly, day of month: clamp to the target month's last day (31st -> Feb 29/28)
- Monthly, nth weekday: a missing 5th weekday falls back to the month's last one
- Yearly: Feb 29 becomes Feb 28 in non-leap target years

Every candidate is strictly after its anchor.

Uses dateutil.relativedelta for month/year arithmetic.
"""

from datetime import date, timedelta
from typing import ClassVar, Protocol

from dateutil.relativedelta import relativedelta, FR, MO, SA, SU, TH, TU, WE

from care_recurrence.recurrence.rules import (
    DayOfMonth,
    MonthlyPattern,
    PatternType,
    RecurrenceRule,
    WeeklyPattern,
    YearlyPattern,
    weekday_ordinal,
)

# Indexed by Sunday-first ordinal
_DATEUTIL_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)


class PatternEvaluator(Protocol):
    """Strategy computing the next candidate date for one pattern type."""

    pattern_type: ClassVar[PatternType]

    def next_candidate(self, anchor: date, rule: RecurrenceRule) -> date:
        ...


class DailyEvaluator:
    """anchor + interval days."""

    pattern_type = PatternType.DAILY

    def next_candidate(self, anchor: date, rule: RecurrenceRule) -> date:
        return anchor + timedelta(days=rule.interval_value)


class WeeklyEvaluator:
    """
    Every Nth week on the selected weekdays.

    Weeks run Sunday to Saturday. The next selected weekday later in the
    anchor's own week wins; otherwise jump ``interval_value`` whole weeks from
    the anchor's week and take the earliest selected weekday there. With
    Mon/Wed/Fri every 2 weeks, a Friday anchor skips a full week before the
    next Monday.
    """

    pattern_type = PatternType.WEEKLY

    def next_candidate(self, anchor: date, rule: RecurrenceRule) -> date:
        pattern: WeeklyPattern = rule.pattern
        anchor_ordinal = weekday_ordinal(anchor)
        week_start = anchor - timedelta(days=anchor_ordinal)

        for ordinal in pattern.sorted_days:
            if ordinal > anchor_ordinal:
                return week_start + timedelta(days=ordinal)

        target_week = week_start + timedelta(weeks=rule.interval_value)
        return target_week + timedelta(days=pattern.sorted_days[0])


class MonthlyEvaluator:
    """Every N months, on a clamped day of month or an nth weekday."""

    pattern_type = PatternType.MONTHLY

    def next_candidate(self, anchor: date, rule: RecurrenceRule) -> date:
        pattern: MonthlyPattern = rule.pattern
        position = pattern.position

        if isinstance(position, DayOfMonth):
            # relativedelta clamps an absolute day to the month's length
            return anchor + relativedelta(months=rule.interval_value, day=position.day_of_month)

        month_start = anchor + relativedelta(months=rule.interval_value, day=1)
        return nth_weekday_of_month(
            month_start.year,
            month_start.month,
            position.weekday,
            position.nth_occurrence,
        )


class YearlyEvaluator:
    """Every N years on month/day, Feb 29 clamped to Feb 28."""

    pattern_type = PatternType.YEARLY

    def next_candidate(self, anchor: date, rule: RecurrenceRule) -> date:
        pattern: YearlyPattern = rule.pattern
        return anchor + relativedelta(
            years=rule.interval_value,
            month=pattern.month,
            day=pattern.day,
        )


def nth_weekday_of_month(year: int, month: int, weekday: int, nth: int) -> date:
    """
    Find the nth instance of a weekday in a month.

    Args:
        year: Target year
        month: Target month (1-12)
        weekday: Sunday-first weekday ordinal (0-6)
        nth: Instance to find (1-5)

    Returns:
        The nth instance, or the month's last instance of that weekday when
        the month has fewer than ``nth`` of them
    """
    month_start = date(year, month, 1)
    dateutil_weekday = _DATEUTIL_WEEKDAYS[weekday]

    candidate = month_start + relativedelta(weekday=dateutil_weekday(+nth))
    if candidate.month == month:
        return candidate

    return month_start + relativedelta(day=31, weekday=dateutil_weekday(-1))


EVALUATORS: dict[PatternType, PatternEvaluator] = {
    evaluator.pattern_type: evaluator
    for evaluator in (DailyEvaluator(), WeeklyEvaluator(), MonthlyEvaluator(), YearlyEvaluator())
}


def get_evaluator(pattern_type: PatternType) -> PatternEvaluator:
    """Look up the evaluator for a pattern type."""
    return EVALUATORS[pattern_type]


def next_candidate(anchor: date, rule: RecurrenceRule) -> date:
    """
    Compute the next candidate date for a rule.

    Args:
        anchor: Due/completion date of the occurrence just finished
        rule: Validated recurrence rule

    Returns:
        Candidate date, strictly after ``anchor``
    """
    return get_evaluator(rule.pattern_type).next_candidate(anchor, rule)
