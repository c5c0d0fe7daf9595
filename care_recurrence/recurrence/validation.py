"""
Rule validation.

Turns the flat rule shape posted by the editing form (and stored in the
``recurrence_rules`` table) into a RecurrenceRule, collecting every field error
instead of stopping at the first one.

Flat fields:
    pattern_type, interval_value, weekly_days,
    monthly_day_of_month, monthly_nth_weekday, monthly_weekday,
    yearly_month, yearly_day,
    end_type, end_after_occurrences, end_until_date,
    anchor_policy
"""

import calendar
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional

from dateutil.parser import isoparse

from care_recurrence.exceptions import FieldError, RuleValidationError
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
)

# Flat fields each pattern / end type may carry
PATTERN_FIELDS: dict[PatternType, tuple[str, ...]] = {
    PatternType.DAILY: (),
    PatternType.WEEKLY: ("weekly_days",),
    PatternType.MONTHLY: ("monthly_day_of_month", "monthly_nth_weekday", "monthly_weekday"),
    PatternType.YEARLY: ("yearly_month", "yearly_day"),
}

END_FIELDS: dict[EndType, tuple[str, ...]] = {
    EndType.NEVER: (),
    EndType.AFTER_OCCURRENCES: ("end_after_occurrences",),
    EndType.UNTIL_DATE: ("end_until_date",),
}

# Leap year used to bound yearly days so Feb 29 stays legal
_LEAP_REFERENCE_YEAR = 2000


@dataclass
class _ParsedRule:
    interval_value: Optional[int] = None
    pattern: Any = None
    end_condition: Any = None
    anchor_policy: AnchorPolicy = AnchorPolicy.DUE_DATE


def _present(value: Any) -> bool:
    """Treat None, empty strings and empty collections as 'not set'."""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, set, frozenset)) and len(value) == 0:
        return False
    return True


def _read_int(
    raw: Mapping[str, Any],
    name: str,
    errors: list[FieldError],
    minimum: int,
    maximum: Optional[int] = None,
) -> Optional[int]:
    value = raw.get(name)
    if not _present(value):
        errors.append(FieldError(name, "is required"))
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        errors.append(FieldError(name, "must be a whole number"))
        return None
    if value < minimum or (maximum is not None and value > maximum):
        if maximum is None:
            errors.append(FieldError(name, f"must be at least {minimum}"))
        else:
            errors.append(FieldError(name, f"must be between {minimum} and {maximum}"))
        return None
    return value


def _read_date(raw: Mapping[str, Any], name: str, errors: list[FieldError]) -> Optional[date]:
    value = raw.get(name)
    if not _present(value):
        errors.append(FieldError(name, "is required"))
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return isoparse(value).date()
        except ValueError:
            pass
    errors.append(FieldError(name, "must be an ISO 8601 date (YYYY-MM-DD)"))
    return None


def _read_enum(raw: Mapping[str, Any], name: str, enum_cls, errors: list[FieldError]):
    value = raw.get(name)
    choices = ", ".join(member.value for member in enum_cls)
    if not _present(value):
        errors.append(FieldError(name, f"is required (one of: {choices})"))
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        errors.append(FieldError(name, f"must be one of: {choices}"))
        return None


def _reject_foreign_fields(
    raw: Mapping[str, Any],
    allowed: tuple[str, ...],
    table: dict,
    label: str,
    errors: list[FieldError],
) -> None:
    foreign = {name for fields in table.values() for name in fields} - set(allowed)
    for name in sorted(foreign):
        if _present(raw.get(name)):
            errors.append(FieldError(name, f"is not allowed for {label} rules"))


# =============================================================================
# Pattern payloads
# =============================================================================


def _parse_weekly(raw: Mapping[str, Any], errors: list[FieldError]) -> Optional[WeeklyPattern]:
    days = raw.get("weekly_days")
    if not _present(days):
        errors.append(FieldError("weekly_days", "select at least one weekday"))
        return None
    if not isinstance(days, (list, tuple, set, frozenset)):
        errors.append(FieldError("weekly_days", "must be a list of weekday numbers"))
        return None

    bad = [d for d in days if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6]
    if bad:
        errors.append(
            FieldError("weekly_days", f"weekdays must be 0 (Sunday) to 6 (Saturday), got {bad}")
        )
        return None
    return WeeklyPattern(weekly_days=frozenset(days))


def _parse_monthly(raw: Mapping[str, Any], errors: list[FieldError]) -> Optional[MonthlyPattern]:
    has_day = _present(raw.get("monthly_day_of_month"))
    has_nth = _present(raw.get("monthly_nth_weekday")) or _present(raw.get("monthly_weekday"))

    if has_day and has_nth:
        errors.append(
            FieldError(
                "monthly_day_of_month",
                "cannot be combined with monthly_nth_weekday/monthly_weekday",
            )
        )
        return None
    if not has_day and not has_nth:
        errors.append(
            FieldError(
                "monthly_day_of_month",
                "monthly rules need a day of month or an nth weekday",
            )
        )
        return None

    if has_day:
        day = _read_int(raw, "monthly_day_of_month", errors, 1, 31)
        return MonthlyPattern(position=DayOfMonth(day_of_month=day)) if day is not None else None

    nth = _read_int(raw, "monthly_nth_weekday", errors, 1, 5)
    weekday = _read_int(raw, "monthly_weekday", errors, 0, 6)
    if nth is None or weekday is None:
        return None
    return MonthlyPattern(position=NthWeekday(nth_occurrence=nth, weekday=weekday))


def _parse_yearly(raw: Mapping[str, Any], errors: list[FieldError]) -> Optional[YearlyPattern]:
    month = _read_int(raw, "yearly_month", errors, 1, 12)
    if month is None:
        # Day bounds depend on the month; still report a missing day
        if not _present(raw.get("yearly_day")):
            errors.append(FieldError("yearly_day", "is required"))
        return None

    last_day = calendar.monthrange(_LEAP_REFERENCE_YEAR, month)[1]
    day = _read_int(raw, "yearly_day", errors, 1, last_day)
    if day is None:
        return None
    return YearlyPattern(month=month, day=day)


def _parse_pattern(raw: Mapping[str, Any], pattern_type: PatternType, errors: list[FieldError]):
    if pattern_type == PatternType.DAILY:
        return DailyPattern()
    if pattern_type == PatternType.WEEKLY:
        return _parse_weekly(raw, errors)
    if pattern_type == PatternType.MONTHLY:
        return _parse_monthly(raw, errors)
    return _parse_yearly(raw, errors)


def _parse_end_condition(
    raw: Mapping[str, Any],
    end_type: EndType,
    created_on: date,
    errors: list[FieldError],
):
    if end_type == EndType.NEVER:
        return NeverEnds()

    if end_type == EndType.AFTER_OCCURRENCES:
        count = _read_int(raw, "end_after_occurrences", errors, 1)
        return AfterOccurrences(count=count) if count is not None else None

    until = _read_date(raw, "end_until_date", errors)
    if until is None:
        return None
    if until <= created_on:
        errors.append(
            FieldError(
                "end_until_date",
                f"must be after the rule's creation date ({created_on.isoformat()})",
            )
        )
        return None
    return UntilDate(until=until)


def _parse(raw: Mapping[str, Any], created_on: date) -> tuple[list[FieldError], _ParsedRule]:
    errors: list[FieldError] = []
    parsed = _ParsedRule()

    parsed.interval_value = _read_int(raw, "interval_value", errors, 1)

    pattern_type = _read_enum(raw, "pattern_type", PatternType, errors)
    if pattern_type is not None:
        _reject_foreign_fields(
            raw, PATTERN_FIELDS[pattern_type], PATTERN_FIELDS, pattern_type.value, errors
        )
        parsed.pattern = _parse_pattern(raw, pattern_type, errors)

    end_type = _read_enum(raw, "end_type", EndType, errors)
    if end_type is not None:
        _reject_foreign_fields(raw, END_FIELDS[end_type], END_FIELDS, end_type.value, errors)
        parsed.end_condition = _parse_end_condition(raw, end_type, created_on, errors)

    if _present(raw.get("anchor_policy")):
        policy = _read_enum(raw, "anchor_policy", AnchorPolicy, errors)
        if policy is not None:
            parsed.anchor_policy = policy

    return errors, parsed


def collect_field_errors(raw: Mapping[str, Any], created_on: date) -> list[FieldError]:
    """
    Check a flat rule without building it.

    Args:
        raw: Flat rule fields (form payload or table row)
        created_on: Creation date of the rule (until dates must be after it)

    Returns:
        List of field errors (empty when the rule is valid)
    """
    errors, _ = _parse(raw, created_on)
    return errors


def validate_rule(
    raw: Mapping[str, Any],
    *,
    parent_item_id: uuid.UUID,
    group_id: uuid.UUID,
    created_on: date,
    rule_id: Optional[uuid.UUID] = None,
    created_occurrences: int = 0,
    last_occurrence_date: Optional[date] = None,
) -> RecurrenceRule:
    """
    Validate a flat rule and build the RecurrenceRule.

    No implicit defaults are applied to the pattern or end condition; only
    ``anchor_policy`` falls back to the due date when omitted.

    Args:
        raw: Flat rule fields (form payload or table row)
        parent_item_id: Task/appointment the rule is attached to
        group_id: Care group owning the parent item
        created_on: Creation date of the rule
        rule_id: Existing rule ID when editing
        created_occurrences: Counter carried over when editing
        last_occurrence_date: Last materialized due date carried over when editing

    Returns:
        Validated RecurrenceRule

    Raises:
        RuleValidationError: With every field error found
    """
    errors, parsed = _parse(raw, created_on)
    if errors:
        raise RuleValidationError(errors)

    return RecurrenceRule(
        id=rule_id,
        parent_item_id=parent_item_id,
        group_id=group_id,
        interval_value=parsed.interval_value,
        pattern=parsed.pattern,
        end_condition=parsed.end_condition,
        anchor_policy=parsed.anchor_policy,
        created_on=created_on,
        created_occurrences=created_occurrences,
        last_occurrence_date=last_occurrence_date,
    )
