"""
Recurrence rule model.

A rule is stored as a flat row, but inside the engine it is a set of immutable
Pydantic models where each pattern and each end policy is its own variant:

- pattern: DailyPattern | WeeklyPattern | MonthlyPattern | YearlyPattern,
  discriminated on ``pattern_type``
- MonthlyPattern.position: DayOfMonth | NthWeekday, discriminated on ``form``
- end_condition: NeverEnds | AfterOccurrences | UntilDate, discriminated on
  ``end_type``

Illegal combinations (a monthly rule with both a day of month and an nth
weekday, an end date on a rule that never ends) cannot be constructed.

Weekday ordinals are Sunday-first: 0=Sunday .. 6=Saturday.
"""

import uuid
from datetime import date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


WEEKDAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def weekday_ordinal(day: date) -> int:
    """Sunday-first weekday ordinal (0=Sunday .. 6=Saturday) of a date."""
    return (day.weekday() + 1) % 7


class PatternType(str, Enum):
    """Closed set of recurrence patterns."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class EndType(str, Enum):
    """Closed set of end policies."""

    NEVER = "never"
    AFTER_OCCURRENCES = "after_occurrences"
    UNTIL_DATE = "until_date"


class AnchorPolicy(str, Enum):
    """
    Which date of a completed occurrence the next one is computed from.

    Fixed when the series starts.
    """

    DUE_DATE = "due_date"
    COMPLETION_DATE = "completion_date"
    LATER_OF = "later_of"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Patterns
# =============================================================================


class DailyPattern(_Frozen):
    """Every N days."""

    pattern_type: Literal["daily"] = "daily"


class WeeklyPattern(_Frozen):
    """Every Nth week on a set of weekdays."""

    pattern_type: Literal["weekly"] = "weekly"
    weekly_days: frozenset[Annotated[int, Field(ge=0, le=6)]] = Field(
        ...,
        min_length=1,
        description="Sunday-first weekday ordinals",
    )

    @property
    def sorted_days(self) -> list[int]:
        return sorted(self.weekly_days)


class DayOfMonth(_Frozen):
    """A fixed day of the month (clamped to month end)."""

    form: Literal["day_of_month"] = "day_of_month"
    day_of_month: int = Field(..., ge=1, le=31)


class NthWeekday(_Frozen):
    """The nth instance of a weekday in the month (e.g. 2nd Tuesday)."""

    form: Literal["nth_weekday"] = "nth_weekday"
    nth_occurrence: int = Field(..., ge=1, le=5)
    weekday: int = Field(..., ge=0, le=6)


MonthlyPosition = Annotated[Union[DayOfMonth, NthWeekday], Field(discriminator="form")]


class MonthlyPattern(_Frozen):
    """Every N months, on a day of month or an nth weekday."""

    pattern_type: Literal["monthly"] = "monthly"
    position: MonthlyPosition


class YearlyPattern(_Frozen):
    """Every N years on a fixed month/day."""

    pattern_type: Literal["yearly"] = "yearly"
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)


Pattern = Annotated[
    Union[DailyPattern, WeeklyPattern, MonthlyPattern, YearlyPattern],
    Field(discriminator="pattern_type"),
]


# =============================================================================
# End conditions
# =============================================================================


class NeverEnds(_Frozen):
    end_type: Literal["never"] = "never"


class AfterOccurrences(_Frozen):
    """Stop after ``count`` occurrences have been produced."""

    end_type: Literal["after_occurrences"] = "after_occurrences"
    count: int = Field(..., gt=0)


class UntilDate(_Frozen):
    """Stop once a candidate falls after ``until`` (inclusive limit)."""

    end_type: Literal["until_date"] = "until_date"
    until: date


EndCondition = Annotated[
    Union[NeverEnds, AfterOccurrences, UntilDate],
    Field(discriminator="end_type"),
]


# =============================================================================
# Rule
# =============================================================================


class RecurrenceRule(_Frozen):
    """
    One validated recurrence definition attached to a parent item.

    ``created_occurrences`` and ``last_occurrence_date`` are the only mutable
    state; they change through the materializer, never here. ``advanced``
    returns the copy the materializer would persist.
    """

    id: Optional[uuid.UUID] = None
    parent_item_id: uuid.UUID
    group_id: uuid.UUID

    interval_value: int = Field(default=1, ge=1)
    pattern: Pattern
    end_condition: EndCondition = Field(default_factory=NeverEnds)
    anchor_policy: AnchorPolicy = AnchorPolicy.DUE_DATE

    created_on: date = Field(..., description="Date the rule was created")
    created_occurrences: int = Field(default=0, ge=0)
    last_occurrence_date: Optional[date] = None

    @property
    def pattern_type(self) -> PatternType:
        return PatternType(self.pattern.pattern_type)

    @property
    def end_type(self) -> EndType:
        return EndType(self.end_condition.end_type)

    def advanced(self, due_date: date) -> "RecurrenceRule":
        """Copy with counters moved past an occurrence due on ``due_date``."""
        return self.model_copy(
            update={
                "created_occurrences": self.created_occurrences + 1,
                "last_occurrence_date": due_date,
            }
        )

    def describe(self) -> str:
        """Short human-readable summary, e.g. 'Every 2 weeks on Monday, Friday'."""
        unit = {
            PatternType.DAILY: "day",
            PatternType.WEEKLY: "week",
            PatternType.MONTHLY: "month",
            PatternType.YEARLY: "year",
        }[self.pattern_type]
        every = f"Every {unit}" if self.interval_value == 1 else f"Every {self.interval_value} {unit}s"

        pattern = self.pattern
        if isinstance(pattern, WeeklyPattern):
            days = ", ".join(WEEKDAY_NAMES[d] for d in pattern.sorted_days)
            every = f"{every} on {days}"
        elif isinstance(pattern, MonthlyPattern):
            position = pattern.position
            if isinstance(position, DayOfMonth):
                every = f"{every} on day {position.day_of_month}"
            else:
                ordinal = {1: "1st", 2: "2nd", 3: "3rd", 4: "4th", 5: "5th"}[position.nth_occurrence]
                every = f"{every} on the {ordinal} {WEEKDAY_NAMES[position.weekday]}"
        elif isinstance(pattern, YearlyPattern):
            every = f"{every} on {MONTH_NAMES[pattern.month - 1]} {pattern.day}"

        end = self.end_condition
        if isinstance(end, AfterOccurrences):
            every = f"{every}, {end.count} times"
        elif isinstance(end, UntilDate):
            every = f"{every}, until {end.until.isoformat()}"
        return every
