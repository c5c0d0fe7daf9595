"""
Pydantic request and response models for the care recurrence API.

Rule fields are accepted loosely typed: the recurrence validator owns every
field check so that bad input comes back as a single ``rejected`` response
listing all field errors.
"""

from datetime import date, datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Request Models
# =============================================================================


class RuleInput(BaseModel):
    """Flat recurrence rule, as posted by the rule-editing form."""

    model_config = ConfigDict(extra="ignore")

    pattern_type: Any = Field(
        None,
        description="daily, weekly, monthly or yearly",
        examples=["weekly"],
    )
    interval_value: Any = Field(
        None,
        description="Every N days/weeks/months/years (>= 1)",
        examples=[1],
    )
    weekly_days: Any = Field(
        None,
        description="Weekly: weekday ordinals, 0=Sunday .. 6=Saturday",
        examples=[[1, 3, 5]],
    )
    monthly_day_of_month: Any = Field(None, description="Monthly: day of month (1-31)")
    monthly_nth_weekday: Any = Field(None, description="Monthly: nth occurrence (1-5)")
    monthly_weekday: Any = Field(None, description="Monthly: weekday ordinal (0-6)")
    yearly_month: Any = Field(None, description="Yearly: month (1-12)")
    yearly_day: Any = Field(None, description="Yearly: day (1-31)")
    end_type: Any = Field(
        None,
        description="never, after_occurrences or until_date",
        examples=["never"],
    )
    end_after_occurrences: Any = Field(None, description="Stop after this many occurrences")
    end_until_date: Any = Field(None, description="Last allowed due date (YYYY-MM-DD, inclusive)")
    anchor_policy: Any = Field(
        None,
        description="due_date (default), completion_date or later_of",
    )

    def to_raw(self) -> dict[str, Any]:
        """Flat fields for the validator."""
        return self.model_dump(include=set(RuleInput.model_fields))


class SaveRuleRequest(RuleInput):
    """Create or replace an item's recurrence rule."""

    user_id: Optional[UUID] = Field(None, description="User saving the rule")


class PreviewRequest(RuleInput):
    """Preview an unsaved rule from an anchor date."""

    anchor_date: date = Field(..., description="Due date of the occurrence being completed")
    created_on: Optional[date] = Field(
        None,
        description="Rule creation date (defaults to today)",
    )
    limit: Optional[int] = Field(
        None,
        ge=1,
        description="Upcoming dates to list (capped by server settings)",
    )


class CompleteItemRequest(BaseModel):
    """Mark an occurrence done."""

    user_id: Optional[UUID] = Field(None, description="User completing the item")
    completed_at: Optional[datetime] = Field(None, description="Completion time (defaults to now)")


class ProcessEventsRequest(BaseModel):
    """Drain the completion queue."""

    limit: Optional[int] = Field(None, ge=1, le=500, description="Maximum events to process")


# =============================================================================
# Response Models
# =============================================================================


class UpdatedRule(BaseModel):
    """Rule counters after the scheduled occurrence is created."""

    created_occurrences: int
    last_occurrence_date: Optional[date] = None


class ScheduleResponse(BaseModel):
    """
    Scheduler outcome.

    - scheduled: next_due_date and updated_rule are set
    - ended: the series produces no further occurrences
    """

    status: Literal["scheduled", "ended"]
    next_due_date: Optional[date] = None
    updated_rule: Optional[UpdatedRule] = None
    upcoming: list[date] = Field(default_factory=list, description="Further dates, in order")
    reason: Optional[str] = Field(None, description="Why the series ended")
    description: Optional[str] = Field(None, description="Human-readable rule summary")


class FieldErrorResponse(BaseModel):
    field: str
    message: str


class RejectedResponse(BaseModel):
    """Rule input rejected by validation."""

    status: Literal["rejected"] = "rejected"
    field_errors: list[FieldErrorResponse]


class RuleResponse(BaseModel):
    """A stored recurrence rule."""

    id: Optional[UUID] = None
    parent_item_id: UUID
    group_id: UUID
    description: str
    pattern_type: str
    interval_value: int
    weekly_days: Optional[list[int]] = None
    monthly_day_of_month: Optional[int] = None
    monthly_nth_weekday: Optional[int] = None
    monthly_weekday: Optional[int] = None
    yearly_month: Optional[int] = None
    yearly_day: Optional[int] = None
    end_type: str
    end_after_occurrences: Optional[int] = None
    end_until_date: Optional[date] = None
    anchor_policy: str
    created_on: date
    created_occurrences: int
    last_occurrence_date: Optional[date] = None


class DeleteRuleResponse(BaseModel):
    parent_item_id: UUID
    deleted: bool = True
    message: str = "Recurrence removed"


class CompleteItemResponse(BaseModel):
    """Result of marking an item done."""

    item_id: UUID
    status: Literal["done"] = "done"
    already_done: bool = False
    next_occurrence: Literal["queued", "not_recurring", "unchanged"]
    event_id: Optional[UUID] = None


class EventResult(BaseModel):
    event_id: UUID
    status: str
    next_due_date: Optional[date] = None
    created_item_id: Optional[UUID] = None
    already_processed: bool = False
    warning: Optional[str] = None


class ProcessEventsResponse(BaseModel):
    """Summary of a queue drain."""

    processed: int = 0
    ended: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[EventResult] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    version: str
    database_connected: bool


class ErrorResponse(BaseModel):
    """Standard error response."""

    error_type: str = Field(..., description="Error category")
    message: str = Field(..., description="Human-readable error")
    details: Optional[dict[str, Any]] = Field(None, description="Additional context")
    retryable: bool = Field(False, description="Whether retry may succeed")
