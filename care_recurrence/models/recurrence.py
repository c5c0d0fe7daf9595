"""
Recurrence persistence models.

Entities:
- RecurrenceRuleRecord: Flat storage row for one item's recurrence rule
- MaterializedOccurrence: Ledger of occurrences created, one per idempotency key
- CompletionEvent: Outbox of completion events awaiting processing

The idempotency key throughout is (parent_item_id, anchor_date).
"""

import uuid
from datetime import date, datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from care_recurrence.models.base import BaseModel, GUID, get_json_type

if TYPE_CHECKING:
    from care_recurrence.models.items import CareItem


EVENT_PENDING = "pending"
EVENT_PROCESSED = "processed"
EVENT_ENDED = "ended"
EVENT_FAILED = "failed"
EVENT_INVALID = "invalid"
EVENT_STATUSES = (EVENT_PENDING, EVENT_PROCESSED, EVENT_ENDED, EVENT_FAILED, EVENT_INVALID)


class RecurrenceRuleRecord(BaseModel):
    """
    Stored recurrence rule.

    Kept flat to match the editing form; the engine only ever sees the
    validated RecurrenceRule built from it by the rule store. One rule per
    parent item, deleted with it.
    """

    __tablename__ = "recurrence_rules"

    parent_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("care_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        doc="Series parent item owning this rule"
    )

    group_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False)
    created_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    # Pattern
    pattern_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Pattern: 'daily', 'weekly', 'monthly', 'yearly'"
    )

    interval_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    weekly_days: Mapped[Optional[list]] = mapped_column(
        get_json_type(),
        nullable=True,
        doc="Sunday-first weekday ordinals (0-6)"
    )

    monthly_day_of_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    monthly_nth_weekday: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    monthly_weekday: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    yearly_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    yearly_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # End condition
    end_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="never",
        doc="End: 'never', 'after_occurrences', 'until_date'"
    )

    end_after_occurrences: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_until_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    anchor_policy: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="due_date",
        doc="Anchor: 'due_date', 'completion_date', 'later_of'"
    )

    created_on: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Calendar date the rule was created (until dates must be later)"
    )

    # Mutable series state, advanced only by the materializer
    created_occurrences: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_occurrence_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    parent_item: Mapped["CareItem"] = relationship(
        "CareItem",
        back_populates="recurrence_rule",
    )

    __table_args__ = (
        CheckConstraint("interval_value >= 1", name="ck_rule_interval_positive"),
        CheckConstraint("created_occurrences >= 0", name="ck_rule_occurrences_non_negative"),
        Index("idx_rule_group", "group_id"),
    )

    def to_raw(self) -> dict:
        """Flat rule fields, in the shape the validator accepts."""
        return {
            "pattern_type": self.pattern_type,
            "interval_value": self.interval_value,
            "weekly_days": list(self.weekly_days) if self.weekly_days else None,
            "monthly_day_of_month": self.monthly_day_of_month,
            "monthly_nth_weekday": self.monthly_nth_weekday,
            "monthly_weekday": self.monthly_weekday,
            "yearly_month": self.yearly_month,
            "yearly_day": self.yearly_day,
            "end_type": self.end_type,
            "end_after_occurrences": self.end_after_occurrences,
            "end_until_date": self.end_until_date,
            "anchor_policy": self.anchor_policy,
        }

    def __repr__(self) -> str:
        return (
            f"<RecurrenceRuleRecord(parent={self.parent_item_id}, pattern='{self.pattern_type}', "
            f"created={self.created_occurrences})>"
        )


class MaterializedOccurrence(BaseModel):
    """
    One occurrence created for one completion.

    The unique key guarantees at most one occurrence per
    (parent_item_id, anchor_date), however often the trigger is delivered.
    """

    __tablename__ = "materialized_occurrences"

    parent_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("care_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    anchor_date: Mapped[date] = mapped_column(Date, nullable=False)

    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("care_items.id", ondelete="SET NULL"),
        nullable=True,
        doc="Occurrence created (NULL if it was later deleted)"
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("parent_item_id", "anchor_date", name="uq_materialized_key"),
    )


class CompletionEvent(BaseModel):
    """
    Completion of a recurring item, queued for materialization.

    Written in the same transaction as the completion itself; consumed
    idempotently with at-least-once delivery.
    """

    __tablename__ = "completion_events"

    parent_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("care_items.id", ondelete="CASCADE"),
        nullable=False,
        doc="Series parent whose rule is advanced"
    )

    source_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("care_items.id", ondelete="SET NULL"),
        nullable=True,
        doc="Occurrence that was completed"
    )

    anchor_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EVENT_PENDING,
        doc="Status: 'pending', 'processed', 'ended', 'failed', 'invalid'"
    )

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    next_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("parent_item_id", "anchor_date", name="uq_completion_event_key"),
        Index("idx_completion_event_status", "status"),
    )

    @property
    def is_settled(self) -> bool:
        """True once nothing is left to do for this event."""
        return self.status in (EVENT_PROCESSED, EVENT_ENDED)

    def __repr__(self) -> str:
        return (
            f"<CompletionEvent(parent={self.parent_item_id}, anchor={self.anchor_date}, "
            f"status='{self.status}')>"
        )
