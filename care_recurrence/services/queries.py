"""
Query helpers for items, rules and the completion queue.

Provides common query patterns with:
- Soft deletion handling for care items
- Lookups by idempotency key (parent_item_id, anchor_date)
- Queue selection for pending/failed completion events
"""

from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.orm import Session, selectinload

from care_recurrence.exceptions import ItemNotFoundError
from care_recurrence.models.items import CareItem
from care_recurrence.models.recurrence import (
    EVENT_FAILED,
    EVENT_PENDING,
    CompletionEvent,
    MaterializedOccurrence,
    RecurrenceRuleRecord,
)


# =============================================================================
# Item Queries
# =============================================================================


def get_item_by_id(
    session: Session,
    item_id: UUID,
    include_deleted: bool = False,
) -> Optional[CareItem]:
    """
    Get a single care item with its links loaded.

    Args:
        session: Database session
        item_id: Item ID
        include_deleted: Include soft-deleted items

    Returns:
        CareItem or None
    """
    conditions = [CareItem.id == item_id]
    if not include_deleted:
        conditions.append(CareItem.deleted_at.is_(None))

    stmt = (
        select(CareItem)
        .where(and_(*conditions))
        .options(
            selectinload(CareItem.contacts),
            selectinload(CareItem.documents),
        )
    )
    return session.scalars(stmt).first()


def require_item(session: Session, item_id: UUID) -> CareItem:
    """Get a live care item or raise ItemNotFoundError."""
    item = get_item_by_id(session, item_id)
    if item is None:
        raise ItemNotFoundError(f"Item {item_id} not found")
    return item


def get_series_items(session: Session, parent_item_id: UUID) -> Sequence[CareItem]:
    """Live occurrences generated for a series parent, ordered by due date."""
    stmt = (
        select(CareItem)
        .where(
            and_(
                CareItem.series_parent_id == parent_item_id,
                CareItem.deleted_at.is_(None),
            )
        )
        .order_by(CareItem.due_date)
    )
    return session.scalars(stmt).all()


# =============================================================================
# Rule Queries
# =============================================================================


def get_rule_record(session: Session, parent_item_id: UUID) -> Optional[RecurrenceRuleRecord]:
    """
    Rule row owned by a series parent, if any.

    Always re-read from the database: the materializer advances counters with
    a bulk UPDATE that bypasses objects already in the session.
    """
    stmt = (
        select(RecurrenceRuleRecord)
        .where(RecurrenceRuleRecord.parent_item_id == parent_item_id)
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).first()


# =============================================================================
# Idempotency Key Queries
# =============================================================================


def get_materialized_occurrence(
    session: Session,
    parent_item_id: UUID,
    anchor_date: date,
) -> Optional[MaterializedOccurrence]:
    """Ledger row for an idempotency key, if the occurrence was already created."""
    stmt = select(MaterializedOccurrence).where(
        and_(
            MaterializedOccurrence.parent_item_id == parent_item_id,
            MaterializedOccurrence.anchor_date == anchor_date,
        )
    )
    return session.scalars(stmt).first()


def get_completion_event(
    session: Session,
    parent_item_id: UUID,
    anchor_date: date,
) -> Optional[CompletionEvent]:
    """Queued completion event for an idempotency key."""
    stmt = select(CompletionEvent).where(
        and_(
            CompletionEvent.parent_item_id == parent_item_id,
            CompletionEvent.anchor_date == anchor_date,
        )
    )
    return session.scalars(stmt).first()


def get_events_to_process(
    session: Session,
    limit: int,
    include_failed: bool = True,
) -> Sequence[CompletionEvent]:
    """
    Completion events still waiting for materialization, oldest first.

    Args:
        session: Database session
        limit: Maximum events to return
        include_failed: Also return events whose previous run exhausted retries
            (events marked invalid are never returned)

    Returns:
        List of completion events
    """
    statuses = [EVENT_PENDING]
    if include_failed:
        statuses.append(EVENT_FAILED)

    stmt = (
        select(CompletionEvent)
        .where(CompletionEvent.status.in_(statuses))
        .order_by(CompletionEvent.created_at, CompletionEvent.anchor_date)
        .limit(limit)
    )
    return session.scalars(stmt).all()
