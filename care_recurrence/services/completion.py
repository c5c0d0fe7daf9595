"""
Completion workflow.

Completing an occurrence and creating the next one are decoupled:

- ``complete_item`` marks the item done and, for recurring series, queues a
  CompletionEvent in the same transaction. It never waits on, or fails
  because of, materialization.
- ``process_completion_event`` consumes one queued event: schedule the next
  date, then materialize it with retries. Delivery is at-least-once; the
  (parent_item_id, anchor_date) key keeps it to at most one new occurrence.

Exhausted retries leave the event ``failed`` (picked up again by the next
``process_pending_events`` run) and log a warning for the user-facing layer.
An event whose stored rule no longer validates is marked ``invalid`` and is
not picked up again.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Literal, Optional
from uuid import UUID

from dateutil import tz
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from care_recurrence.config import Settings, get_settings
from care_recurrence.exceptions import MaterializationError, RecurrenceError, RuleValidationError
from care_recurrence.models.items import STATUS_DONE, CareItem
from care_recurrence.models.recurrence import (
    EVENT_ENDED,
    EVENT_FAILED,
    EVENT_INVALID,
    EVENT_PENDING,
    EVENT_PROCESSED,
    CompletionEvent,
)
from care_recurrence.recurrence.anchors import resolve_anchor
from care_recurrence.recurrence.scheduler import NextOccurrence, schedule
from care_recurrence.services.materializer import MaterializationResult, OccurrenceMaterializer
from care_recurrence.services.queries import (
    get_completion_event,
    get_events_to_process,
    get_item_by_id,
    get_rule_record,
    require_item,
)
from care_recurrence.services.rule_store import rule_from_record

logger = logging.getLogger(__name__)

NEXT_OCCURRENCE_FAILED_MESSAGE = "The next occurrence could not be created automatically"


@dataclass(frozen=True)
class CompletionResult:
    """What happened when an item was marked done."""

    item_id: UUID
    already_done: bool
    event_id: Optional[UUID] = None

    @property
    def queued(self) -> bool:
        return self.event_id is not None


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of consuming one completion event."""

    event_id: UUID
    status: Literal["processed", "ended", "failed", "skipped"]
    next_due_date: Optional[date] = None
    created_item_id: Optional[UUID] = None
    already_processed: bool = False
    warning: Optional[str] = None


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    return isinstance(exception, RecurrenceError) and exception.retryable


# =============================================================================
# Completion
# =============================================================================


def complete_item(
    session: Session,
    item_id: UUID,
    completed_by_user_id: Optional[UUID] = None,
    completed_at: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> CompletionResult:
    """
    Mark an item done and queue its series for the next occurrence.

    Completing an item that is already done changes nothing and queues
    nothing.

    Args:
        session: Database session (committed here)
        item_id: Occurrence being completed
        completed_by_user_id: User completing it
        completed_at: Completion time (defaults to now)
        settings: Settings used to resolve the local completion date

    Returns:
        CompletionResult with the queued event ID, if any

    Raises:
        ItemNotFoundError: If the item does not exist
    """
    settings = settings or get_settings()
    item = require_item(session, item_id)

    if item.is_done:
        logger.info(f"Item {item_id} is already done; nothing queued")
        return CompletionResult(item_id=item.id, already_done=True)

    completed_at = completed_at or datetime.now(timezone.utc)
    item.status = STATUS_DONE
    item.completed_at = completed_at
    item.completed_by_user_id = completed_by_user_id

    event = _queue_completion_event(session, item, completed_at, settings)
    session.commit()

    if event is not None:
        logger.info(
            f"Item {item_id} completed; queued event {event.id} "
            f"for series {event.parent_item_id} anchored {event.anchor_date}"
        )
        return CompletionResult(item_id=item.id, already_done=False, event_id=event.id)

    logger.info(f"Item {item_id} completed (not recurring)")
    return CompletionResult(item_id=item.id, already_done=False)


def _queue_completion_event(
    session: Session,
    item: CareItem,
    completed_at: datetime,
    settings: Settings,
) -> Optional[CompletionEvent]:
    parent_id = item.series_root_id
    record = get_rule_record(session, parent_id)
    if record is None:
        return None

    completed_on = _local_date(completed_at, settings)
    anchor = resolve_anchor(
        record.anchor_policy,
        item.due_date,
        completed_on,
        record.last_occurrence_date,
    )

    existing = get_completion_event(session, parent_id, anchor)
    if existing is not None:
        if existing.source_item_id != item.id:
            logger.warning(
                f"Completion of item {item.id} resolves to anchor {anchor} of series {parent_id}, "
                f"already queued by item {existing.source_item_id}"
            )
        return existing

    event = CompletionEvent(
        parent_item_id=parent_id,
        source_item_id=item.id,
        anchor_date=anchor,
        status=EVENT_PENDING,
        attempts=0,
    )
    session.add(event)
    session.flush()
    return event


def _local_date(moment: datetime, settings: Settings) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz.gettz(settings.timezone)).date()


# =============================================================================
# Event Processing
# =============================================================================


def process_completion_event(
    session: Session,
    event_id: UUID,
    settings: Optional[Settings] = None,
) -> ProcessingResult:
    """
    Consume one completion event.

    Safe to call any number of times for the same event.

    Args:
        session: Database session
        event_id: CompletionEvent ID
        settings: Retry configuration

    Returns:
        ProcessingResult; failures are reported in it, never raised
    """
    settings = settings or get_settings()

    event = session.get(CompletionEvent, event_id)
    if event is None:
        logger.warning(f"Completion event {event_id} not found")
        return ProcessingResult(event_id=event_id, status="skipped", warning="event not found")

    if event.is_settled:
        return ProcessingResult(
            event_id=event.id,
            status=event.status,
            next_due_date=event.next_due_date,
            created_item_id=event.created_item_id,
            already_processed=True,
        )

    retrying = Retrying(
        stop=stop_after_attempt(settings.materialize_max_attempts),
        wait=wait_exponential(
            multiplier=settings.materialize_retry_backoff_seconds,
            max=settings.materialize_retry_max_wait_seconds,
        ),
        retry=retry_if_exception(_is_retryable_error),
        reraise=True,
    )

    try:
        result = retrying(_run_event_once, session, event_id)
    except RecurrenceError as e:
        return _mark_failed(session, event_id, e)

    return result


def _run_event_once(session: Session, event_id: UUID) -> ProcessingResult:
    """One attempt; database errors become retryable MaterializationErrors."""
    try:
        return _attempt_event(session, event_id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning(f"Database error while processing completion event {event_id}: {e}")
        raise MaterializationError(
            f"Could not process completion event {event_id}",
            original_error=e,
        ) from e


def _attempt_event(session: Session, event_id: UUID) -> ProcessingResult:
    """Re-read state, schedule, materialize."""
    event = session.get(CompletionEvent, event_id)
    event.attempts += 1
    session.commit()

    parent = get_item_by_id(session, event.parent_item_id)
    record = get_rule_record(session, event.parent_item_id)
    if parent is None or record is None:
        return _mark_ended(session, event, "series parent or rule was removed")

    try:
        rule = rule_from_record(record)
    except RuleValidationError as e:
        logger.error(f"Stored rule for item {event.parent_item_id} is invalid: {e.field_errors}")
        raise

    outcome = schedule(event.anchor_date, rule)
    if not isinstance(outcome, NextOccurrence):
        return _mark_ended(session, event, outcome.reason)

    result = OccurrenceMaterializer(session).materialize(
        outcome,
        parent,
        rule,
        anchor_date=event.anchor_date,
    )
    return _mark_processed(session, event_id, result)


def _mark_processed(
    session: Session,
    event_id: UUID,
    result: MaterializationResult,
) -> ProcessingResult:
    event = session.get(CompletionEvent, event_id)
    event.status = EVENT_PROCESSED
    event.processed_at = datetime.now(timezone.utc)
    event.created_item_id = result.item_id
    event.next_due_date = result.due_date
    event.last_error = None
    session.commit()

    return ProcessingResult(
        event_id=event_id,
        status="processed",
        next_due_date=result.due_date,
        created_item_id=result.item_id,
        already_processed=not result.created,
    )


def _mark_ended(session: Session, event: CompletionEvent, reason: str) -> ProcessingResult:
    event.status = EVENT_ENDED
    event.processed_at = datetime.now(timezone.utc)
    event.last_error = None
    session.commit()

    logger.info(f"Series {event.parent_item_id} ended at anchor {event.anchor_date}: {reason}")
    return ProcessingResult(event_id=event.id, status="ended")


def _mark_failed(session: Session, event_id: UUID, error: RecurrenceError) -> ProcessingResult:
    """
    Record a failed event.

    Retryable failures stay ``failed`` for the next queue run; an invalid
    stored rule cannot succeed on retry, so the event becomes ``invalid``.
    If even this write fails the event keeps its previous status.
    """
    session.rollback()
    try:
        event = session.get(CompletionEvent, event_id)
        event.status = EVENT_FAILED if error.retryable else EVENT_INVALID
        event.last_error = error.message
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Could not record failure of completion event {event_id}: {e}")

    logger.warning(f"{NEXT_OCCURRENCE_FAILED_MESSAGE} (completion event {event_id}): {error.message}")
    return ProcessingResult(
        event_id=event_id,
        status="failed",
        warning=NEXT_OCCURRENCE_FAILED_MESSAGE,
    )


def process_pending_events(
    session: Session,
    limit: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> list[ProcessingResult]:
    """
    Drain queued and previously failed completion events.

    Args:
        session: Database session
        limit: Maximum events to process (defaults to settings.event_batch_size)
        settings: Retry configuration

    Returns:
        One ProcessingResult per event handled
    """
    settings = settings or get_settings()
    limit = limit or settings.event_batch_size

    event_ids = [event.id for event in get_events_to_process(session, limit)]
    if event_ids:
        logger.info(f"Processing {len(event_ids)} completion event(s)")

    return [process_completion_event(session, event_id, settings) for event_id in event_ids]


def process_event_in_background(
    session_factory: Callable[[], Session],
    event_id: UUID,
    settings: Optional[Settings] = None,
) -> None:
    """
    Fire-and-forget entry point for one completion event.

    Runs after the completing request has returned, on its own session.
    Nothing is raised: failures stay on the event and in the log, and
    ``process_pending_events`` picks them up later.
    """
    session = session_factory()
    try:
        process_completion_event(session, event_id, settings)
    except Exception as e:
        session.rollback()
        logger.error(f"Background processing of completion event {event_id} failed: {e}", exc_info=True)
    finally:
        session.close()
