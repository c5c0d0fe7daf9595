"""
Occurrence materializer.

Turns a NextOccurrence outcome into exactly one new care item, however many
times the same completion is delivered.

One transaction per call:
1. Look up the ledger for (parent_item_id, anchor_date); a hit means done.
2. Advance the rule's counters with a conditional UPDATE keyed on the
   ``last_occurrence_date`` the caller read. Zero rows updated means another
   writer got there first.
3. Insert the new item (template fields, links) and the ledger row.
4. Commit.

A stale counter update or a ledger unique violation rolls back and reports
``already_processed``. Database failures roll back and raise
MaterializationError, which is retryable with the same key.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from care_recurrence.exceptions import MaterializationError
from care_recurrence.models.items import STATUS_OPEN, CareItem, ItemContact, ItemDocument
from care_recurrence.models.recurrence import MaterializedOccurrence, RecurrenceRuleRecord
from care_recurrence.recurrence.rules import RecurrenceRule
from care_recurrence.recurrence.scheduler import NextOccurrence
from care_recurrence.services.queries import get_materialized_occurrence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterializationResult:
    """Outcome of a materialize call; both statuses are successes."""

    status: Literal["created", "already_processed"]
    parent_item_id: UUID
    anchor_date: date
    item_id: Optional[UUID]
    due_date: Optional[date]
    created_occurrences: Optional[int] = None
    last_occurrence_date: Optional[date] = None

    @property
    def created(self) -> bool:
        return self.status == "created"


class OccurrenceMaterializer:
    """
    Persists the next occurrence of a series.

    The session is owned by the caller; the materializer commits or rolls
    back its own unit of work on it.
    """

    def __init__(self, session: Session):
        self.session = session

    def materialize(
        self,
        outcome: NextOccurrence,
        parent_item: CareItem,
        rule: RecurrenceRule,
        anchor_date: date,
    ) -> MaterializationResult:
        """
        Create the occurrence described by ``outcome``.

        Args:
            outcome: Scheduler outcome to persist
            parent_item: Series parent whose template fields are copied
            rule: Rule as read by the caller (its counters are the expected state)
            anchor_date: Anchor the outcome was computed from (idempotency key)

        Returns:
            MaterializationResult, ``created`` or ``already_processed``

        Raises:
            MaterializationError: If the database write fails
        """
        parent_id = parent_item.id

        try:
            existing = get_materialized_occurrence(self.session, parent_id, anchor_date)
            if existing is not None:
                logger.info(
                    f"Occurrence for item {parent_id} anchored {anchor_date} already exists "
                    f"(item {existing.item_id})"
                )
                return self._already_processed(parent_id, anchor_date, existing)

            if not self._advance_rule_counters(rule, outcome.due_date):
                self.session.rollback()
                logger.info(
                    f"Rule for item {parent_id} was advanced concurrently; "
                    f"skipping occurrence anchored {anchor_date}"
                )
                existing = get_materialized_occurrence(self.session, parent_id, anchor_date)
                return self._already_processed(parent_id, anchor_date, existing)

            new_item = self._create_item(parent_item, outcome.due_date)
            self.session.add(
                MaterializedOccurrence(
                    parent_item_id=parent_id,
                    anchor_date=anchor_date,
                    item_id=new_item.id,
                    due_date=outcome.due_date,
                )
            )
            self.session.commit()

        except IntegrityError:
            # Concurrent writer inserted the same ledger key first
            self.session.rollback()
            existing = get_materialized_occurrence(self.session, parent_id, anchor_date)
            return self._already_processed(parent_id, anchor_date, existing)

        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(f"Failed to materialize occurrence for item {parent_id}: {e}")
            raise MaterializationError(
                f"Could not create the next occurrence of item {parent_id}",
                original_error=e,
            ) from e

        advanced = rule.advanced(outcome.due_date)
        logger.info(
            f"Created occurrence {new_item.id} of item {parent_id} due {outcome.due_date} "
            f"({advanced.created_occurrences} created so far)"
        )
        return MaterializationResult(
            status="created",
            parent_item_id=parent_id,
            anchor_date=anchor_date,
            item_id=new_item.id,
            due_date=outcome.due_date,
            created_occurrences=advanced.created_occurrences,
            last_occurrence_date=advanced.last_occurrence_date,
        )

    def _advance_rule_counters(self, rule: RecurrenceRule, due_date: date) -> bool:
        """
        Conditionally bump the counters; False if the row changed since it was read.
        """
        conditions = [RecurrenceRuleRecord.id == rule.id]
        if rule.last_occurrence_date is None:
            conditions.append(RecurrenceRuleRecord.last_occurrence_date.is_(None))
        else:
            conditions.append(RecurrenceRuleRecord.last_occurrence_date == rule.last_occurrence_date)

        stmt = (
            update(RecurrenceRuleRecord)
            .where(*conditions)
            .values(
                created_occurrences=RecurrenceRuleRecord.created_occurrences + 1,
                last_occurrence_date=due_date,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def _create_item(self, parent_item: CareItem, due_date: date) -> CareItem:
        """Copy the parent's template into a fresh open item with its links."""
        new_item = CareItem(
            **parent_item.template_values(),
            due_date=due_date,
            status=STATUS_OPEN,
            completed_at=None,
            completed_by_user_id=None,
            series_parent_id=parent_item.id,
        )
        new_item.contacts = [ItemContact(contact_id=link.contact_id) for link in parent_item.contacts]
        new_item.documents = [
            ItemDocument(document_id=link.document_id, created_by_user_id=link.created_by_user_id)
            for link in parent_item.documents
        ]
        self.session.add(new_item)
        self.session.flush()
        return new_item

    def _already_processed(
        self,
        parent_id: UUID,
        anchor_date: date,
        existing: Optional[MaterializedOccurrence],
    ) -> MaterializationResult:
        return MaterializationResult(
            status="already_processed",
            parent_item_id=parent_id,
            anchor_date=anchor_date,
            item_id=existing.item_id if existing else None,
            due_date=existing.due_date if existing else None,
        )
