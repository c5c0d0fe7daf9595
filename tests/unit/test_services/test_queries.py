"""
Unit tests for the queries service.

Tests item, rule, ledger and completion-queue lookups.
"""

import uuid
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import update

from care_recurrence.exceptions import ItemNotFoundError
from care_recurrence.models.items import CareItem
from care_recurrence.models.recurrence import (
    EVENT_ENDED,
    EVENT_FAILED,
    EVENT_INVALID,
    EVENT_PENDING,
    EVENT_PROCESSED,
    CompletionEvent,
    MaterializedOccurrence,
    RecurrenceRuleRecord,
)
from care_recurrence.services.queries import (
    get_completion_event,
    get_events_to_process,
    get_item_by_id,
    get_materialized_occurrence,
    get_rule_record,
    get_series_items,
    require_item,
)


@pytest.fixture
def series(db_session, sample_item):
    """Three occurrences generated from the sample item, inserted out of order."""
    items = [
        CareItem(**sample_item.template_values(), due_date=due, series_parent_id=sample_item.id)
        for due in (date(2024, 1, 5), date(2024, 1, 3), date(2024, 1, 8))
    ]
    db_session.add_all(items)
    db_session.commit()
    return items


class TestItemQueries:
    """Test item lookups."""

    def test_get_item_by_id(self, db_session, sample_item):
        item = get_item_by_id(db_session, sample_item.id)

        assert item.id == sample_item.id
        assert len(item.contacts) == 1
        assert len(item.documents) == 1

    def test_soft_deleted_item_excluded(self, db_session, sample_item):
        sample_item.deleted_at = datetime.now(timezone.utc)
        db_session.commit()

        assert get_item_by_id(db_session, sample_item.id) is None
        assert get_item_by_id(db_session, sample_item.id, include_deleted=True) is not None

    def test_require_item_raises(self, db_session):
        with pytest.raises(ItemNotFoundError):
            require_item(db_session, uuid.uuid4())

    def test_series_items_ordered_by_due_date(self, db_session, sample_item, series):
        due_dates = [item.due_date for item in get_series_items(db_session, sample_item.id)]

        assert due_dates == [date(2024, 1, 3), date(2024, 1, 5), date(2024, 1, 8)]

    def test_series_items_exclude_deleted(self, db_session, sample_item, series):
        series[0].deleted_at = datetime.now(timezone.utc)
        db_session.commit()

        assert len(get_series_items(db_session, sample_item.id)) == 2

    def test_series_items_exclude_parent(self, db_session, sample_item, series):
        assert sample_item.id not in {item.id for item in get_series_items(db_session, sample_item.id)}


class TestRuleQueries:
    """Test rule lookups."""

    def test_no_rule(self, db_session, sample_item):
        assert get_rule_record(db_session, sample_item.id) is None

    def test_get_rule_record(self, db_session, sample_item, weekly_rule):
        assert get_rule_record(db_session, sample_item.id).id == weekly_rule.id

    def test_rereads_counters_changed_behind_the_session(self, db_session, sample_item, weekly_rule):
        db_session.execute(
            update(RecurrenceRuleRecord)
            .where(RecurrenceRuleRecord.id == weekly_rule.id)
            .values(created_occurrences=5)
            .execution_options(synchronize_session=False)
        )

        assert get_rule_record(db_session, sample_item.id).created_occurrences == 5


class TestKeyQueries:
    """Test lookups by (parent_item_id, anchor_date)."""

    def test_materialized_occurrence(self, db_session, sample_item):
        db_session.add(
            MaterializedOccurrence(
                parent_item_id=sample_item.id,
                anchor_date=date(2024, 1, 1),
                due_date=date(2024, 1, 3),
            )
        )
        db_session.commit()

        assert get_materialized_occurrence(db_session, sample_item.id, date(2024, 1, 1)) is not None
        assert get_materialized_occurrence(db_session, sample_item.id, date(2024, 1, 3)) is None

    def test_completion_event(self, db_session, sample_item):
        db_session.add(CompletionEvent(parent_item_id=sample_item.id, anchor_date=date(2024, 1, 1)))
        db_session.commit()

        event = get_completion_event(db_session, sample_item.id, date(2024, 1, 1))
        assert event.status == EVENT_PENDING
        assert get_completion_event(db_session, uuid.uuid4(), date(2024, 1, 1)) is None


class TestEventsToProcess:
    """Test get_events_to_process()."""

    @pytest.fixture
    def events(self, db_session, sample_item):
        statuses = {
            date(2024, 1, 4): EVENT_FAILED,
            date(2024, 1, 1): EVENT_PENDING,
            date(2024, 1, 2): EVENT_PROCESSED,
            date(2024, 1, 3): EVENT_ENDED,
            date(2024, 1, 5): EVENT_INVALID,
        }
        db_session.add_all(
            CompletionEvent(parent_item_id=sample_item.id, anchor_date=anchor, status=status)
            for anchor, status in statuses.items()
        )
        db_session.commit()

    def test_pending_and_failed_only(self, db_session, events):
        """Settled and invalid events are never picked up."""
        anchors = [event.anchor_date for event in get_events_to_process(db_session, limit=10)]

        assert sorted(anchors) == [date(2024, 1, 1), date(2024, 1, 4)]

    def test_exclude_failed(self, db_session, events):
        result = get_events_to_process(db_session, limit=10, include_failed=False)

        assert [event.status for event in result] == [EVENT_PENDING]

    def test_limit(self, db_session, events):
        assert len(get_events_to_process(db_session, limit=1)) == 1
