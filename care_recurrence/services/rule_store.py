"""
Rule store.

Converts between the flat ``recurrence_rules`` row and the validated
RecurrenceRule, and implements create/replace/remove of an item's rule.
Rules always live on the series parent: editing recurrence from a generated
occurrence edits its parent's rule.
"""

import logging
from datetime import date
from typing import Any, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from care_recurrence.config import get_settings
from care_recurrence.exceptions import RuleNotFoundError
from care_recurrence.models.recurrence import RecurrenceRuleRecord
from care_recurrence.recurrence.rules import (
    AfterOccurrences,
    DayOfMonth,
    MonthlyPattern,
    RecurrenceRule,
    UntilDate,
    WeeklyPattern,
    YearlyPattern,
)
from care_recurrence.recurrence.validation import validate_rule
from care_recurrence.services.queries import get_rule_record, require_item

logger = logging.getLogger(__name__)


def rule_from_record(record: RecurrenceRuleRecord) -> RecurrenceRule:
    """
    Build the engine's rule from a stored row.

    Raises:
        RuleValidationError: If the stored row is inconsistent
    """
    return validate_rule(
        record.to_raw(),
        parent_item_id=record.parent_item_id,
        group_id=record.group_id,
        created_on=record.created_on,
        rule_id=record.id,
        created_occurrences=record.created_occurrences,
        last_occurrence_date=record.last_occurrence_date,
    )


def rule_to_raw(rule: RecurrenceRule) -> dict[str, Any]:
    """Flat fields of a rule; columns it does not use are None."""
    raw: dict[str, Any] = {
        "pattern_type": rule.pattern_type.value,
        "interval_value": rule.interval_value,
        "weekly_days": None,
        "monthly_day_of_month": None,
        "monthly_nth_weekday": None,
        "monthly_weekday": None,
        "yearly_month": None,
        "yearly_day": None,
        "end_type": rule.end_type.value,
        "end_after_occurrences": None,
        "end_until_date": None,
        "anchor_policy": rule.anchor_policy.value,
    }

    pattern = rule.pattern
    if isinstance(pattern, WeeklyPattern):
        raw["weekly_days"] = pattern.sorted_days
    elif isinstance(pattern, MonthlyPattern):
        if isinstance(pattern.position, DayOfMonth):
            raw["monthly_day_of_month"] = pattern.position.day_of_month
        else:
            raw["monthly_nth_weekday"] = pattern.position.nth_occurrence
            raw["monthly_weekday"] = pattern.position.weekday
    elif isinstance(pattern, YearlyPattern):
        raw["yearly_month"] = pattern.month
        raw["yearly_day"] = pattern.day

    end = rule.end_condition
    if isinstance(end, AfterOccurrences):
        raw["end_after_occurrences"] = end.count
    elif isinstance(end, UntilDate):
        raw["end_until_date"] = end.until

    return raw


def apply_rule_to_record(rule: RecurrenceRule, record: RecurrenceRuleRecord) -> None:
    """
    Write a rule's definition into a row, clearing columns it does not use.

    Counters are not touched; they belong to the materializer.
    """
    record.parent_item_id = rule.parent_item_id
    record.group_id = rule.group_id
    for column, value in rule_to_raw(rule).items():
        setattr(record, column, value)


def get_rule_for_item(session: Session, item_id: UUID) -> Optional[RecurrenceRule]:
    """
    Get the rule governing an item's series.

    Args:
        session: Database session
        item_id: Series parent or any generated occurrence

    Returns:
        RecurrenceRule or None if the item is not recurring

    Raises:
        ItemNotFoundError: If the item does not exist
    """
    item = require_item(session, item_id)
    record = get_rule_record(session, item.series_root_id)
    return rule_from_record(record) if record is not None else None


def save_rule_for_item(
    session: Session,
    item_id: UUID,
    raw: Mapping[str, Any],
    created_by_user_id: Optional[UUID] = None,
    today: Optional[date] = None,
) -> RecurrenceRule:
    """
    Create or replace the rule of an item's series.

    Editing keeps ``created_occurrences`` and ``last_occurrence_date`` and the
    original creation date.

    Args:
        session: Database session
        item_id: Series parent or any generated occurrence
        raw: Flat rule fields from the editing form
        created_by_user_id: User saving the rule (new rules only)
        today: Creation date for new rules (defaults to today in the configured timezone)

    Returns:
        The saved RecurrenceRule

    Raises:
        ItemNotFoundError: If the item does not exist
        RuleValidationError: If the input is invalid; nothing is written
    """
    item = require_item(session, item_id)
    parent_id = item.series_root_id
    record = get_rule_record(session, parent_id)

    if record is None:
        created_on = today or get_settings().today()
        rule = validate_rule(
            raw,
            parent_item_id=parent_id,
            group_id=item.group_id,
            created_on=created_on,
        )
        record = RecurrenceRuleRecord(
            created_on=created_on,
            created_by_user_id=created_by_user_id,
            created_occurrences=0,
        )
        apply_rule_to_record(rule, record)
        session.add(record)
        session.flush()
        logger.info(f"Created recurrence rule for item {parent_id}: {rule.describe()}")
    else:
        rule = validate_rule(
            raw,
            parent_item_id=parent_id,
            group_id=record.group_id,
            created_on=record.created_on,
            rule_id=record.id,
            created_occurrences=record.created_occurrences,
            last_occurrence_date=record.last_occurrence_date,
        )
        apply_rule_to_record(rule, record)
        session.flush()
        logger.info(f"Updated recurrence rule for item {parent_id}: {rule.describe()}")

    return rule.model_copy(update={"id": record.id})


def delete_rule_for_item(session: Session, item_id: UUID) -> None:
    """
    Remove recurrence from an item's series.

    Occurrences already created stay; no further ones are produced.

    Raises:
        ItemNotFoundError: If the item does not exist
        RuleNotFoundError: If the series has no rule
    """
    item = require_item(session, item_id)
    record = get_rule_record(session, item.series_root_id)
    if record is None:
        raise RuleNotFoundError(f"Item {item_id} is not recurring")

    session.delete(record)
    session.flush()
    logger.info(f"Removed recurrence rule from item {item.series_root_id}")
