"""Anchor date resolution for a completed occurrence."""

from datetime import date
from typing import Optional

from care_recurrence.recurrence.rules import AnchorPolicy


def resolve_anchor(
    policy: AnchorPolicy,
    due_date: Optional[date],
    completed_on: date,
    last_occurrence_date: Optional[date] = None,
) -> date:
    """
    Pick the date the next occurrence is computed from.

    Items without a due date always anchor on their completion date.
    Completion-based anchors never fall before the series' latest generated
    due date, so two occurrences completed on the same day still get
    distinct anchors.

    Args:
        policy: Anchor policy fixed when the series started
        due_date: Due date of the occurrence just completed
        completed_on: Calendar date it was marked done
        last_occurrence_date: Due date of the newest generated occurrence, if any

    Returns:
        Anchor date
    """
    if due_date is not None and policy == AnchorPolicy.DUE_DATE:
        return due_date

    if due_date is None or policy == AnchorPolicy.COMPLETION_DATE:
        anchor = completed_on
    else:
        # Overdue items re-anchor on the completion date
        anchor = max(due_date, completed_on)

    if last_occurrence_date is not None:
        anchor = max(anchor, last_occurrence_date)
    return anchor
