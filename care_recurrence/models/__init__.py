"""
SQLAlchemy models for the care recurrence service.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

from care_recurrence.models.base import Base, BaseModel, GUID, get_json_type

# Import all models (must be imported for Alembic autogenerate)
from care_recurrence.models.items import CareItem, ItemContact, ItemDocument
from care_recurrence.models.recurrence import (
    CompletionEvent,
    MaterializedOccurrence,
    RecurrenceRuleRecord,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "get_json_type",
    # Item models
    "CareItem",
    "ItemContact",
    "ItemDocument",
    # Recurrence models
    "RecurrenceRuleRecord",
    "MaterializedOccurrence",
    "CompletionEvent",
]
