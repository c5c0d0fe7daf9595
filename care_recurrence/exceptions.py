"""
Custom exceptions for recurrence operations.

Provides structured error handling with retryable flags.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    """A single field-level problem found while validating a rule."""

    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class RecurrenceError(Exception):
    """Base exception for recurrence operations."""

    retryable: bool = False

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class RuleValidationError(RecurrenceError):
    """
    Rule input rejected at creation/edit time.

    Carries every field error found, not just the first one.
    """

    retryable = False

    def __init__(self, field_errors: list[FieldError]):
        fields = ", ".join(sorted({error.field for error in field_errors}))
        super().__init__(f"Invalid recurrence rule ({fields})")
        self.field_errors = list(field_errors)


class ItemNotFoundError(RecurrenceError):
    """
    Task/appointment row not found.

    Causes:
    - Item ID is invalid
    - Item was deleted (hard or soft)
    """

    retryable = False


class RuleNotFoundError(RecurrenceError):
    """The item has no recurrence rule attached."""

    retryable = False


class MaterializationError(RecurrenceError):
    """
    Persisting the next occurrence failed.

    Causes:
    - Database unavailable or connection dropped
    - Transaction aborted by the database

    Retryable; retries must reuse the same (parent_item_id, anchor_date) key.
    """

    retryable = True
