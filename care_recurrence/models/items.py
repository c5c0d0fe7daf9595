"""
Care item models.

Entities:
- CareItem: A task or appointment scoped to a care group
- ItemContact: Link between an item and an external contact
- ItemDocument: Link between an item and an external document

Contacts, documents, users and care groups live in other services; only their
IDs are stored here.
"""

import uuid
from datetime import date, datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from care_recurrence.models.base import BaseModel, GUID

if TYPE_CHECKING:
    from care_recurrence.models.recurrence import RecurrenceRuleRecord


ITEM_KINDS = ("task", "appointment")

STATUS_OPEN = "open"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DONE = "done"
ITEM_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_DONE)

# Fields copied from a series parent onto each new occurrence
TEMPLATE_FIELDS = (
    "kind",
    "group_id",
    "title",
    "description",
    "priority",
    "category",
    "location",
    "primary_owner_id",
    "secondary_owner_id",
    "created_by_user_id",
)


class CareItem(BaseModel):
    """
    A task or appointment in a care group.

    Recurring series:
    - The item the user made recurring is the series parent; it owns the
      recurrence rule.
    - Every generated occurrence points back to it via ``series_parent_id``.
    - Completing any occurrence of the series advances the parent's rule.
    """

    __tablename__ = "care_items"

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="task",
        doc="Item kind: 'task' or 'appointment'"
    )

    group_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        doc="Care group this item belongs to"
    )

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Item title"
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Detailed description"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=STATUS_OPEN,
        doc="Status: 'open', 'in_progress', 'done'"
    )

    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="medium",
        doc="Priority: 'low', 'medium', 'high'"
    )

    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Free-form category (medication, appointment, errands, ...)"
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        doc="Location for appointments"
    )

    due_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Calendar date the item is due"
    )

    # Assignees and authorship
    primary_owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    secondary_owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    created_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    # Completion
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the item was marked done"
    )

    completed_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        nullable=True,
        doc="User who marked the item done"
    )

    # Series
    series_parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("care_items.id", ondelete="SET NULL"),
        nullable=True,
        doc="Series parent (owner of the recurrence rule) for generated occurrences"
    )

    # Relationships
    series_parent: Mapped[Optional["CareItem"]] = relationship(
        "CareItem",
        remote_side="CareItem.id",
        foreign_keys=[series_parent_id],
        doc="Item this occurrence was generated from"
    )

    recurrence_rule: Mapped[Optional["RecurrenceRuleRecord"]] = relationship(
        "RecurrenceRuleRecord",
        back_populates="parent_item",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
        doc="Recurrence rule (series parents only)"
    )

    contacts: Mapped[list["ItemContact"]] = relationship(
        "ItemContact",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    documents: Mapped[list["ItemDocument"]] = relationship(
        "ItemDocument",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_item_group", "group_id"),
        Index("idx_item_due_date", "due_date"),
        Index("idx_item_status", "status"),
        Index("idx_item_series_parent", "series_parent_id"),
        Index("idx_item_deleted", "deleted_at"),
    )

    @property
    def is_done(self) -> bool:
        return self.status == STATUS_DONE

    @property
    def series_root_id(self) -> uuid.UUID:
        """ID of the item owning this series' rule."""
        return self.series_parent_id or self.id

    def template_values(self) -> dict:
        """Values copied onto the next occurrence."""
        return {field: getattr(self, field) for field in TEMPLATE_FIELDS}

    def __repr__(self) -> str:
        return f"<CareItem(title='{self.title}', due='{self.due_date}', status='{self.status}')>"


class ItemContact(BaseModel):
    """Link between a care item and an external contact."""

    __tablename__ = "item_contacts"

    item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("care_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    contact_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False)

    item: Mapped["CareItem"] = relationship("CareItem", back_populates="contacts")

    __table_args__ = (
        UniqueConstraint("item_id", "contact_id", name="uq_item_contact"),
        Index("idx_item_contact_item", "item_id"),
    )


class ItemDocument(BaseModel):
    """Link between a care item and an external document."""

    __tablename__ = "item_documents"

    item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("care_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    document_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False)

    created_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    item: Mapped["CareItem"] = relationship("CareItem", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("item_id", "document_id", name="uq_item_document"),
        Index("idx_item_document_item", "item_id"),
    )
