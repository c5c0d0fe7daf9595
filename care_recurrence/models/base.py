"""
Shared column types and the declarative base.

Every table keys on a UUID stored through ``GUID`` (native UUID on
PostgreSQL, 32-character hex elsewhere) and carries the audit columns of
``BaseModel``. Care items are never hard-deleted by this service; queries
filter on ``deleted_at``.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, JSON, TypeDecorator, func
from sqlalchemy.dialects.postgresql import JSONB, UUID as PostgreSQL_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import CHAR

from care_recurrence.config import get_settings


class GUID(TypeDecorator):
    """UUID column that works on both SQLite and PostgreSQL."""

    impl = CHAR(32)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQL_UUID())
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        """Accept UUIDs or their string form; store str on PostgreSQL, hex elsewhere."""
        if value is None:
            return None

        value = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if dialect.name == "postgresql" else value.hex

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


def get_json_type():
    """JSONB on PostgreSQL, plain JSON otherwise (used for rule weekday lists)."""
    if "postgres" in get_settings().database_url.lower():
        return JSONB
    return JSON


class Base(DeclarativeBase):
    """Declarative base; ``uuid.UUID`` annotations map to GUID."""

    type_annotation_map = {
        uuid.UUID: GUID,
    }


class BaseModel(Base):
    """
    Abstract model with a UUID key and audit timestamps.

    ``deleted_at`` is set by the owning application when an item is removed;
    rows with a value are invisible to every lookup in ``services.queries``.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        primary_key=True,
        default=uuid.uuid4,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        doc="Set when the row is removed; NULL for live rows"
    )
