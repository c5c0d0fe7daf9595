"""
Pytest configuration and fixtures for care recurrence tests.

Provides database session fixtures and sample items/rules for testing.
"""

import uuid
from datetime import date
from typing import Callable, Generator

import pytest
import sqlalchemy as sa
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from care_recurrence.config import Settings
from care_recurrence.models.base import Base
from care_recurrence.models.items import CareItem, ItemContact, ItemDocument
from care_recurrence.models.recurrence import RecurrenceRuleRecord

GROUP_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
USER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


# Configure SQLite to enforce foreign key constraints in tests
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """
    In-memory SQLite engine shared by every session of one test.

    StaticPool keeps a single connection so background work opened on a
    second session sees the same database.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    try:
        yield engine
    finally:
        # Disable foreign key constraints for drop operations
        with engine.begin() as connection:
            connection.execute(sa.text("PRAGMA foreign_keys=OFF"))
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine: Engine) -> Callable[[], Session]:
    """Session factory bound to the test engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """
    Create a clean database session for each test.

    Uses an in-memory SQLite database that is torn down after each test.

    Yields:
        Session: SQLAlchemy session for database operations
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no retry waits and a fixed timezone."""
    return Settings(
        _env_file=None,
        timezone="UTC",
        materialize_max_attempts=3,
        materialize_retry_backoff_seconds=0,
        materialize_retry_max_wait_seconds=0,
    )


@pytest.fixture
def sample_item(db_session: Session) -> CareItem:
    """
    Create a sample task due Monday 2024-01-01 with a contact and a document.

    Returns:
        CareItem: A persisted open task
    """
    item = CareItem(
        kind="task",
        group_id=GROUP_ID,
        title="Refill prescriptions",
        description="Pick up from the pharmacy on Main St",
        priority="high",
        category="medication",
        due_date=date(2024, 1, 1),
        primary_owner_id=USER_ID,
        created_by_user_id=USER_ID,
    )
    item.contacts = [ItemContact(contact_id=uuid.uuid4())]
    item.documents = [ItemDocument(document_id=uuid.uuid4(), created_by_user_id=USER_ID)]
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def make_rule(db_session: Session) -> Callable[..., RecurrenceRuleRecord]:
    """
    Factory attaching a rule row to an item.

    Defaults to every day, never ending, anchored on the due date; keyword
    arguments override any column.
    """

    def _make(item: CareItem, **overrides) -> RecurrenceRuleRecord:
        values = dict(
            parent_item_id=item.id,
            group_id=item.group_id,
            pattern_type="daily",
            interval_value=1,
            end_type="never",
            anchor_policy="due_date",
            created_on=date(2023, 12, 1),
            created_occurrences=0,
        )
        values.update(overrides)
        record = RecurrenceRuleRecord(**values)
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record

    return _make


@pytest.fixture
def weekly_rule(make_rule, sample_item: CareItem) -> RecurrenceRuleRecord:
    """Monday/Wednesday/Friday weekly rule on the sample item."""
    return make_rule(sample_item, pattern_type="weekly", weekly_days=[1, 3, 5])
