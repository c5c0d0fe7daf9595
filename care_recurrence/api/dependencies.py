"""
FastAPI dependency injection providers.

Provides database sessions, the session factory used by background work,
settings, and user context.
"""

import logging
from typing import Callable, Generator, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from care_recurrence.config import Settings, get_settings
from care_recurrence.database import SessionLocal, get_db

logger = logging.getLogger(__name__)


def get_db_session() -> Generator[Session, None, None]:
    """
    Dependency injection for database session.

    Yields a request-scoped session; committed on success, rolled back on error.
    """
    yield from get_db()


def get_session_factory() -> Callable[[], Session]:
    """
    Dependency injection for the session factory.

    Background tasks outlive the request session and open their own.
    """
    return SessionLocal


def get_app_settings() -> Settings:
    """Dependency injection for settings."""
    return get_settings()


def resolve_user_id(
    request_user_id: Optional[UUID],
    header_user_id: Optional[str],
) -> Optional[UUID]:
    """
    Resolve the acting user from request body or header.

    Priority: request body > header > anonymous

    Args:
        request_user_id: User ID from request body
        header_user_id: User ID from X-User-ID header

    Returns:
        User ID or None
    """
    if request_user_id is not None:
        return request_user_id
    if header_user_id:
        try:
            return UUID(header_user_id)
        except ValueError:
            logger.warning(f"Ignoring malformed X-User-ID header: {header_user_id!r}")
    return None
