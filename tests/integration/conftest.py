"""
Integration test fixtures for the care recurrence service.

Drives complete series through the HTTP API, with completion events
processed by real background tasks on their own sessions.
"""

from typing import Callable

import pytest
from fastapi.testclient import TestClient

from care_recurrence.api.dependencies import get_app_settings, get_db_session, get_session_factory
from care_recurrence.api.main import app


# =============================================================================
# Pytest Markers Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


# =============================================================================
# API Client
# =============================================================================


@pytest.fixture
def api_client(session_factory, test_settings):
    """
    Test client where every request gets a fresh session, like production.

    Background tasks share the in-memory database through the test engine.
    """

    def _get_db_session():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db_session] = _get_db_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_app_settings] = lambda: test_settings

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def complete_series_item(api_client) -> Callable[[str], dict]:
    """Complete an item through the API and return the response body."""

    def _complete(item_id) -> dict:
        response = api_client.post(f"/items/{item_id}/complete")
        assert response.status_code == 200
        return response.json()

    return _complete
