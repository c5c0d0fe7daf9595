"""
Unit tests for API endpoints.

Tests endpoint behavior using FastAPI TestClient against the in-memory
test database.
"""

import uuid
from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from care_recurrence.api.dependencies import get_app_settings, get_db_session, get_session_factory
from care_recurrence.api.main import app
from care_recurrence.models.items import CareItem
from care_recurrence.models.recurrence import EVENT_PROCESSED, CompletionEvent
from care_recurrence.services.completion import complete_item
from care_recurrence.services.queries import get_rule_record, get_series_items

WEEKLY = {"pattern_type": "weekly", "interval_value": 1, "weekly_days": [1, 3, 5], "end_type": "never"}


@pytest.fixture
def client(db_session, session_factory, test_settings):
    """Test client bound to the test session and settings."""

    def _get_db_session():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db_session] = _get_db_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_app_settings] = lambda: test_settings

    yield TestClient(app)

    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Test /health endpoint."""

    def test_health_check(self, client):
        """Test health check returns healthy status."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["database_connected"] is True

    def test_health_check_database_down(self, client, db_session):
        failure = OperationalError("SELECT 1", {}, Exception("unable to open database file"))
        with patch.object(db_session, "execute", side_effect=failure):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"
        assert response.json()["database_connected"] is False

    def test_health_check_has_request_id(self, client):
        """Test health check includes request ID header."""
        response = client.get("/health")

        assert "X-Request-ID" in response.headers

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"


class TestRuleEndpoints:
    """Test /items/{item_id}/recurrence endpoints."""

    def test_save_rule(self, client, db_session, sample_item, test_settings):
        response = client.put(f"/items/{sample_item.id}/recurrence", json=WEEKLY)

        assert response.status_code == 200
        data = response.json()
        assert data["parent_item_id"] == str(sample_item.id)
        assert data["pattern_type"] == "weekly"
        assert data["weekly_days"] == [1, 3, 5]
        assert data["anchor_policy"] == "due_date"
        assert data["created_occurrences"] == 0
        assert data["created_on"] == test_settings.today().isoformat()
        assert data["description"] == "Every week on Monday, Wednesday, Friday"
        assert get_rule_record(db_session, sample_item.id) is not None

    def test_save_rule_records_user_from_header(self, client, db_session, sample_item):
        user_id = uuid.uuid4()

        client.put(f"/items/{sample_item.id}/recurrence", json=WEEKLY, headers={"X-User-ID": str(user_id)})

        assert get_rule_record(db_session, sample_item.id).created_by_user_id == user_id

    def test_rejected_rule(self, client, db_session, sample_item):
        """Invalid input returns every field error and writes nothing."""
        response = client.put(
            f"/items/{sample_item.id}/recurrence",
            json={"pattern_type": "weekly", "interval_value": 0, "weekly_days": [], "end_type": "never"},
        )

        assert response.status_code == 422
        data = response.json()
        assert data["status"] == "rejected"
        assert {error["field"] for error in data["field_errors"]} == {"interval_value", "weekly_days"}
        assert get_rule_record(db_session, sample_item.id) is None

    def test_rejected_until_date_in_past(self, client, sample_item):
        response = client.put(
            f"/items/{sample_item.id}/recurrence",
            json={"pattern_type": "daily", "interval_value": 1, "end_type": "until_date", "end_until_date": "2020-01-01"},
        )

        assert response.status_code == 422
        assert response.json()["field_errors"][0]["field"] == "end_until_date"

    def test_save_rule_unknown_item(self, client):
        response = client.put(f"/items/{uuid.uuid4()}/recurrence", json=WEEKLY)

        assert response.status_code == 404
        assert response.json()["error_type"] == "not_found"

    def test_get_rule(self, client, sample_item, weekly_rule):
        response = client.get(f"/items/{sample_item.id}/recurrence")

        assert response.status_code == 200
        assert response.json()["id"] == str(weekly_rule.id)

    def test_get_rule_not_recurring(self, client, sample_item):
        response = client.get(f"/items/{sample_item.id}/recurrence")

        assert response.status_code == 404
        assert response.json()["error_type"] == "not_found"

    def test_delete_rule(self, client, db_session, sample_item, weekly_rule):
        response = client.delete(f"/items/{sample_item.id}/recurrence")

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        assert response.json()["parent_item_id"] == str(sample_item.id)
        assert client.get(f"/items/{sample_item.id}/recurrence").status_code == 404

    def test_delete_rule_not_recurring(self, client, sample_item):
        assert client.delete(f"/items/{sample_item.id}/recurrence").status_code == 404

    def test_next_occurrence_of_stored_rule(self, client, sample_item, weekly_rule):
        response = client.get(f"/items/{sample_item.id}/recurrence/next", params={"limit": 3})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "scheduled"
        assert data["next_due_date"] == "2024-01-03"
        assert data["upcoming"] == ["2024-01-05", "2024-01-08"]
        assert data["updated_rule"] == {"created_occurrences": 1, "last_occurrence_date": "2024-01-03"}

    def test_next_occurrence_writes_nothing(self, client, db_session, sample_item, weekly_rule):
        client.get(f"/items/{sample_item.id}/recurrence/next")

        assert get_series_items(db_session, sample_item.id) == []
        assert get_rule_record(db_session, sample_item.id).created_occurrences == 0


class TestPreviewEndpoint:
    """Test POST /recurrence/preview."""

    def test_scheduled(self, client):
        response = client.post(
            "/recurrence/preview",
            json={
                "pattern_type": "daily",
                "interval_value": 2,
                "end_type": "never",
                "anchor_date": "2024-01-01",
                "limit": 3,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "scheduled"
        assert data["next_due_date"] == "2024-01-03"
        assert data["upcoming"] == ["2024-01-05", "2024-01-07"]
        assert data["description"] == "Every 2 days"

    def test_ended(self, client):
        response = client.post(
            "/recurrence/preview",
            json={
                "pattern_type": "daily",
                "interval_value": 2,
                "end_type": "until_date",
                "end_until_date": "2024-01-02",
                "created_on": "2023-12-01",
                "anchor_date": "2024-01-01",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ended"
        assert data["next_due_date"] is None
        assert data["reason"]

    def test_rejected(self, client):
        response = client.post(
            "/recurrence/preview",
            json={"pattern_type": "weekly", "interval_value": 1, "end_type": "never", "anchor_date": "2024-01-01"},
        )

        assert response.status_code == 422
        assert response.json() == {
            "status": "rejected",
            "field_errors": [{"field": "weekly_days", "message": "select at least one weekday"}],
        }

    def test_limit_is_capped(self, client, test_settings):
        response = client.post(
            "/recurrence/preview",
            json={
                "pattern_type": "daily",
                "interval_value": 1,
                "end_type": "never",
                "anchor_date": "2024-01-01",
                "limit": 100,
            },
        )

        assert len(response.json()["upcoming"]) == test_settings.preview_max_occurrences - 1

    def test_missing_anchor_date(self, client):
        response = client.post("/recurrence/preview", json=WEEKLY)

        assert response.status_code == 422


class TestCompleteEndpoint:
    """Test POST /items/{item_id}/complete."""

    def test_complete_non_recurring(self, client, db_session, sample_item):
        response = client.post(f"/items/{sample_item.id}/complete")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "done"
        assert data["next_occurrence"] == "not_recurring"
        assert data["event_id"] is None

    def test_complete_creates_next_occurrence_in_background(self, client, db_session, sample_item, weekly_rule):
        response = client.post(f"/items/{sample_item.id}/complete")

        data = response.json()
        assert data["next_occurrence"] == "queued"

        db_session.expire_all()
        event = db_session.get(CompletionEvent, uuid.UUID(data["event_id"]))
        assert event.status == EVENT_PROCESSED
        items = get_series_items(db_session, sample_item.id)
        assert [item.due_date for item in items] == [date(2024, 1, 3)]
        assert items[0].title == "Refill prescriptions"

    def test_complete_twice(self, client, db_session, sample_item, weekly_rule):
        client.post(f"/items/{sample_item.id}/complete")
        response = client.post(f"/items/{sample_item.id}/complete")

        assert response.json()["already_done"] is True
        assert response.json()["next_occurrence"] == "unchanged"
        db_session.expire_all()
        assert len(get_series_items(db_session, sample_item.id)) == 1

    def test_complete_with_body(self, client, db_session, sample_item):
        user_id = uuid.uuid4()

        client.post(
            f"/items/{sample_item.id}/complete",
            json={"user_id": str(user_id), "completed_at": "2024-01-01T15:30:00Z"},
        )

        db_session.expire_all()
        item = db_session.get(CareItem, sample_item.id)
        assert item.completed_by_user_id == user_id
        assert item.completed_at.date() == date(2024, 1, 1)

    def test_malformed_user_header_is_ignored(self, client, db_session, sample_item):
        response = client.post(f"/items/{sample_item.id}/complete", headers={"X-User-ID": "not-a-uuid"})

        assert response.status_code == 200
        db_session.expire_all()
        assert db_session.get(CareItem, sample_item.id).completed_by_user_id is None

    def test_complete_unknown_item(self, client):
        response = client.post(f"/items/{uuid.uuid4()}/complete")

        assert response.status_code == 404

    def test_background_failure_does_not_fail_completion(self, client, db_session, sample_item, weekly_rule):
        with patch(
            "care_recurrence.services.completion.OccurrenceMaterializer.materialize",
            side_effect=RuntimeError("disk full"),
        ):
            response = client.post(f"/items/{sample_item.id}/complete")

        assert response.status_code == 200
        assert response.json()["next_occurrence"] == "queued"
        db_session.expire_all()
        assert db_session.get(CareItem, sample_item.id).is_done


class TestProcessEventsEndpoint:
    """Test POST /recurrence/events/process."""

    def test_process_pending(self, client, db_session, sample_item, weekly_rule, test_settings):
        complete_item(db_session, sample_item.id, settings=test_settings)

        response = client.post("/recurrence/events/process")

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 1
        assert data["failed"] == 0
        assert data["results"][0]["next_due_date"] == "2024-01-03"

    def test_nothing_to_process(self, client):
        response = client.post("/recurrence/events/process", json={"limit": 10})

        assert response.json() == {"processed": 0, "ended": 0, "failed": 0, "skipped": 0, "results": []}

    def test_limit_validated(self, client):
        assert client.post("/recurrence/events/process", json={"limit": 0}).status_code == 422
