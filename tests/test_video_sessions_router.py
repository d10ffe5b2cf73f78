"""Tests for the video session HTTP API."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from app.main import app as api
from app.routers import video_sessions
from app.services.recurrence_service import RecurrenceResult
from app.utils.dependencies import get_current_active_user
from app.utils.exceptions import (
    InvalidSessionStateError,
    SessionCapacityExceededError,
    SessionConflictError,
    SessionForbiddenError,
    SessionNotFoundError,
    SessionValidationError,
)

SESSION_ID = str(ObjectId())


@pytest.fixture
def mock_user():
    return {"_id": str(ObjectId()), "email": "instructor@learnhub.test", "role": "instructor", "is_active": True}


@pytest.fixture
def session_doc():
    return {
        "_id": ObjectId(SESSION_ID),
        "title": "Week 1 Live Q&A",
        "course_id": str(ObjectId()),
        "scheduled_date": "2025-01-01",
        "scheduled_time": "18:30",
        "duration": 60,
        "max_participants": 25,
        "status": "scheduled",
        "meeting_id": f"session-{SESSION_ID}-1735756200000",
        "meeting_link": f"https://meet.learnhub.com/session-{SESSION_ID}-1735756200000",
        "participants": [],
        "materials": [],
        "created_at": datetime(2025, 1, 1, 12, 0),
        "version": 2,
    }


@pytest.fixture
def session_service(monkeypatch):
    service = MagicMock()
    for name in ("create_session", "list_sessions", "list_student_sessions", "get_session", "update_session",
                 "delete_session", "start_session", "end_session", "add_material", "submit_feedback",
                 "get_analytics"):
        setattr(service, name, AsyncMock())
    monkeypatch.setattr(video_sessions, "video_session_service", service)
    return service


@pytest.fixture
def participation(monkeypatch):
    service = MagicMock()
    service.join_session = AsyncMock()
    service.leave_session = AsyncMock()
    monkeypatch.setattr(video_sessions, "participation_service", service)
    return service


@pytest.fixture
def client(mock_user):
    api.dependency_overrides[get_current_active_user] = lambda: mock_user
    yield TestClient(api)
    api.dependency_overrides.clear()


class TestVideoSessionRouting:
    """Tests for route registration."""

    def test_routes_registered(self):
        routes = [route.path for route in api.routes]

        assert "/video-sessions" in routes
        assert "/video-sessions/student" in routes
        assert "/video-sessions/{session_id}" in routes
        assert "/video-sessions/{session_id}/start" in routes
        assert "/video-sessions/{session_id}/end" in routes
        assert "/video-sessions/{session_id}/join" in routes
        assert "/video-sessions/{session_id}/leave" in routes
        assert "/video-sessions/{session_id}/materials" in routes
        assert "/video-sessions/{session_id}/feedback" in routes
        assert "/video-sessions/{session_id}/analytics" in routes

    def test_requires_authentication(self):
        response = TestClient(api).get("/video-sessions")

        assert response.status_code in (401, 403)


class TestVideoSessionEndpoints:
    """Tests for endpoint request/response handling."""

    def test_create_session(self, client, session_service, session_doc):
        session_service.create_session.return_value = (session_doc, RecurrenceResult())

        response = client.post("/video-sessions", json={
            "title": "Week 1 Live Q&A",
            "course_id": session_doc["course_id"],
            "scheduled_date": "2025-01-01",
            "scheduled_time": "18:30",
            "duration": 60,
            "max_participants": 25,
        })

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["id"] == SESSION_ID
        assert body["data"]["created_at"] == "2025-01-01T12:00:00"
        assert "version" not in body["data"]
        assert "warnings" not in body

    def test_create_reports_failed_occurrences(self, client, session_service, session_doc):
        result = RecurrenceResult(failed=[{"scheduled_date": "2025-01-15", "reason": "duplicate key"}])
        session_service.create_session.return_value = (session_doc, result)

        response = client.post("/video-sessions", json={
            "title": "Week 1 Live Q&A",
            "course_id": session_doc["course_id"],
            "scheduled_date": "2025-01-01",
            "scheduled_time": "18:30",
            "duration": 60,
            "max_participants": 25,
            "is_recurring": True,
            "recurring_pattern": "weekly",
        })

        assert response.status_code == 201
        assert response.json()["warnings"] == ["Occurrence on 2025-01-15 was not created: duplicate key"]

    def test_create_rejects_out_of_range_duration(self, client, session_service):
        response = client.post("/video-sessions", json={
            "title": "Week 1 Live Q&A",
            "course_id": str(ObjectId()),
            "scheduled_date": "2025-01-01",
            "scheduled_time": "18:30",
            "duration": 5,
            "max_participants": 25,
        })

        assert response.status_code == 422
        session_service.create_session.assert_not_called()

    def test_list_sessions(self, client, session_service, session_doc):
        pagination = {"total": 1, "page": 1, "limit": 10, "total_pages": 1, "has_next": False, "has_prev": False}
        session_service.list_sessions.return_value = {"sessions": [session_doc], "pagination": pagination}

        response = client.get("/video-sessions", params={"status": "scheduled", "date_from": "2025-01-01"})

        assert response.status_code == 200
        assert response.json()["pagination"] == pagination
        filters = session_service.list_sessions.call_args.args[0]
        assert filters.status.value == "scheduled"
        assert filters.date_from == "2025-01-01"

    def test_list_rejects_impossible_date(self, client, session_service):
        response = client.get("/video-sessions", params={"date_from": "2025-13-45"})

        assert response.status_code == 422
        session_service.list_sessions.assert_not_called()

    def test_student_route_is_not_a_session_id(self, client, session_service):
        session_service.list_student_sessions.return_value = {
            "sessions": [],
            "pagination": {"total": 0, "page": 1, "limit": 10, "total_pages": 0, "has_next": False, "has_prev": False}
        }

        response = client.get("/video-sessions/student")

        assert response.status_code == 200
        session_service.get_session.assert_not_called()

    def test_start_session_returns_meeting(self, client, session_service, session_doc):
        session_service.start_session.return_value = dict(session_doc, status="live")

        response = client.post(f"/video-sessions/{SESSION_ID}/start")

        assert response.status_code == 200
        assert response.json()["data"] == {
            "meeting_link": session_doc["meeting_link"],
            "meeting_id": session_doc["meeting_id"]
        }

    def test_join_session(self, client, participation, session_doc):
        participation.join_session.return_value = {
            "meeting_link": session_doc["meeting_link"],
            "meeting_id": session_doc["meeting_id"],
            "status": "live"
        }

        response = client.post(f"/video-sessions/{SESSION_ID}/join")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "live"

    def test_delete_session(self, client, session_service):
        session_service.delete_session.return_value = True

        response = client.delete(f"/video-sessions/{SESSION_ID}")

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_feedback_validation(self, client, session_service):
        response = client.post(f"/video-sessions/{SESSION_ID}/feedback", json={"rating": 6})

        assert response.status_code == 422
        session_service.submit_feedback.assert_not_called()


class TestErrorMapping:
    """Tests for domain error rendering."""

    @pytest.mark.parametrize("error, status_code, error_code", [
        (SessionNotFoundError(SESSION_ID), 404, "not_found"),
        (SessionForbiddenError("Access denied"), 403, "forbidden"),
        (InvalidSessionStateError("Cannot delete live sessions"), 409, "invalid_state"),
        (SessionValidationError("recurring_pattern", "required when is_recurring is true"), 422, "validation_error"),
    ])
    def test_domain_errors(self, client, session_service, error, status_code, error_code):
        session_service.get_session.side_effect = error

        response = client.get(f"/video-sessions/{SESSION_ID}")

        assert response.status_code == status_code
        body = response.json()
        assert body["success"] is False
        assert body["error"] == error_code

    def test_capacity_error_names_ceiling(self, client, participation):
        participation.join_session.side_effect = SessionCapacityExceededError(1)

        response = client.post(f"/video-sessions/{SESSION_ID}/join")

        assert response.status_code == 409
        assert response.json()["error"] == "capacity_exceeded"
        assert response.json()["max_participants"] == 1

    def test_conflict_is_retryable(self, client, participation):
        participation.join_session.side_effect = SessionConflictError(SESSION_ID, 5)

        response = client.post(f"/video-sessions/{SESSION_ID}/join")

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"
        assert response.json()["error"] == "conflict"

    def test_unexpected_error_is_500(self, client, session_service):
        session_service.get_analytics.side_effect = RuntimeError("boom")

        response = client.get(f"/video-sessions/{SESSION_ID}/analytics")

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed fetching session analytics"
