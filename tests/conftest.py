"""Pytest configuration and shared fixtures.

Service tests run against an in-memory MongoDB (mongomock-motor) seeded with
the shared users, courses and enrollments collections the session service
reads from.
"""

from datetime import datetime, timedelta
from typing import Any

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from app.services.access_service import AccessService
from app.services.participation_service import ParticipationService
from app.services.recurrence_service import RecurrenceService
from app.services.session_store import SessionStore
from app.services.video_session_service import VideoSessionService


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Controllable replacement for utc_now."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 0, seconds: int = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 1, 18, 30))


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    client = AsyncMongoMockClient()
    return client["learnhub_test"]


@pytest.fixture
def course_id() -> str:
    return str(ObjectId())


def make_user(role: str, email: str, **extra: Any) -> dict[str, Any]:
    user = {
        "_id": str(ObjectId()),
        "email": email,
        "role": role,
        "is_super_admin": False,
        "is_active": True,
    }
    user.update(extra)
    return user


@pytest.fixture
def instructor() -> dict[str, Any]:
    return make_user("instructor", "instructor@learnhub.test")


@pytest.fixture
def admin() -> dict[str, Any]:
    return make_user("admin", "admin@learnhub.test")


@pytest.fixture
def learners() -> list[dict[str, Any]]:
    return [make_user("learner", f"learner{i}@learnhub.test") for i in range(5)]


@pytest.fixture
def outsider() -> dict[str, Any]:
    """Learner with no enrollment in the course."""
    return make_user("learner", "outsider@learnhub.test")


@pytest.fixture
async def seeded_db(db, course_id, instructor, learners):
    """Course owned by the instructor with every learner actively enrolled."""
    await db.courses.insert_one({
        "_id": ObjectId(course_id),
        "title": "Intro to Statistics",
        "instructor_id": instructor["_id"],
    })
    await db.enrollments.insert_many([
        {"student_id": learner["_id"], "course_id": course_id, "status": "active"}
        for learner in learners
    ])
    return db


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def store(db) -> SessionStore:
    return SessionStore(collection=db.video_sessions, retry_delay_ms=0)


@pytest.fixture
def access(seeded_db) -> AccessService:
    service = AccessService()
    service.db = seeded_db
    return service


@pytest.fixture
def recurrence(store) -> RecurrenceService:
    return RecurrenceService(store)


@pytest.fixture
def session_service(store, access, recurrence, clock) -> VideoSessionService:
    return VideoSessionService(store, access, recurrence, clock)


@pytest.fixture
def participation(store, access, clock) -> ParticipationService:
    return ParticipationService(store, access, clock)


@pytest.fixture
def session_payload(course_id) -> dict[str, Any]:
    return {
        "title": "Week 1 Live Q&A",
        "description": "Open questions on the first module",
        "course_id": course_id,
        "scheduled_date": "2025-01-01",
        "scheduled_time": "18:30",
        "duration": 60,
        "max_participants": 25,
    }
