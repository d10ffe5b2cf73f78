"""
Video Session Service
Session lifecycle: creation, scheduling edits, start/end transitions, materials
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from bson import ObjectId

from ..config.settings import settings
from ..models.video_session import (
    DATE_FORMAT,
    DESCRIPTION_MAX_LENGTH,
    DURATION_MAX,
    DURATION_MIN,
    PARTICIPANTS_MAX,
    PARTICIPANTS_MIN,
    TIME_PATTERN,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    FeedbackCreate,
    MaterialCreate,
    ParticipantStatus,
    RecurringPattern,
    SessionFilterParams,
    SessionStatus,
    SessionType,
    VideoSessionCreate,
    VideoSessionUpdate,
)
from ..utils.exceptions import (
    CourseNotFoundError,
    InvalidSessionStateError,
    SessionForbiddenError,
    SessionValidationError,
)
from ..utils.time_utils import utc_now, whole_minutes_between
from .access_service import AccessService, access_service
from .recurrence_service import RecurrenceResult, RecurrenceService, recurrence_service
from .session_analytics import compute_session_analytics
from .session_store import SessionStore, session_store

logger = logging.getLogger(__name__)

# ============================================================================
# STATE MACHINE
# ============================================================================

SESSION_TRANSITIONS = {
    SessionStatus.SCHEDULED.value: {SessionStatus.LIVE.value},
    SessionStatus.LIVE.value: {SessionStatus.COMPLETED.value},
    SessionStatus.COMPLETED.value: set(),
    SessionStatus.CANCELLED.value: set(),
}

# Statuses in which schedule, capacity and description may still change
EDITABLE_STATUSES = {SessionStatus.SCHEDULED.value, SessionStatus.CANCELLED.value}

# Patch fields that may be explicitly cleared with null
CLEARABLE_FIELDS = {"description", "session_notes", "recording_url", "recurring_pattern", "recurring_end_date"}


def can_transition(current: str, target: str) -> bool:
    return target in SESSION_TRANSITIONS.get(current, set())


def apply_transition(session: Dict[str, Any], target: str, now: datetime) -> Dict[str, Any]:
    """
    Move a session document to target status and stamp the entry fields

    Entering live records the actual start. Entering completed records the
    actual end, the actual duration (only when a start exists) and the
    number of participants joined at this instant.
    """
    current = session.get("status")
    if not can_transition(current, target):
        raise InvalidSessionStateError(f"Cannot move session from {current} to {target}")

    session["status"] = target

    if target == SessionStatus.LIVE.value:
        session["actual_start_time"] = now

    elif target == SessionStatus.COMPLETED.value:
        session["actual_end_time"] = now
        if session.get("actual_start_time"):
            session["actual_duration"] = whole_minutes_between(session["actual_start_time"], now)
        session["attendance_count"] = joined_count(session)

    return session


def joined_count(session: Dict[str, Any]) -> int:
    return len([
        p for p in session.get("participants", [])
        if p.get("status") == ParticipantStatus.JOINED.value
    ])


# ============================================================================
# FIELD VALIDATION
# ============================================================================

def validate_session_fields(session: Dict[str, Any]):
    """Check a full session document against the field constraints"""
    title = session.get("title") or ""
    if not TITLE_MIN_LENGTH <= len(title.strip()) <= TITLE_MAX_LENGTH:
        raise SessionValidationError("title", f"length must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH}")

    if len(session.get("description") or "") > DESCRIPTION_MAX_LENGTH:
        raise SessionValidationError("description", f"length must be at most {DESCRIPTION_MAX_LENGTH}")

    if not session.get("course_id"):
        raise SessionValidationError("course_id", "required")

    try:
        datetime.strptime(session.get("scheduled_date") or "", DATE_FORMAT)
    except ValueError:
        raise SessionValidationError("scheduled_date", "must be a YYYY-MM-DD date")

    if not TIME_PATTERN.match(session.get("scheduled_time") or ""):
        raise SessionValidationError("scheduled_time", "must be HH:MM (24h)")

    duration = session.get("duration")
    if not isinstance(duration, int) or not DURATION_MIN <= duration <= DURATION_MAX:
        raise SessionValidationError("duration", f"must be between {DURATION_MIN} and {DURATION_MAX} minutes")

    max_participants = session.get("max_participants")
    if not isinstance(max_participants, int) or not PARTICIPANTS_MIN <= max_participants <= PARTICIPANTS_MAX:
        raise SessionValidationError("max_participants", f"must be between {PARTICIPANTS_MIN} and {PARTICIPANTS_MAX}")

    if session.get("session_type") not in {t.value for t in SessionType}:
        raise SessionValidationError("session_type", "must be one of live, recorded, hybrid")

    if session.get("is_recurring"):
        if session.get("recurring_pattern") not in {p.value for p in RecurringPattern}:
            raise SessionValidationError("recurring_pattern", "required when is_recurring is true")

        if session.get("recurring_end_date"):
            try:
                datetime.strptime(session["recurring_end_date"], DATE_FORMAT)
            except ValueError:
                raise SessionValidationError("recurring_end_date", "must be a YYYY-MM-DD date")


class VideoSessionService:
    """Service for session lifecycle operations"""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        access: Optional[AccessService] = None,
        recurrence: Optional[RecurrenceService] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store or session_store
        self.access = access or access_service
        self.recurrence = recurrence or recurrence_service
        self.clock = clock or utc_now

    # ============================================================================
    # HELPERS
    # ============================================================================

    @staticmethod
    def assign_meeting(session: Dict[str, Any]) -> Dict[str, Any]:
        """Stamp meeting identifiers once; existing ones are never replaced"""
        if not session.get("meeting_id"):
            session["meeting_id"] = f"session-{session['_id']}-{int(time.time() * 1000)}"

        if not session.get("meeting_link"):
            session["meeting_link"] = f"{settings.meeting_base_url.rstrip('/')}/{session['meeting_id']}"

        return session

    def require_staff(self, session: Dict[str, Any], current_user: Dict[str, Any], action: str):
        if not self.access.is_session_staff(current_user, session):
            logger.warning(f"⚠️ {current_user.get('email', current_user['_id'])} denied: {action} on session {session['_id']}")
            raise SessionForbiddenError(f"Only the instructor or an admin can {action}")

    @staticmethod
    def find_participant(session: Dict[str, Any], user_id: str) -> Optional[Dict[str, Any]]:
        for participant in session.get("participants", []):
            if str(participant["user_id"]) == str(user_id):
                return participant
        return None

    @staticmethod
    def _paginate(total: int, page: int, limit: int) -> Dict[str, Any]:
        total_pages = (total + limit - 1) // limit
        return {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1
        }

    # ============================================================================
    # SESSION CRUD
    # ============================================================================

    async def create_session(
        self,
        session_data: VideoSessionCreate,
        current_user: Dict[str, Any]
    ) -> Tuple[Dict[str, Any], RecurrenceResult]:
        """
        Create a session for a course, then expand it if it recurs

        Args:
            session_data: Validated session input
            current_user: Caller, who becomes the session instructor

        Returns:
            (persisted base session, recurrence outcome)
        """
        course = await self.access.get_course(session_data.course_id)
        if not course:
            raise CourseNotFoundError(session_data.course_id)

        if not (self.access.is_admin(current_user) or self.access.is_course_instructor(current_user, course)):
            raise SessionForbiddenError("Not authorized to create sessions for this course")

        session_doc = session_data.model_dump(mode="json")
        session_doc.update({
            "_id": ObjectId(),
            "instructor_id": str(current_user["_id"]),
            "status": SessionStatus.SCHEDULED.value,
            "participants": [],
            "materials": [],
            "feedback": [],
            "recording_url": None,
            "rating": None,
            "parent_session_id": None,
            "actual_start_time": None,
            "actual_end_time": None,
            "actual_duration": None,
            "attendance_count": 0
        })

        validate_session_fields(session_doc)
        self.assign_meeting(session_doc)

        await self.store.insert(session_doc)
        logger.info(f"✅ Created session {session_doc['_id']} for course {session_doc['course_id']}")

        recurrence_result = RecurrenceResult()
        if session_doc["is_recurring"]:
            recurrence_result = await self.recurrence.generate_recurring_sessions(session_doc, self.assign_meeting)
            for warning in recurrence_result.warnings:
                logger.warning(f"⚠️ {warning}")

        return session_doc, recurrence_result

    async def get_session(self, session_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """Get a session visible to its instructor, participants and admins"""
        session = await self.store.load_or_raise(session_id)

        if not self.access.is_session_staff(current_user, session) and \
                not self.find_participant(session, current_user["_id"]):
            raise SessionForbiddenError("Access denied")

        return session

    async def list_sessions(
        self,
        filters: SessionFilterParams,
        current_user: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        List sessions with filtering and pagination

        Non-admins only see sessions they instruct.
        """
        query = {}

        if not self.access.is_admin(current_user):
            query["instructor_id"] = str(current_user["_id"])

        if filters.status:
            query["status"] = filters.status.value

        if filters.course_id:
            query["course_id"] = filters.course_id

        # Date range filters
        if filters.date_from or filters.date_to:
            date_query = {}
            if filters.date_from:
                date_query["$gte"] = filters.date_from
            if filters.date_to:
                date_query["$lte"] = filters.date_to
            query["scheduled_date"] = date_query

        return await self._page(query, filters.page, filters.limit)

    async def list_student_sessions(
        self,
        filters: SessionFilterParams,
        current_user: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Sessions the caller has registered for or attended"""
        query = {"participants.user_id": str(current_user["_id"])}

        if filters.status:
            query["status"] = filters.status.value

        return await self._page(query, filters.page, filters.limit)

    async def _page(self, query: Dict[str, Any], page: int, limit: int) -> Dict[str, Any]:
        total = await self.store.count(query)
        sessions = await self.store.find(
            query,
            sort=[("scheduled_date", 1), ("scheduled_time", 1)],
            skip=(page - 1) * limit,
            limit=limit
        )

        return {
            "sessions": sessions,
            "pagination": self._paginate(total, page, limit)
        }

    async def update_session(
        self,
        session_id: str,
        update_data: VideoSessionUpdate,
        current_user: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Update a session that has not gone live yet

        Identity, meeting identifiers, status and attendance are not patchable.
        """
        dumped = update_data.model_dump(mode="json", exclude_unset=True)
        patch = {
            key: value for key, value in dumped.items()
            if value is not None or key in CLEARABLE_FIELDS
        }

        def mutation(session):
            self.require_staff(session, current_user, "update this session")

            if session["status"] not in EDITABLE_STATUSES:
                raise InvalidSessionStateError("Cannot update live or completed sessions")

            if not patch:
                return None

            session.update(patch)
            validate_session_fields(session)

            if "max_participants" in patch and session["max_participants"] < joined_count(session):
                raise SessionValidationError(
                    "max_participants",
                    "cannot be lower than the number of participants already joined"
                )

            return session

        session = await self.store.mutate(session_id, mutation)

        if patch:
            logger.info(f"✅ Updated session {session_id}: {sorted(patch)}")
        else:
            logger.warning(f"No fields to update for session {session_id}")

        return session

    async def delete_session(self, session_id: str, current_user: Dict[str, Any]) -> bool:
        """Delete a session; live sessions cannot be deleted"""

        def guard(session):
            self.require_staff(session, current_user, "delete this session")

            if session["status"] == SessionStatus.LIVE.value:
                raise InvalidSessionStateError("Cannot delete live sessions")

        await self.store.remove(session_id, guard)
        logger.info(f"✅ Deleted session {session_id}")
        return True

    # ============================================================================
    # LIFECYCLE TRANSITIONS
    # ============================================================================

    async def start_session(self, session_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """Explicitly move a scheduled session to live"""

        def mutation(session):
            self.require_staff(session, current_user, "start the session")

            if session["status"] != SessionStatus.SCHEDULED.value:
                raise InvalidSessionStateError("Session cannot be started")

            return apply_transition(session, SessionStatus.LIVE.value, self.clock())

        session = await self.store.mutate(session_id, mutation)
        logger.info(f"✅ Session {session_id} is live")
        return session

    async def end_session(self, session_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """Explicitly complete a live session"""

        def mutation(session):
            self.require_staff(session, current_user, "end the session")

            if session["status"] != SessionStatus.LIVE.value:
                raise InvalidSessionStateError("Session is not currently live")

            return apply_transition(session, SessionStatus.COMPLETED.value, self.clock())

        session = await self.store.mutate(session_id, mutation)
        logger.info(f"✅ Session {session_id} completed ({session.get('attendance_count', 0)} attending at end)")
        return session

    # ============================================================================
    # MATERIALS & FEEDBACK
    # ============================================================================

    async def add_material(
        self,
        session_id: str,
        material_data: MaterialCreate,
        current_user: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Attach a material to a session and return it"""
        material = material_data.model_dump(mode="json")

        def mutation(session):
            self.require_staff(session, current_user, "add materials")

            material["_id"] = ObjectId()
            material["uploaded_at"] = self.clock()
            session.setdefault("materials", []).append(material)
            return session

        await self.store.mutate(session_id, mutation)
        logger.info(f"✅ Added material '{material['name']}' to session {session_id}")
        return material

    async def submit_feedback(
        self,
        session_id: str,
        feedback_data: FeedbackCreate,
        current_user: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Record one attendee's rating of a completed session

        The session rating is recomputed as the mean of all feedback ratings.
        """
        user_id = str(current_user["_id"])
        entry = {
            "user_id": user_id,
            "rating": feedback_data.rating,
            "comment": feedback_data.comment
        }

        def mutation(session):
            participant = self.find_participant(session, user_id)
            if not participant or participant.get("status") == ParticipantStatus.REGISTERED.value:
                raise SessionForbiddenError("Only attendees can leave feedback")

            if session["status"] != SessionStatus.COMPLETED.value:
                raise InvalidSessionStateError("Feedback opens once the session has completed")

            feedback = session.setdefault("feedback", [])
            if any(str(item["user_id"]) == user_id for item in feedback):
                raise InvalidSessionStateError("Feedback already submitted")

            entry["submitted_at"] = self.clock()
            feedback.append(entry)
            session["rating"] = round(sum(item["rating"] for item in feedback) / len(feedback), 2)
            return session

        session = await self.store.mutate(session_id, mutation)
        logger.info(f"✅ Feedback recorded for session {session_id} (rating now {session['rating']})")
        return entry

    # ============================================================================
    # ANALYTICS
    # ============================================================================

    async def get_analytics(self, session_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """Attendance statistics; reads a snapshot without write serialization"""
        session = await self.store.load_or_raise(session_id)
        self.require_staff(session, current_user, "view analytics")
        return compute_session_analytics(session)


# Singleton instance
video_session_service = VideoSessionService()
