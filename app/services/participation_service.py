"""
Participation Service
Join/leave handling, capacity enforcement and attendance durations
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..models.video_session import ParticipantStatus, SessionStatus
from ..utils.exceptions import (
    InvalidSessionStateError,
    SessionCapacityExceededError,
    SessionForbiddenError,
)
from ..utils.time_utils import utc_now, whole_minutes_between
from .access_service import AccessService, access_service
from .session_store import SessionStore, session_store
from .video_session_service import VideoSessionService, apply_transition, joined_count

logger = logging.getLogger(__name__)

JOINABLE_STATUSES = {SessionStatus.SCHEDULED.value, SessionStatus.LIVE.value}


class ParticipationService:
    """Service for participant join/leave operations"""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        access: Optional[AccessService] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store or session_store
        self.access = access or access_service
        self.clock = clock or utc_now

    async def join_session(self, session_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register (if needed) and mark the caller as joined

        Steps run as one serialized write: register, capacity check, mark
        joined, and start the session when its instructor is the one joining.
        Staff are exempt from the capacity ceiling.

        Returns:
            Meeting identifiers for the media transport plus session status
        """
        user_id = str(current_user["_id"])

        # Enrollment pre-check happens before entering the write loop
        snapshot = await self.store.load_or_raise(session_id)
        if not await self.access.can_join(current_user, snapshot):
            raise SessionForbiddenError("You must be enrolled in the course to join this session")

        is_staff = self.access.is_session_staff(current_user, snapshot)

        def mutation(session):
            if session["status"] not in JOINABLE_STATUSES:
                raise InvalidSessionStateError(f"Cannot join a {session['status']} session")

            participant = VideoSessionService.find_participant(session, user_id)

            if participant and participant["status"] == ParticipantStatus.JOINED.value:
                return None

            if participant and participant["status"] == ParticipantStatus.LEFT.value:
                raise InvalidSessionStateError("You have already left this session")

            if not is_staff and joined_count(session) >= session["max_participants"]:
                raise SessionCapacityExceededError(session["max_participants"])

            now = self.clock()

            if participant is None:
                participant = {
                    "user_id": user_id,
                    "status": ParticipantStatus.REGISTERED.value,
                    "joined_at": None,
                    "left_at": None,
                    "attendance_duration": 0
                }
                session.setdefault("participants", []).append(participant)

            participant["status"] = ParticipantStatus.JOINED.value
            participant["joined_at"] = now

            if session["status"] == SessionStatus.SCHEDULED.value and \
                    str(session["instructor_id"]) == user_id:
                apply_transition(session, SessionStatus.LIVE.value, now)
                logger.info(f"✅ Instructor joined, session {session_id} is live")

            return session

        session = await self.store.mutate(session_id, mutation)
        logger.info(f"✅ User {user_id} joined session {session_id}")

        return {
            "meeting_link": session["meeting_link"],
            "meeting_id": session["meeting_id"],
            "status": session["status"]
        }

    async def leave_session(self, session_id: str, current_user: Dict[str, Any]) -> Dict[str, Any]:
        """
        Mark the caller as left and record how long they attended

        Only a joined caller is marked left. When the instructor leaves a live
        session the session completes, whether or not they ever joined it.
        Nothing is written when neither applies.
        """
        user_id = str(current_user["_id"])

        def mutation(session):
            participant = VideoSessionService.find_participant(session, user_id)
            now = self.clock()
            changed = False

            if participant and participant["status"] == ParticipantStatus.JOINED.value:
                participant["status"] = ParticipantStatus.LEFT.value
                participant["left_at"] = now
                if participant.get("joined_at"):
                    participant["attendance_duration"] = whole_minutes_between(participant["joined_at"], now)
                changed = True

            if str(session["instructor_id"]) == user_id and session["status"] == SessionStatus.LIVE.value:
                apply_transition(session, SessionStatus.COMPLETED.value, now)
                logger.info(f"✅ Instructor left, session {session_id} completed")
                changed = True

            return session if changed else None

        session = await self.store.mutate(session_id, mutation)
        logger.info(f"User {user_id} left session {session_id}")

        return {"status": session["status"]}


# Singleton instance
participation_service = ParticipationService()
