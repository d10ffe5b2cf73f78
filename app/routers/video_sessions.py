"""
Video Session API Routes
Session scheduling, live lifecycle, attendance and analytics
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import Dict, Any, Optional
import logging
from datetime import datetime
from pydantic import ValidationError

from ..models.video_session import (
    VideoSessionCreate,
    VideoSessionUpdate,
    MaterialCreate,
    FeedbackCreate,
    SessionFilterParams,
    SessionStatus
)
from ..services.video_session_service import video_session_service
from ..services.participation_service import participation_service
from ..utils.dependencies import get_current_active_user
from ..utils.exceptions import SessionServiceError
from bson import ObjectId

router = APIRouter(prefix="/video-sessions", tags=["Video Sessions"])
logger = logging.getLogger(__name__)

DATE_QUERY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


# =====================================
# HELPER FUNCTIONS
# =====================================

def convert_objectid_to_str(obj):
    """Recursively convert ObjectId and datetime values in nested structures"""
    if isinstance(obj, ObjectId):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, dict):
        return {
            ("id" if key == "_id" else key): convert_objectid_to_str(value)
            for key, value in obj.items()
        }
    elif isinstance(obj, list):
        return [convert_objectid_to_str(item) for item in obj]
    else:
        return obj


def format_session_response(session_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Format session document for API response"""
    if not session_doc:
        return None

    response = convert_objectid_to_str(session_doc)
    response.pop("version", None)
    return response


def build_filters(
    session_status: Optional[SessionStatus],
    course_id: Optional[str],
    date_from: Optional[str],
    date_to: Optional[str],
    page: int,
    limit: int
) -> SessionFilterParams:
    try:
        return SessionFilterParams(
            status=session_status,
            course_id=course_id,
            date_from=date_from,
            date_to=date_to,
            page=page,
            limit=limit
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        )


def internal_error(action: str, error: Exception) -> HTTPException:
    logger.error(f"Error {action}: {error}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed {action}"
    )


# =====================================
# SESSION CRUD
# =====================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    session_data: VideoSessionCreate,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """
    Create a video session for a course

    Only the course instructor or an admin may create sessions. Recurring
    sessions also create their future occurrences; occurrences that fail to
    persist are reported in `warnings` without undoing the session itself.
    """
    try:
        logger.info(f"Creating session for course {session_data.course_id} by user: {current_user.get('email')}")

        session_doc, recurrence = await video_session_service.create_session(
            session_data=session_data,
            current_user=current_user
        )

        response = {
            "success": True,
            "message": "Video session created successfully",
            "data": format_session_response(session_doc),
            "occurrences_created": len(recurrence.created)
        }

        if recurrence.failed:
            response["warnings"] = recurrence.warnings
            response["failed_occurrences"] = recurrence.failed

        return response

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("creating video session", e)


@router.get("")
async def list_sessions(
    session_status: Optional[SessionStatus] = Query(None, alias="status", description="Filter by session status"),
    course_id: Optional[str] = Query(None, description="Filter by course"),
    date_from: Optional[str] = Query(None, pattern=DATE_QUERY_PATTERN, description="Earliest scheduled date (YYYY-MM-DD)"),
    date_to: Optional[str] = Query(None, pattern=DATE_QUERY_PATTERN, description="Latest scheduled date (YYYY-MM-DD)"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Items per page"),
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """
    List sessions with filtering and pagination

    Admins see every session; everyone else sees the sessions they instruct.
    """
    filters = build_filters(session_status, course_id, date_from, date_to, page, limit)

    try:
        result = await video_session_service.list_sessions(filters, current_user)

        return {
            "success": True,
            "data": [format_session_response(session) for session in result["sessions"]],
            "pagination": result["pagination"]
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("listing video sessions", e)


@router.get("/student")
async def list_student_sessions(
    session_status: Optional[SessionStatus] = Query(None, alias="status", description="Filter by session status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Sessions the current user has registered for or attended"""
    filters = build_filters(session_status, None, None, None, page, limit)

    try:
        result = await video_session_service.list_student_sessions(filters, current_user)

        return {
            "success": True,
            "data": [format_session_response(session) for session in result["sessions"]],
            "pagination": result["pagination"]
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("listing student sessions", e)


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Get a session (instructor, participants and admins)"""
    try:
        session = await video_session_service.get_session(session_id, current_user)

        return {
            "success": True,
            "data": format_session_response(session)
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("fetching video session", e)


@router.put("/{session_id}")
async def update_session(
    session_id: str,
    update_data: VideoSessionUpdate,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """
    Update a session's schedule, capacity or description

    Live and completed sessions cannot be edited.
    """
    try:
        logger.info(f"Updating session {session_id} by user: {current_user.get('email')}")

        session = await video_session_service.update_session(session_id, update_data, current_user)

        return {
            "success": True,
            "message": "Video session updated successfully",
            "data": format_session_response(session)
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("updating video session", e)


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Delete a session that is not live; occurrences it spawned are kept"""
    try:
        logger.info(f"Deleting session {session_id} by user: {current_user.get('email')}")

        await video_session_service.delete_session(session_id, current_user)

        return {
            "success": True,
            "message": "Video session deleted successfully"
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("deleting video session", e)


# =====================================
# LIFECYCLE
# =====================================

@router.post("/{session_id}/start")
async def start_session(
    session_id: str,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Move a scheduled session to live (instructor or admin)"""
    try:
        session = await video_session_service.start_session(session_id, current_user)

        return {
            "success": True,
            "message": "Session started successfully",
            "data": {
                "meeting_link": session["meeting_link"],
                "meeting_id": session["meeting_id"]
            }
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("starting video session", e)


@router.post("/{session_id}/end")
async def end_session(
    session_id: str,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Complete a live session (instructor or admin)"""
    try:
        session = await video_session_service.end_session(session_id, current_user)

        return {
            "success": True,
            "message": "Session ended successfully",
            "data": format_session_response(session)
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("ending video session", e)


# =====================================
# PARTICIPATION
# =====================================

@router.post("/{session_id}/join")
async def join_session(
    session_id: str,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """
    Join a session

    Learners must be enrolled in the course. Non-staff joins fail once the
    number of joined participants reaches the session's capacity.
    """
    try:
        result = await participation_service.join_session(session_id, current_user)

        return {
            "success": True,
            "message": "Successfully joined the session",
            "data": result
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("joining video session", e)


@router.post("/{session_id}/leave")
async def leave_session(
    session_id: str,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Leave a session; leaving when not joined is a no-op"""
    try:
        result = await participation_service.leave_session(session_id, current_user)

        return {
            "success": True,
            "message": "Successfully left the session",
            "data": result
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("leaving video session", e)


# =====================================
# MATERIALS, FEEDBACK & ANALYTICS
# =====================================

@router.post("/{session_id}/materials", status_code=status.HTTP_201_CREATED)
async def add_material(
    session_id: str,
    material_data: MaterialCreate,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Attach a material to a session (instructor or admin)"""
    try:
        material = await video_session_service.add_material(session_id, material_data, current_user)

        return {
            "success": True,
            "message": "Material added successfully",
            "data": convert_objectid_to_str(material)
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("adding session material", e)


@router.post("/{session_id}/feedback", status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    session_id: str,
    feedback_data: FeedbackCreate,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Rate a completed session you attended"""
    try:
        feedback = await video_session_service.submit_feedback(session_id, feedback_data, current_user)

        return {
            "success": True,
            "message": "Feedback submitted successfully",
            "data": convert_objectid_to_str(feedback)
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("submitting session feedback", e)


@router.get("/{session_id}/analytics")
async def get_session_analytics(
    session_id: str,
    current_user: Dict[str, Any] = Depends(get_current_active_user)
):
    """Attendance analytics for a session (instructor or admin)"""
    try:
        analytics = await video_session_service.get_analytics(session_id, current_user)

        return {
            "success": True,
            "data": convert_objectid_to_str(analytics)
        }

    except (HTTPException, SessionServiceError):
        raise
    except Exception as e:
        raise internal_error("fetching session analytics", e)
