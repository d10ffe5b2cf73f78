"""
Video Session Domain Errors
Typed failures raised by the session services and rendered by the API layer
"""

from typing import Any, Dict, Optional


class SessionServiceError(Exception):
    """Base class for every video session domain error"""

    error_code = "session_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "error": self.error_code,
            "detail": self.message
        }
        body.update(self.details)
        return body


class SessionNotFoundError(SessionServiceError):
    error_code = "not_found"
    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Video session {session_id} not found")


class CourseNotFoundError(SessionServiceError):
    error_code = "not_found"
    status_code = 404

    def __init__(self, course_id: str):
        super().__init__(f"Course {course_id} not found")


class SessionForbiddenError(SessionServiceError):
    """Caller lacks the role or relationship the operation needs"""

    error_code = "forbidden"
    status_code = 403


class InvalidSessionStateError(SessionServiceError):
    """Operation is illegal for the session's current status"""

    error_code = "invalid_state"
    status_code = 409


class SessionCapacityExceededError(SessionServiceError):
    error_code = "capacity_exceeded"
    status_code = 409

    def __init__(self, max_participants: int):
        super().__init__(
            "Session is at maximum capacity",
            {"max_participants": max_participants}
        )


class SessionValidationError(SessionServiceError):
    """Input violates a field constraint"""

    error_code = "validation_error"
    status_code = 422

    def __init__(self, field: str, constraint: str, message: Optional[str] = None):
        self.field = field
        self.constraint = constraint
        super().__init__(
            message or f"{field}: {constraint}",
            {"field": field, "constraint": constraint}
        )


class SessionConflictError(SessionServiceError):
    """Concurrent modification retry budget exhausted; safe to retry"""

    error_code = "conflict"
    status_code = 409
    retryable = True

    def __init__(self, session_id: str, attempts: int):
        super().__init__(
            f"Video session {session_id} is being modified concurrently, please retry",
            {"attempts": attempts}
        )
