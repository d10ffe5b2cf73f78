"""
Course Access Service
Answers identity and catalog questions against the platform's shared collections
"""

import logging
from typing import Dict, Any, Optional
from bson import ObjectId
from bson.errors import InvalidId

from ..config.database import get_database

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
ACTIVE_ENROLLMENT_STATUSES = ["active", "completed"]


class AccessService:
    """Read-only view of users, courses and enrollments owned by other services"""

    def __init__(self):
        self.db = None

    def get_db(self):
        """Get database instance"""
        if self.db is None:
            self.db = get_database()
        return self.db

    # ============================================================================
    # ROLE CHECKS
    # ============================================================================

    @staticmethod
    def user_id(user: Dict[str, Any]) -> str:
        return str(user["_id"])

    @staticmethod
    def is_admin(user: Dict[str, Any]) -> bool:
        return user.get("role") == ADMIN_ROLE or bool(user.get("is_super_admin"))

    def is_session_instructor(self, user: Dict[str, Any], session: Dict[str, Any]) -> bool:
        return str(session.get("instructor_id")) == self.user_id(user)

    def is_session_staff(self, user: Dict[str, Any], session: Dict[str, Any]) -> bool:
        """Instructor of the session or an admin"""
        return self.is_admin(user) or self.is_session_instructor(user, session)

    def is_course_instructor(self, user: Dict[str, Any], course: Dict[str, Any]) -> bool:
        return str(course.get("instructor_id")) == self.user_id(user)

    # ============================================================================
    # CATALOG & ENROLLMENT LOOKUPS
    # ============================================================================

    async def get_course(self, course_id: str) -> Optional[Dict[str, Any]]:
        """Resolve a course id, None when it does not exist"""
        try:
            course_object_id = ObjectId(course_id)
        except (InvalidId, TypeError):
            logger.warning(f"Malformed course id: {course_id}")
            return None

        db = self.get_db()
        return await db.courses.find_one(
            {"_id": course_object_id},
            {"title": 1, "instructor_id": 1}
        )

    async def is_enrolled(self, user_id: str, course_id: str) -> bool:
        db = self.get_db()
        enrollment = await db.enrollments.find_one({
            "student_id": str(user_id),
            "course_id": str(course_id),
            "status": {"$in": ACTIVE_ENROLLMENT_STATUSES}
        })
        return enrollment is not None

    async def can_join(self, user: Dict[str, Any], session: Dict[str, Any]) -> bool:
        """Staff always may join; everyone else needs an enrollment in the course"""
        if self.is_session_staff(user, session):
            return True
        return await self.is_enrolled(self.user_id(user), session["course_id"])


# Singleton instance
access_service = AccessService()
