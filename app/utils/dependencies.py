from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict, Any
from bson import ObjectId
from bson.errors import InvalidId
from ..config.database import get_database
from ..utils.security import security
import logging

logger = logging.getLogger(__name__)

# Security scheme
security_scheme = HTTPBearer()

class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

# ============================================================================
# CORE AUTHENTICATION DEPENDENCIES
# ============================================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme)
) -> Dict[str, Any]:
    """
    Dependency to get current authenticated user from JWT token

    Tokens are issued by the platform's identity service; this only verifies
    them and loads the shared user document.
    """
    token = credentials.credentials

    # Verify token
    payload = security.verify_token(token)
    if payload is None:
        raise AuthenticationError("Invalid token")

    # Check token type
    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    # Check if token is blacklisted
    token_jti = payload.get("jti")
    if token_jti and await security.is_token_blacklisted(token_jti):
        raise AuthenticationError("Token has been revoked")

    # Get user from database
    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")

    try:
        user_object_id = ObjectId(user_id)
    except (InvalidId, TypeError):
        raise AuthenticationError("Invalid token payload")

    db = get_database()
    user_data = await db.users.find_one({"_id": user_object_id})

    if user_data is None:
        raise AuthenticationError("User not found")

    # Users created before role support default to learners
    user_data.setdefault("role", "learner")
    user_data.setdefault("is_super_admin", False)

    # Convert ObjectId to string for JSON serialization
    user_data["_id"] = str(user_data["_id"])

    logger.debug(f"✅ User authenticated: {user_data.get('email')} (role: {user_data.get('role')})")

    return user_data


async def get_current_active_user(
    current_user: Dict[str, Any] = Depends(get_current_user)
) -> Dict[str, Any]:
    """
    Dependency to get current active user
    """
    if not current_user.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )
    return current_user
