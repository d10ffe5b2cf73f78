# app/utils/security.py - JWT verification for callers of the session API

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import jwt
from ..config.settings import settings
from ..config.database import get_database
import uuid
import logging

logger = logging.getLogger(__name__)

class SecurityManager:
    def __init__(self):
        self.secret_key = settings.secret_key
        self.algorithm = settings.algorithm
        self.access_token_expire_minutes = settings.access_token_expire_minutes

    def create_access_token(self, data: Dict[str, Any]) -> str:
        """Create JWT access token"""
        to_encode = data.copy()
        expire = datetime.utcnow() + timedelta(minutes=self.access_token_expire_minutes)

        # Add standard JWT claims
        to_encode.update({
            "exp": expire,
            "iat": datetime.utcnow(),
            "jti": str(uuid.uuid4()),  # Unique token ID for blacklisting
            "type": "access"
        })

        encoded_jwt = jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        return encoded_jwt

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify and decode JWT token"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            return payload
        except jwt.InvalidTokenError as e:
            logger.error(f"Token verification failed: {e}")
            return None

    async def is_token_blacklisted(self, token_jti: str) -> bool:
        """Check if token is blacklisted by the identity service"""
        try:
            db = get_database()
            result = await db.token_blacklist.find_one({"token_jti": token_jti})
            return result is not None
        except Exception as e:
            logger.error(f"Error checking token blacklist: {e}")
            return True  # Fail safe - treat as blacklisted

security = SecurityManager()
