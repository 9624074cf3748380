"""Session cookie signing and parsing service."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from idm.core.logging import get_logger

logger = get_logger(__name__)


class SessionCookieService:
    """Service for signing and verifying session cookie values as JWTs."""

    def __init__(self, secret_key: str, ttl_seconds: int):
        """Initialize session cookie service.

        Args:
            secret_key: Secret key for signing cookie values
            ttl_seconds: Lifetime of an issued cookie value
        """
        self.secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    def encode(self, payload: Dict[str, Any]) -> str:
        """Sign ``payload`` (typically ``{"sub": ...}``) into a cookie value."""
        now = datetime.now(timezone.utc)
        claims = {
            **payload,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
        }

        return jwt.encode(claims, self.secret_key, algorithm="HS256")

    def decode(self, value: Optional[str]) -> Optional[Dict[str, Any]]:
        """Verify a cookie value and return its payload.

        Returns None for a missing, expired, tampered or otherwise invalid
        value; a bad cookie means "no session", not an error.
        """
        if not value:
            return None

        try:
            return jwt.decode(value, self.secret_key, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            logger.debug("session_cookie_expired")
        except jwt.InvalidTokenError as e:
            logger.debug("session_cookie_invalid", error=str(e))
        return None
