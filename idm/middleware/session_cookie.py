"""Session cookie middleware."""

from typing import Any, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from idm.config import CookieSettings
from idm.core.logging import get_logger
from idm.services.cookie import SessionCookieService

logger = get_logger(__name__)


class CookieAuth:
    """Per-request handle for setting or clearing the session cookie."""

    def __init__(self):
        self.payload: Optional[Dict[str, Any]] = None
        self.cleared = False

    def set(self, payload: Dict[str, Any]) -> None:
        self.payload = dict(payload)
        self.cleared = False

    def clear(self) -> None:
        self.payload = None
        self.cleared = True


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """Decodes the session cookie into request state and writes it back on the response."""

    def __init__(self, app, cookie_service: SessionCookieService, settings: CookieSettings):
        super().__init__(app)
        self.cookie_service = cookie_service
        self.settings = settings

    async def dispatch(self, request: Request, call_next):
        """
        Expose the session cookie to handlers.

        Before the handler runs:
        - ``request.state.<cookie name>`` holds the verified cookie payload,
          or None when the cookie is missing or invalid
        - ``request.state.cookie_auth`` holds a :class:`CookieAuth`

        After the handler runs, a payload passed to ``cookie_auth.set()`` is
        signed into the cookie, and ``cookie_auth.clear()`` deletes it.
        """
        payload = self.cookie_service.decode(request.cookies.get(self.settings.name))
        setattr(request.state, self.settings.name, payload)

        cookie_auth = CookieAuth()
        request.state.cookie_auth = cookie_auth

        response: Response = await call_next(request)

        if cookie_auth.payload is not None:
            response.set_cookie(
                self.settings.name,
                self.cookie_service.encode(cookie_auth.payload),
                max_age=self.settings.ttl_ms // 1000,
                path="/",
                httponly=True,
                secure=self.settings.is_secure,
                samesite="lax",
            )
            logger.debug("session_cookie_set")
        elif cookie_auth.cleared:
            response.delete_cookie(
                self.settings.name,
                path="/",
                httponly=True,
                secure=self.settings.is_secure,
                samesite="lax",
            )
            logger.debug("session_cookie_cleared")

        return response
