"""Custom middleware components."""

from idm.middleware.logging import LoggingMiddleware
from idm.middleware.request_id import RequestIDMiddleware
from idm.middleware.session_cookie import CookieAuth, SessionCookieMiddleware

__all__ = ["RequestIDMiddleware", "LoggingMiddleware", "SessionCookieMiddleware", "CookieAuth"]
