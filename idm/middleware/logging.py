"""Access logging middleware."""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from idm.core.logging import get_logger

logger = get_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and its outcome.

    Query strings are not logged: login callbacks and outbound links carry
    state identifiers and authorization codes.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        logger.info(
            "incoming_request",
            method=request.method,
            path=request.url.path,
            client_host=request.client.host if request.client else None,
        )

        response: Response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            redirected=300 <= response.status_code < 400,
            duration_ms=round(duration_ms, 2),
        )

        return response
