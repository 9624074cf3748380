"""FastAPI application entry point.

Run with ``idm-session-service`` or ``uvicorn idm.main:create_app --factory``.
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import Response

from idm.api import auth, health
from idm.config import AppSettings, get_settings
from idm.core.exceptions import IdmError, LoginRequiredError
from idm.core.logging import configure_logging, get_logger
from idm.db.base import DatabaseSessionManager, db_manager
from idm.middleware import LoggingMiddleware, RequestIDMiddleware, SessionCookieMiddleware
from idm.models.responses import ErrorResponse
from idm.services.cache import SegmentCache
from idm.services.cookie import SessionCookieService
from idm.services.encryption import EncryptionService
from idm.services.identity import IdentityManager
from idm.services.oidc import OidcClientFactory
from idm.services.token_store import TokenSetStore

logger = get_logger(__name__)


def make_logger(settings: AppSettings):
    """Initialize logging configuration."""
    configure_logging(settings.log_level, app_name=settings.app_name, debug=settings.debug)
    logger.info("logger_initialized", log_level=settings.log_level, debug=settings.debug)


def make_database(settings: AppSettings, database: DatabaseSessionManager):
    """Initialize database connection."""
    database.init(
        database_url=settings.database.url,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
        pool_timeout=settings.database.pool_timeout,
        echo=settings.database.echo,
    )
    logger.info("database_initialized")


def make_identity_manager(
    settings: AppSettings, database: DatabaseSessionManager
) -> IdentityManager:
    """Wire the identity manager from settings.

    Attempt state and session credentials live in separate segments of the
    same cache table.
    """
    encryption = EncryptionService(settings.cache.encryption_key)

    state_cache = SegmentCache(
        database,
        encryption,
        segment=f"{settings.cache.segment}:state",
        ttl_ms=settings.cache.state_ttl_ms,
    )
    session_cache = SegmentCache(
        database,
        encryption,
        segment=f"{settings.cache.segment}:session",
        ttl_ms=settings.cookie.ttl_ms,
    )

    client_factory = OidcClientFactory(settings.oidc)
    token_store = TokenSetStore(session_cache, ttl_ms=settings.cookie.ttl_ms)

    logger.info("identity_manager_initialized", segment=settings.cache.segment)
    return IdentityManager(
        identity=settings.identity,
        state_cache=state_cache,
        session_cache=session_cache,
        client_factory=client_factory,
        token_store=token_store,
        cookie_name=settings.cookie.name,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: AppSettings = app.state.settings
    database: DatabaseSessionManager = app.state.database_session_manager

    # Startup
    make_logger(settings)
    logger.info("startup", app=settings.app_name, version=settings.version)

    if not database.initialized:
        make_database(settings, database)

    owns_identity = getattr(app.state, "identity", None) is None
    if owns_identity:
        app.state.identity = make_identity_manager(settings, database)

    yield

    # Shutdown
    logger.info("shutdown_started")
    if owns_identity:
        await app.state.identity.client_factory.close()
    await database.close()
    logger.info("shutdown_complete")


# Error code to HTTP status code mapping
ERROR_STATUS_MAP = {
    "contract_violation": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "invalid_state": status.HTTP_400_BAD_REQUEST,
    "validation_error": status.HTTP_400_BAD_REQUEST,
}


async def login_required_handler(request: Request, exc: LoginRequiredError) -> Response:
    """Redirect requests without a session to log in or to the disallowed path."""
    return RedirectResponse(url=exc.location, status_code=status.HTTP_302_FOUND)


async def idm_error_handler(request: Request, exc: IdmError) -> Response:
    """Handle custom IdmError exceptions."""
    if exc.code == "provider_error":
        status_code = exc.details.get("status_code", status.HTTP_502_BAD_GATEWAY)
    else:
        status_code = ERROR_STATUS_MAP.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.error(exc.code, error=exc.message, path=str(request.url.path))

    error_response = ErrorResponse(
        error=exc.message, code=exc.code, reason=exc.details.get("reason")
    )

    return Response(
        content=error_response.model_dump_json(),
        status_code=status_code,
        media_type="application/json",
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> Response:
    """Handle FastAPI request validation errors."""
    logger.error("validation_error", path=str(request.url.path), errors=exc.errors())

    error_response = ErrorResponse(
        error="Validation error",
        code="validation_error",
        reason=str(exc.errors()),
    )

    return Response(
        content=error_response.model_dump_json(),
        status_code=status.HTTP_400_BAD_REQUEST,
        media_type="application/json",
    )


async def pydantic_validation_error_handler(
    request: Request, exc: PydanticValidationError
) -> Response:
    """Handle Pydantic validation errors raised by handlers."""
    logger.error("validation_error", path=str(request.url.path), errors=exc.errors())

    error_response = ErrorResponse(
        error="Validation error",
        code="validation_error",
        reason=str(exc.errors()),
    )

    return Response(
        content=error_response.model_dump_json(),
        status_code=status.HTTP_400_BAD_REQUEST,
        media_type="application/json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle all other unhandled exceptions."""
    logger.exception(
        "unhandled_exception", error_type=type(exc).__name__, path=str(request.url.path)
    )

    error_response = ErrorResponse(
        error="Internal server error",
        code="internal_error",
    )

    return Response(
        content=error_response.model_dump_json(),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/json",
    )


def create_app(
    settings: Optional[AppSettings] = None,
    identity: Optional[IdentityManager] = None,
    database: Optional[DatabaseSessionManager] = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to use; loaded from the environment when omitted
        identity: Prebuilt identity manager; built at startup when omitted
        database: Database session manager; the global one when omitted
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="IDM Session Service",
        description=(
            "OpenID Connect login, session and logout handling for web applications "
            "behind an identity broker."
        ),
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.database_session_manager = database or db_manager
    if identity is not None:
        app.state.identity = identity

    # Last added runs first: CORS, then request ID, access log and session cookie
    app.add_middleware(
        SessionCookieMiddleware,
        cookie_service=SessionCookieService(
            settings.cookie.secret, ttl_seconds=settings.cookie.ttl_ms // 1000
        ),
        settings=settings.cookie,
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LoginRequiredError, login_required_handler)
    app.add_exception_handler(IdmError, idm_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health.router)
    app.include_router(auth.make_router(settings.identity))

    @app.get("/", tags=["root"])
    async def root():
        """Basic service information."""
        return {
            "message": settings.app_name,
            "version": settings.version,
            "status": "running",
        }

    return app


def run() -> None:
    """Serve the application with uvicorn on the configured interface and port."""
    settings = get_settings()
    uvicorn.run(
        "idm.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
