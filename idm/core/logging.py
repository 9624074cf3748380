"""Structured logging for the session service.

Everything goes through structlog, including records emitted by uvicorn,
SQLAlchemy and httpx through stdlib logging. Token material never reaches
the output: values of credential-bearing fields are masked before rendering.
"""

import logging
import sys
from typing import Any, Iterable

import structlog
from structlog.types import EventDict, Processor

REDACTED = "[redacted]"

SENSITIVE_FIELDS = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "code",
        "client_secret",
        "state",
        "cookie",
        "set-cookie",
        "authorization",
        "encryption_key",
        "secret",
    }
)


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_FIELDS else _mask(item)
            for key, item in value.items()
        }
    if type(value) in (list, tuple):
        return type(value)(_mask(item) for item in value)
    return value


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential values, including ones nested in dicts and lists."""
    return _mask(event_dict)


class AppContext:
    """Processor tagging every entry with the service name."""

    def __init__(self, app_name: str):
        self.app_name = app_name

    def __call__(self, logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app", self.app_name)
        return event_dict


def build_processors(app_name: str) -> list[Processor]:
    """Processors shared by structlog and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        AppContext(app_name),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]


def _quiet(names: Iterable[str], level: int) -> None:
    for name in names:
        logging.getLogger(name).setLevel(level)


def configure_logging(
    log_level: str = "INFO",
    app_name: str = "idm-session-service",
    debug: bool = False,
) -> None:
    """Install structlog as the renderer for all application logging.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        app_name: Value of the ``app`` field on every entry
        debug: Render human-readable console lines instead of JSON
    """
    numeric_level = logging.getLevelName(log_level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    shared_processors = build_processors(app_name)
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if debug
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[structlog.stdlib.ExtraAdder()] + shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    logging.getLogger("uvicorn").setLevel(numeric_level)
    # SQL echo and per-request client lines only when debugging
    _quiet(
        ["uvicorn.access", "sqlalchemy.engine", "httpx"],
        logging.INFO if debug else logging.WARNING,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("auth_attempt_started", policy_name="b2c_1a_signin")
    """
    return structlog.get_logger(name)
