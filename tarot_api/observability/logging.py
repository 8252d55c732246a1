"""
Structured Logging with Structlog.

JSON (or console) logs carrying the request id, service name and version.
Credentials never reach the log stream: bearer tokens, passwords and the
provider key are masked by a processor before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from tarot_api.config import Settings

# Keys whose values are masked wherever they appear in an event
REDACTED_KEYS = frozenset(
    {"api_token", "token", "password", "new_password", "password_hash", "admin_secret", "key"}
)

# Chatty third-party loggers; httpx logs full request URLs including ?key=
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def mask(value: Any) -> str:
    """Keep a short prefix so tokens stay correlatable in logs."""
    text = str(value)
    if len(text) <= 8:
        return "***"
    return f"{text[:4]}***"


def redact_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in REDACTED_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = mask(event_dict[key])
    return event_dict


def _app_context_processor(settings: Settings) -> Processor:
    def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["service"] = settings.service_name
        event_dict["version"] = settings.api_version
        return event_dict

    return add_app_context


def setup_logging(settings: Settings) -> None:
    """
    Configure structlog on top of the stdlib logging module.

    A JSON line looks like:
    {
        "event": "reading_completed",
        "level": "info",
        "timestamp": "2026-10-19T08:00:00.123456Z",
        "logger": "tarot_api.services.metering",
        "service": "tarot-gateway-api",
        "version": "0.1.0",
        "request_id": "9f1c...",
        "account_id": "...",
        "remaining": 7
    }
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _app_context_processor(settings),
        redact_credentials,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("quota_adjusted", account_id=account_id, kind="calls")
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind key/value pairs to every log line emitted inside the block.

    Usage:
        with log_context(request_id=request_id):
            logger.info("request_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context)
