"""Structured logging setup.

Import `init_observability` and call it once, before the FastAPI app is created.
Log lines never carry credentials: passwords, tokens and the auth header are
masked by `redact_credentials` before rendering.
"""
from __future__ import annotations

import logging
import os

import structlog

from settings import get_settings

__all__ = ["init_observability", "redact_credentials"]

REDACTED = "***"
SENSITIVE_KEYS = {"password", "token", "jwt_secret", "github_client_secret", "authorization"}

_configured = False


def redact_credentials(logger, method_name: str, event_dict: dict) -> dict:
    """Mask credential-looking fields, one level into dict values (e.g. headers)."""
    sensitive = SENSITIVE_KEYS | {get_settings().auth_header_name.lower()}
    for key, value in event_dict.items():
        if key.lower() in sensitive:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if str(k).lower() in sensitive else v for k, v in value.items()
            }
    return event_dict


def _setup_logging() -> None:
    log_format = os.getenv("LOG_FORMAT", "json").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.addHandler(logging.StreamHandler())
    root_logger.setLevel(log_level)

    # One line per request comes from RequestIdMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    # SQL echo only when asked for explicitly
    logging.getLogger("sqlalchemy.engine").setLevel(os.getenv("SQL_LOG_LEVEL", "WARNING").upper())
    # passlib logs a traceback when it probes newer bcrypt builds for a version
    logging.getLogger("passlib").setLevel(logging.ERROR)


def init_observability() -> None:
    """Setup logging. Safe to call more than once."""
    global _configured
    if _configured:
        return

    _setup_logging()
    _configured = True

    structlog.get_logger(__name__).info("Observability initialized")
