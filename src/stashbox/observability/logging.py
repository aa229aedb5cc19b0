"""Structured logging for stashbox.

One structlog pipeline serves the HTTP service and the sync client. Every
entry carries the service name, the deployment environment and, inside a
request, the ``request_id`` set by ``RequestIdMiddleware``.

Public share tokens and session credentials never reach a log sink in
full: the ``_redact_secrets`` processor truncates any value logged under
one of ``SECRET_KEYS``. Call sites that want a correlatable prefix log
``token_prefix=redact_token(token)`` instead.

Usage::

    from stashbox.observability.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_output=True, environment="local")
    logger = get_logger(__name__)
    logger.info("share_action", kind="clipboard", action="add")
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from typing import Any

import structlog

SERVICE_NAME = "stashbox"

# Context variable for request-scoped correlation ID.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Event keys whose values are credentials or bearer-equivalent links.
SECRET_KEYS = frozenset({
    "public_token",
    "token",
    "session_token",
    "session_secret",
    "authorization",
})

TOKEN_PREFIX_LENGTH = 8  # Characters kept for log correlation.

_configured = False


def redact_token(token: str | None) -> str:
    """Safely truncate a token to a prefix for logging.

    Returns ``<prefix>...`` or ``<redacted>`` for missing/short tokens.
    """
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return "<redacted>"
    return f"{token[:TOKEN_PREFIX_LENGTH]}..."


def _redact_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    for key in SECRET_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value is not None:
            event_dict[key] = redact_token(str(value))
    return event_dict


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict["request_id"] = rid
    return event_dict


def _service_fields(environment: str):
    def add_service(
        logger: logging.Logger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service


def build_processors(environment: str = "local") -> list:
    """Processors shared by structlog loggers and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        _service_fields(environment),
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    environment: str | None = None,
    force: bool = False,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        level: Log level name. Defaults to LOG_LEVEL or INFO.
        json_output: JSON lines when True, console output when False.
            Defaults to LOG_FORMAT == "json".
        environment: Deployment environment stamped on every entry.
            Defaults to ENVIRONMENT or "local".
        force: Reconfigure even if logging was already configured.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"
    environment = environment or os.environ.get("ENVIRONMENT", "local")

    shared_processors = build_processors(environment)

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # uvicorn and httpx log through stdlib; give them the same fields.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Access lines carry raw public-link paths; the request logger emits
    # normalized ones instead.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
