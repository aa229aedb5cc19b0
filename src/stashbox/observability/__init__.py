"""Observability infrastructure for stashbox.

Structured logging with request-ID correlation and secret redaction,
Prometheus metrics, and the HTTP middleware that feeds both.

Quick start::

    from stashbox.observability import configure_logging, get_logger
    from stashbox.observability.middleware import (
        MetricsMiddleware,
        RequestIdMiddleware,
        RequestLoggingMiddleware,
    )

    configure_logging(environment="local")
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, redact_token, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "redact_token",
    "request_id_ctx",
]
