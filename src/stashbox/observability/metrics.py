"""Prometheus metrics for stashbox.

Usage::

    from stashbox.observability.metrics import SHARE_ACTIONS_TOTAL

    SHARE_ACTIONS_TOTAL.labels(kind="clipboard", action="add", outcome="ok").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "stashbox_http_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "stashbox_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "stashbox_http_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Sharing metrics
# ---------------------------------------------------------------------------

SHARE_ACTIONS_TOTAL = Counter(
    "stashbox_share_actions_total",
    "Sharing gateway actions by kind, action and outcome code.",
    labelnames=["kind", "action", "outcome"],
    registry=REGISTRY,
)

PUBLIC_RESOLUTIONS_TOTAL = Counter(
    "stashbox_public_resolutions_total",
    "Anonymous public-token resolutions by kind and outcome.",
    labelnames=["kind", "outcome"],
    registry=REGISTRY,
)

RESOURCE_SAVES_TOTAL = Counter(
    "stashbox_resource_saves_total",
    "Resource store writes by kind, write path (owned/shared) and outcome.",
    labelnames=["kind", "path", "outcome"],
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Sync client metrics
# ---------------------------------------------------------------------------

SYNC_WRITES_TOTAL = Counter(
    "stashbox_sync_writes_total",
    "Sync client writes by kind, channel type (owned/shared) and outcome.",
    labelnames=["kind", "channel", "outcome"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
