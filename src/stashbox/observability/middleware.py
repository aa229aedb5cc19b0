"""HTTP middleware for the stashbox API.

- ``RequestIdMiddleware``: accepts or generates ``X-Request-ID``, exposes
  it to the log pipeline and echoes it on the response.
- ``MetricsMiddleware``: Prometheus request counters and latency.
- ``RequestLoggingMiddleware``: one ``request_completed`` entry per request
  with the resource kind, the authenticated user and whether it was an
  anonymous public-link view.

Public-link paths embed bearer-equivalent tokens, so every path that
reaches a label or a log line goes through ``_normalize_path`` first.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")

_PUBLIC_PREFIX = "/api/v1/public/"

_PATH_NORMALIZERS = [
    (re.compile(r"/api/v1/public/([^/]+)/collections/[^/]+"), r"/api/v1/public/\1/collections/{token}"),
    (re.compile(r"/api/v1/public/([^/]+)/(?!collections/)[^/]+"), r"/api/v1/public/\1/{token}"),
]

# Path segment -> resource kind, for both the owner API and public links.
_KIND_SEGMENTS = {
    "clipboards": "clipboard",
    "links": "link_category",
    "commands": "command",
}
_KIND_PATH = re.compile(r"^/api/v1/(?:public/)?([^/]+)")


def _normalize_path(path: str) -> str:
    """Replace public tokens with ``{token}`` so they never leave the process."""
    for pattern, replacement in _PATH_NORMALIZERS:
        path = pattern.sub(replacement, path)
    return path


def _resource_kind(path: str) -> str | None:
    match = _KIND_PATH.match(path)
    if match is None:
        return None
    return _KIND_SEGMENTS.get(match.group(1))


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate or accept X-Request-ID and propagate it via contextvars.

    Malformed IDs are replaced with a fresh UUID.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        incoming_id = request.headers.get("x-request-id", "")
        if incoming_id and _VALID_REQUEST_ID.match(incoming_id):
            rid = incoming_id
        else:
            rid = str(uuid.uuid4())

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = rid
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        path = _normalize_path(request.url.path)
        method = request.method

        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status="500").inc()
            raise
        finally:
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(
                time.perf_counter() - start
            )

        HTTP_REQUESTS_TOTAL.labels(
            method=method, path=path, status=str(response.status_code),
        ).inc()
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every completed request.

    Server errors log at ERROR and rejected requests (4xx) at INFO with
    ``rejected=True``; anonymous public-link views are flagged with
    ``public_view=True`` and never carry a user id.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        raw_path = request.url.path
        fields = {
            "method": request.method,
            "path": _normalize_path(raw_path),
            "status": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }
        kind = _resource_kind(raw_path)
        if kind is not None:
            fields["kind"] = kind
        if raw_path.startswith(_PUBLIC_PREFIX):
            fields["public_view"] = True
        else:
            identity = getattr(request.state, "auth_identity", None)
            if identity is not None:
                fields["user_id"] = identity.user_id

        if response.status_code >= 500:
            logger.error("request_completed", **fields)
        elif response.status_code >= 400:
            logger.info("request_completed", rejected=True, **fields)
        else:
            logger.info("request_completed", **fields)
        return response
