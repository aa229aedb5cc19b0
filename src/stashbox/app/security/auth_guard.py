"""Auth guard middleware.

Extracts and verifies session credentials from incoming requests,
setting ``request.state.auth_identity`` on success. Protected routes
receive a 401 response when no valid credentials are present.

Transport precedence: Bearer token > session cookie.

Exempt paths (never require auth):
  - ``/api/v1/public/*``: anonymous public views
  - ``/health``, ``/metrics``
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .token_verify import (
    SESSION_COOKIE_NAME,
    AuthIdentity,
    SessionTokenVerifier,
    TokenVerificationError,
    extract_bearer_token,
)

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_EXEMPT_PREFIXES: tuple[str, ...] = (
    '/api/v1/public/',
    '/health',
    '/metrics',
    '/docs',
    '/openapi.json',
)


# ── Middleware ────────────────────────────────────────────────────────


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that enforces authentication on requests.

    For each request:
    1. If the path is exempt, pass through without auth.
    2. Attempt to extract credentials (Bearer token, then session cookie).
    3. If valid credentials found, set ``request.state.auth_identity``.
    4. Otherwise return 401 with an error code.
    """

    def __init__(
        self,
        app,
        token_verifier: SessionTokenVerifier,
        exempt_prefixes: tuple[str, ...] = DEFAULT_EXEMPT_PREFIXES,
        session_cookie_name: str = SESSION_COOKIE_NAME,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._exempt_prefixes = exempt_prefixes
        self._session_cookie_name = session_cookie_name

    def _is_exempt(self, path: str) -> bool:
        for prefix in self._exempt_prefixes:
            if path == prefix or path.startswith(prefix):
                return True
        return False

    async def dispatch(
        self, request: Request, call_next
    ) -> Response:
        request.state.auth_identity = None

        if request.method == 'OPTIONS' or self._is_exempt(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request) or request.cookies.get(
            self._session_cookie_name
        )
        if not token:
            return JSONResponse(
                status_code=401,
                content={
                    'success': False,
                    'error': 'unauthorized',
                    'detail': 'Authentication required',
                },
                headers={'WWW-Authenticate': 'Bearer'},
            )

        try:
            request.state.auth_identity = self._verifier.verify(token)
        except TokenVerificationError as exc:
            return JSONResponse(
                status_code=401,
                content={
                    'success': False,
                    'error': 'unauthorized',
                    'code': exc.code,
                    'detail': exc.detail,
                },
                headers={'WWW-Authenticate': 'Bearer'},
            )
        return await call_next(request)


# ── Dependency helper ────────────────────────────────────────────────


def get_auth_identity(request: Request) -> AuthIdentity:
    """FastAPI dependency that returns the authenticated identity.

    Raises:
        HTTPException: 401 if no authenticated identity on the request.
    """
    from fastapi import HTTPException

    identity: AuthIdentity | None = getattr(
        request.state, 'auth_identity', None
    )
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={
                'success': False,
                'error': 'unauthorized',
                'detail': 'Authentication required',
            },
            headers={'WWW-Authenticate': 'Bearer'},
        )
    return identity
