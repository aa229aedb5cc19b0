"""Session token verification.

Identity is owned by the external authentication collaborator; this
module only validates the HS256 session JWTs it issues and extracts the
caller's identity. ``issue_session_token`` mints tokens for local
development and tests.

Auth transports:
  - Bearer: ``Authorization: Bearer <session_jwt>``
  - Session cookie: ``stashbox_session=<session_jwt>``
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import jwt
from starlette.requests import Request

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_ALGORITHMS = ['HS256']
DEFAULT_TTL_SECONDS = 7 * 24 * 3600
BEARER_PREFIX = 'Bearer '
SESSION_COOKIE_NAME = 'stashbox_session'

# ── Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified identity extracted from a valid session token.

    Attributes:
        user_id: Stable user id (``sub`` claim).
        username: Public username used for sharing.
        raw_claims: Full decoded JWT payload for downstream use.
    """

    user_id: str
    username: str = ''
    raw_claims: dict[str, Any] = field(default_factory=dict)


class TokenVerificationError(Exception):
    """Raised when token verification fails."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


# ── Helpers ───────────────────────────────────────────────────────────


def extract_bearer_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header, if any."""
    header = request.headers.get('authorization', '')
    if not header.startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def issue_session_token(
    user_id: str,
    secret: str,
    *,
    username: str = '',
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
) -> str:
    now = int(time.time())
    claims = {
        'sub': user_id,
        'username': username,
        'type': 'session',
        'iat': now,
        'exp': now + ttl_seconds,
    }
    return jwt.encode(claims, secret, algorithm='HS256')


# ── Verifier ──────────────────────────────────────────────────────────


class SessionTokenVerifier:
    """Validates HS256 session tokens signed with the shared secret."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError('secret is required')
        self._secret = secret

    def verify(self, token: str) -> AuthIdentity:
        """Verify a token and return the identity.

        Raises:
            TokenVerificationError: expired, malformed or missing claims.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=DEFAULT_ALGORITHMS,
                options={'require': ['sub', 'exp'], 'verify_exp': True},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenVerificationError('token_expired', 'Session has expired') from exc
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError('invalid_token', str(exc)) from exc

        return AuthIdentity(
            user_id=str(claims['sub']),
            username=claims.get('username', ''),
            raw_claims=claims,
        )
