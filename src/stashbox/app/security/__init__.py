"""Request authentication for the stashbox API."""

from .auth_guard import AuthGuardMiddleware, get_auth_identity
from .token_verify import (
    AuthIdentity,
    SessionTokenVerifier,
    TokenVerificationError,
    issue_session_token,
)

__all__ = [
    'AuthGuardMiddleware',
    'AuthIdentity',
    'SessionTokenVerifier',
    'TokenVerificationError',
    'get_auth_identity',
    'issue_session_token',
]
