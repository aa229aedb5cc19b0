"""Public share token generation and revocation.

Security invariants:
  - Tokens come from ``secrets.token_urlsafe`` (256 bits by default).
  - A token is unique within its resource kind and is never issued twice,
    even after it has been revoked.
  - A revoked token never resolves again.
  - Full tokens are never logged; the logging pipeline truncates them
    and call sites log ``redact_token`` prefixes.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from stashbox.app.errors import NotFound
from stashbox.observability.logging import get_logger, redact_token

from .model import ResourceKind

if TYPE_CHECKING:
    from stashbox.app.protocols import TokenRegistry

logger = get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_BYTES = 32  # 256-bit tokens.
MIN_TOKEN_BYTES = 16  # 128 bits is the floor.
_MAX_ISSUE_ATTEMPTS = 5


class PublicTokenIssuer:
    """Issues, revokes and checks public share tokens."""

    def __init__(self, registry: TokenRegistry, *, token_bytes: int = TOKEN_BYTES) -> None:
        if token_bytes < MIN_TOKEN_BYTES:
            raise ValueError(
                f'token_bytes must be >= {MIN_TOKEN_BYTES}, got {token_bytes}'
            )
        self._registry = registry
        self._token_bytes = token_bytes

    async def issue(self, kind: ResourceKind) -> str:
        """Return a fresh token never before issued for ``kind``."""
        for _ in range(_MAX_ISSUE_ATTEMPTS):
            token = secrets.token_urlsafe(self._token_bytes)
            if not await self._registry.is_issued(kind, token):
                await self._registry.record(kind, token)
                logger.info(
                    'public_token_issued',
                    kind=kind.value,
                    token_prefix=redact_token(token),
                )
                return token
        raise RuntimeError('Could not issue a unique public token')

    async def revoke(self, kind: ResourceKind, token: str) -> None:
        await self._registry.mark_revoked(kind, token)
        logger.info(
            'public_token_revoked',
            kind=kind.value,
            token_prefix=redact_token(token),
        )

    async def ensure_live(self, kind: ResourceKind, token: str) -> None:
        """Raise ``NotFound`` unless ``token`` was issued and not revoked."""
        if not await self._registry.is_issued(kind, token):
            raise NotFound('Public link not found.')
        if await self._registry.is_revoked(kind, token):
            raise NotFound('Public link not found.')
