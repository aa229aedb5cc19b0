"""Public token issuance and revocation.

Validates:
  - Tokens are URL-safe, 256-bit by default and never reissued.
  - Revoked and never-issued tokens fail ensure_live with NotFound.
  - Token entropy below 128 bits is refused.
  - Logged tokens are redacted.
"""

from __future__ import annotations

import pytest

from stashbox.app.errors import NotFound
from stashbox.app.inmemory import InMemoryTokenRegistry
from stashbox.app.sharing.model import ResourceKind
from stashbox.app.sharing.tokens import PublicTokenIssuer, redact_token

KIND = ResourceKind.CLIPBOARD


class TestIssue:
    @pytest.mark.asyncio
    async def test_default_token_is_256_bit_urlsafe(self):
        issuer = PublicTokenIssuer(InMemoryTokenRegistry())
        token = await issuer.issue(KIND)
        # token_urlsafe(32) -> 43 base64url characters.
        assert len(token) == 43
        assert all(c.isalnum() or c in '-_' for c in token)

    @pytest.mark.asyncio
    async def test_tokens_are_unique_and_recorded(self):
        registry = InMemoryTokenRegistry()
        issuer = PublicTokenIssuer(registry)
        tokens = {await issuer.issue(KIND) for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert await registry.is_issued(KIND, token)

    @pytest.mark.asyncio
    async def test_registry_is_scoped_per_kind(self):
        registry = InMemoryTokenRegistry()
        issuer = PublicTokenIssuer(registry)
        token = await issuer.issue(KIND)
        assert not await registry.is_issued(ResourceKind.COMMAND, token)

    def test_low_entropy_rejected(self):
        with pytest.raises(ValueError, match='token_bytes'):
            PublicTokenIssuer(InMemoryTokenRegistry(), token_bytes=8)


class TestEnsureLive:
    @pytest.mark.asyncio
    async def test_issued_token_is_live(self):
        issuer = PublicTokenIssuer(InMemoryTokenRegistry())
        token = await issuer.issue(KIND)
        await issuer.ensure_live(KIND, token)

    @pytest.mark.asyncio
    async def test_never_issued_token_not_found(self):
        issuer = PublicTokenIssuer(InMemoryTokenRegistry())
        with pytest.raises(NotFound):
            await issuer.ensure_live(KIND, 'made-up-token-value')

    @pytest.mark.asyncio
    async def test_revoked_token_stays_dead(self):
        issuer = PublicTokenIssuer(InMemoryTokenRegistry())
        token = await issuer.issue(KIND)
        await issuer.revoke(KIND, token)
        with pytest.raises(NotFound):
            await issuer.ensure_live(KIND, token)
        # A fresh issue never hands the revoked value back.
        assert await issuer.issue(KIND) != token


class TestRedact:
    def test_keeps_prefix_only(self):
        assert redact_token('abcdefghijklmnop') == 'abcdefgh...'

    @pytest.mark.parametrize('value', [None, '', 'short'])
    def test_short_or_missing(self, value):
        assert redact_token(value) == '<redacted>'
