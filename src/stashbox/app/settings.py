"""Stashbox service configuration settings.

StashboxSettings is the single configuration object accepted by create_app().
It is intentionally a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .sharing.tokens import MIN_TOKEN_BYTES, TOKEN_BYTES

LOCAL_DEV_SESSION_SECRET = "stashbox-local-development-secret-0000"


@dataclass(frozen=True, slots=True)
class StashboxSettings:
    """Configuration for the stashbox FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply a real session_secret.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Session / Auth ─────────────────────────────────────────────
    session_secret: str = LOCAL_DEV_SESSION_SECRET
    """Secret used to verify session tokens. Must be >=32 chars in non-local."""

    # ── Sharing ────────────────────────────────────────────────────
    public_token_bytes: int = TOKEN_BYTES
    """Entropy of public share tokens in bytes."""

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = (
        "http://localhost:5173",
        "http://localhost:3000",
    )
    """Allowed CORS origins."""

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.public_token_bytes < MIN_TOKEN_BYTES:
            errors.append(
                f"public_token_bytes must be >= {MIN_TOKEN_BYTES}"
            )
        if not self.is_local:
            if (
                not self.session_secret
                or self.session_secret == LOCAL_DEV_SESSION_SECRET
                or len(self.session_secret) < 32
            ):
                errors.append(
                    f"{self.environment}: session_secret must be >= 32 characters"
                )
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> StashboxSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct StashboxSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else cls.cors_origins

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            session_secret=env.get("SESSION_SECRET", LOCAL_DEV_SESSION_SECRET),
            public_token_bytes=int(env.get("PUBLIC_TOKEN_BYTES", TOKEN_BYTES)),
            cors_origins=cors,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_json=env.get("LOG_FORMAT", "json") == "json",
        )
