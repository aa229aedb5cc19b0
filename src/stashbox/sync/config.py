"""Sync client configuration."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SyncClientConfig:
    """Knobs for one SyncClient.

    Attributes:
        debounce_seconds: Quiescence window after the last edit on a channel
            before it is written.
        request_timeout: Seconds before a write is abandoned and reported as
            a transient network failure.
        max_retries: Automatic retries for transient failures. 0 leaves
            retrying to the next edit.
        backoff_ms: Sleep before each automatic retry; the last value is
            reused when there are more retries than entries.
    """

    debounce_seconds: float = 1.0
    request_timeout: float = 15.0
    max_retries: int = 0
    backoff_ms: list[int] = field(default_factory=lambda: [250, 1000, 4000])

    def backoff_for(self, attempt: int) -> float:
        """Backoff in seconds before retry number ``attempt`` (0-based)."""
        if not self.backoff_ms:
            return 0.0
        return self.backoff_ms[min(attempt, len(self.backoff_ms) - 1)] / 1000
