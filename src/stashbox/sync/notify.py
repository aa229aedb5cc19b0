"""User-visible failure notifications from the sync client.

Failures never block editing; they are handed to a Notifier, which a UI
renders as a toast and a headless caller can simply log.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from stashbox.app.errors import SharingError
from stashbox.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Notification:
    """One failure to surface.

    Attributes:
        kind: Resource kind value (``clipboard``, ``link_category``...).
        operation: ``save`` for content writes, otherwise the share action.
        error: The typed failure.
        client_key: Local item the failure concerns, when there is one.
    """

    kind: str
    operation: str
    error: SharingError
    client_key: str | None = None

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.detail

    @property
    def retryable(self) -> bool:
        return not self.error.permanent


@runtime_checkable
class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Default notifier: a structured warning per failure."""

    def notify(self, notification: Notification) -> None:
        logger.warning(
            "sync_failure",
            kind=notification.kind,
            operation=notification.operation,
            code=notification.code,
            detail=notification.message,
            client_key=notification.client_key,
        )


class CollectingNotifier:
    """Keeps notifications in a list, for embedding UIs that poll."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def codes(self) -> list[str]:
        return [n.code for n in self.notifications]

    def clear(self) -> None:
        self.notifications.clear()
