"""User-facing notifications emitted by sync controllers.

Controllers receive a Notifier instead of reaching for a process-wide modal
registry, so every caller decides how messages are shown.
"""

import logging
from typing import List, Protocol

from .models import ClassifiedError, Notification

logger = logging.getLogger(__name__)

_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Default notifier: writes notifications to the log."""

    def notify(self, notification: Notification) -> None:
        level = _LEVELS.get(notification.level, logging.INFO)
        logger.log(level, f"{notification.title}: {notification.message}")


class RecordingNotifier:
    """Notifier that keeps every notification in memory.

    Useful for embedding applications that render notifications later, and
    for tests.
    """

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def last(self) -> Notification:
        return self.notifications[-1]


def error_notification(title: str, error: ClassifiedError) -> Notification:
    return Notification(
        level="error",
        title=title,
        message=error.user_message,
        retryable=error.retryable,
    )
