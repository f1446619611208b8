"""
The notify module defines the sink the engine reports outcomes to. The presentation layer decides
how to show them (a toast, a status bar, a line on the terminal); the engine only says what happened
and for how long it is worth showing.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MS = 3000


class NotificationKind(enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    message: str
    kind: NotificationKind
    duration_ms: int


class Notifier(Protocol):
    def notify(self, message: str, kind: NotificationKind, duration_ms: int) -> None: ...


class LoggingNotifier:
    """Sends notifications to the log. Used when nobody else is listening."""

    def notify(self, message: str, kind: NotificationKind, duration_ms: int) -> None:
        if kind == NotificationKind.ERROR:
            logger.error(message)
        else:
            logger.info(message)
