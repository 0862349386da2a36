"""
User Notifications

Transient success/error messages raised by the engine. The page shell plugs
in whatever toast mechanism its host has; the default writes to the log.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LoggingNotifier:
    """Notifier that sends messages to the dynpage log."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.warning(message)


@dataclass
class Notification:
    level: Literal["success", "error"]
    message: str


@dataclass
class RecordingNotifier:
    """Notifier that keeps every message, newest last."""

    messages: list[Notification] = field(default_factory=list)

    def success(self, message: str) -> None:
        self.messages.append(Notification("success", message))

    def error(self, message: str) -> None:
        self.messages.append(Notification("error", message))

    @property
    def errors(self) -> list[str]:
        return [n.message for n in self.messages if n.level == "error"]
