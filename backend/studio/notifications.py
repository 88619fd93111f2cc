"""Transient user notifications (toasts)."""

import logging
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field
from rich.console import Console

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    level: NotificationLevel
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """Collects notifications for whoever renders them.

    Nothing is persisted; ``history`` only covers this session.
    """

    def __init__(self):
        self.history: list[Notification] = []

    def notify(self, level: NotificationLevel, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self.history.append(notification)
        self.emit(notification)
        return notification

    def info(self, message: str) -> Notification:
        return self.notify(NotificationLevel.INFO, message)

    def success(self, message: str) -> Notification:
        return self.notify(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> Notification:
        return self.notify(NotificationLevel.ERROR, message)

    def emit(self, notification: Notification):
        logger.debug(f"[{notification.level.value}] {notification.message}")

    def messages(self, level: NotificationLevel | None = None) -> list[str]:
        return [n.message for n in self.history if level is None or n.level == level]


class ConsoleNotifier(Notifier):
    """Prints notifications to the terminal."""

    STYLES = {
        NotificationLevel.INFO: "cyan",
        NotificationLevel.SUCCESS: "green",
        NotificationLevel.ERROR: "bold red",
    }

    def __init__(self, console: Console | None = None):
        super().__init__()
        self.console = console or Console()

    def emit(self, notification: Notification):
        self.console.print(notification.message, style=self.STYLES[notification.level], markup=False)
