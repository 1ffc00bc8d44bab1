"""
Notification management system
"""

import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, List, Optional

from .logger import get_logger

logger = get_logger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A user-visible message"""
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)


Subscriber = Callable[[Notification], None]


class NotificationManager:
    """Collects user-visible notifications and hands them to a subscriber"""

    def __init__(self, max_notifications: int = 50, subscriber: Optional[Subscriber] = None):
        self.notifications: Deque[Notification] = deque(maxlen=max_notifications)
        self.subscriber = subscriber

    def send_notification(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> Notification:
        """Record a notification, log it and forward it to the subscriber"""
        notification = Notification(message=message, level=NotificationLevel(level))
        self.notifications.append(notification)

        if notification.level is NotificationLevel.ERROR:
            logger.error(message)
        elif notification.level is NotificationLevel.WARNING:
            logger.warning(message)
        else:
            logger.info(message)

        if self.subscriber is not None:
            self.subscriber(notification)
        return notification

    def info(self, message: str) -> Notification:
        return self.send_notification(message, NotificationLevel.INFO)

    def warning(self, message: str) -> Notification:
        return self.send_notification(message, NotificationLevel.WARNING)

    def error(self, message: str) -> Notification:
        return self.send_notification(message, NotificationLevel.ERROR)

    def dismiss(self, notification_id: str) -> bool:
        for notification in self.notifications:
            if notification.id == notification_id:
                self.notifications.remove(notification)
                return True
        return False

    def messages(self, level: Optional[NotificationLevel] = None) -> List[str]:
        """Messages in arrival order, optionally only one level"""
        return [n.message for n in self.notifications if level is None or n.level is NotificationLevel(level)]

    def clear(self) -> None:
        self.notifications.clear()
