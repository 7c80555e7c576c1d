"""
Notification service for user-facing messages.
Every recoverable error and every completed action ends up here as a
short-lived notification for the presentation layer to display.
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from config import get_settings

logger = logging.getLogger(__name__)


LEVELS = ("success", "error", "info")


@dataclass
class Notification:
    """A single user-facing message."""
    id: int
    message: str
    level: str  # "success", "error" or "info"
    created_at: datetime = field(default_factory=datetime.now)


class NotificationCenter:
    """
    Ordered queue of notifications with time-based expiry.
    Configuration loaded from centralized config module.
    """

    def __init__(self, ttl_seconds: Optional[float] = None):
        """Initialize the queue; TTL defaults to the configured notification lifetime."""
        if ttl_seconds is None:
            ttl_seconds = get_settings().notification_ttl_seconds
        self.ttl = timedelta(seconds=ttl_seconds)
        self._ids = itertools.count(1)
        self._notifications: List[Notification] = []

    def push(self, message: str, level: str = "info") -> Notification:
        """
        Add a notification.

        Args:
            message: Text shown to the user
            level: "success", "error" or "info"

        Returns:
            The created Notification
        """
        if level not in LEVELS:
            raise ValueError(f"Invalid notification level: {level}. Must be one of {LEVELS}.")

        notification = Notification(id=next(self._ids), message=message, level=level)
        self._notifications.append(notification)

        if level == "error":
            logger.warning(f"User notification [{level}]: {message}")
        else:
            logger.info(f"User notification [{level}]: {message}")
        return notification

    def success(self, message: str) -> Notification:
        return self.push(message, "success")

    def error(self, message: str) -> Notification:
        return self.push(message, "error")

    def info(self, message: str) -> Notification:
        return self.push(message, "info")

    def dismiss(self, notification_id: int) -> bool:
        """Remove a notification by id. Returns False if it was already gone."""
        before = len(self._notifications)
        self._notifications = [n for n in self._notifications if n.id != notification_id]
        return len(self._notifications) < before

    def expire(self, now: Optional[datetime] = None) -> List[Notification]:
        """
        Drop notifications older than the TTL.

        Returns:
            The expired notifications
        """
        now = now or datetime.now()
        expired = [n for n in self._notifications if now - n.created_at >= self.ttl]
        if expired:
            self._notifications = [n for n in self._notifications if now - n.created_at < self.ttl]
        return expired

    def active(self) -> List[Notification]:
        """Current notifications, oldest first."""
        return list(self._notifications)

    def latest(self) -> Optional[Notification]:
        return self._notifications[-1] if self._notifications else None

    def clear(self):
        self._notifications.clear()

    def __len__(self) -> int:
        return len(self._notifications)
