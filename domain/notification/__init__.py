"""Notification domain exports."""
from .entity import Notification, NotificationKind, NotificationStatus
from .repository import NotificationRepository

__all__ = ["Notification", "NotificationKind", "NotificationStatus", "NotificationRepository"]
