"""
Notification outbox repository interface.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Notification, NotificationStatus


class NotificationRepository(ABC):

    @abstractmethod
    async def add(self, notification: Notification) -> Optional[Notification]:
        """Insert a row; returns None when (order_id, kind) already exists."""

    @abstractmethod
    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        ...

    @abstractmethod
    async def list_by_order(self, order_id: int) -> List[Notification]:
        ...

    @abstractmethod
    async def list_unsent(self, status: Optional[NotificationStatus] = None, limit: int = 100) -> List[Notification]:
        ...

    @abstractmethod
    async def mark_sent(self, notification_id: int) -> bool:
        """Conditional: only rows not already sent are updated."""

    @abstractmethod
    async def mark_failed(self, notification_id: int, error: str) -> None:
        ...
