"""Notification ports: the queue that hands outbox rows to workers, and the mail transport."""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationQueue(Protocol):

    def enqueue_email(self, notification_id: int) -> str:
        """Schedule delivery; returns the queue's task id. Raises on broker failure."""
        ...


@runtime_checkable
class Mailer(Protocol):

    def send(self, recipients: list[str], subject: str, text_body: str, html_body: str) -> None:
        """Deliver one multipart message. Raises on any delivery failure."""
        ...
