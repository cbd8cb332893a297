"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from ..config.celery import celery_app

SEND_EMAIL_TASK = "notifications.send_email"


class TaskDispatcher:
    """Internal facade used by application layer to schedule tasks.

    Implements the NotificationQueue port.
    """

    def enqueue_email(self, notification_id: int) -> str:
        result = celery_app.send_task(SEND_EMAIL_TASK, kwargs={"notification_id": notification_id})
        return result.id
