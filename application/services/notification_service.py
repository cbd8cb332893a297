"""
Notification outbox operations: delivery (worker side), listing and retry.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional

from application.ports.notifications import Mailer, NotificationQueue
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.notification.entity import Notification, NotificationKind, NotificationStatus
from shared.codes import BusinessCode


logger = get_logger(__name__)


class NotificationNotFoundException(BusinessException):
    def __init__(self, notification_id: int):
        super().__init__(
            code=BusinessCode.NOTIFICATION_NOT_FOUND,
            message="Notification not found",
            error_type="NOTIFICATION_NOT_FOUND",
            details={"notification_id": notification_id},
        )


def split_recipients(recipient: str) -> list[str]:
    return [r.strip() for r in recipient.split(",") if r.strip()]


class NotificationService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        queue: Optional[NotificationQueue] = None,
        mailer: Optional[Mailer] = None,
        admin_recipients: Optional[list[str]] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._queue = queue
        self._mailer = mailer
        self._admin_recipients = list(admin_recipients or [])

    def _recipients(self, notification: Notification) -> list[str]:
        recipients = split_recipients(notification.recipient)
        if not recipients and notification.kind == NotificationKind.ADMIN_NOTIFICATION:
            # 下单时未配置管理员收件人的行，以当前配置投递
            recipients = list(self._admin_recipients)
        if not recipients:
            raise ValueError(f"Notification {notification.id} has no recipients")
        return recipients

    async def deliver(self, notification_id: int) -> bool:
        """Send one outbox row. Returns False when it was already sent.

        Delivery errors are recorded on the row and re-raised so the worker can retry.
        """
        if self._mailer is None:
            raise RuntimeError("NotificationService.deliver requires a mailer")
        async with self._uow_factory(readonly=True) as uow:
            notification = await uow.notifications.get_by_id(notification_id)
        if notification is None:
            raise NotificationNotFoundException(notification_id)
        if notification.status == NotificationStatus.SENT:
            logger.info("notification_already_sent", notification_id=notification_id)
            return False

        try:
            await asyncio.to_thread(
                self._mailer.send,
                self._recipients(notification),
                notification.subject,
                notification.text_body,
                notification.html_body,
            )
        except Exception as exc:
            async with self._uow_factory() as uow:
                await uow.notifications.mark_failed(notification_id, str(exc) or type(exc).__name__)
            raise

        async with self._uow_factory() as uow:
            updated = await uow.notifications.mark_sent(notification_id)
        logger.info(
            "notification_sent",
            notification_id=notification_id,
            order_id=notification.order_id,
            kind=notification.kind.value,
        )
        return updated

    async def list_unsent(self, status: Optional[NotificationStatus] = None, limit: int = 100) -> List[Notification]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.notifications.list_unsent(status=status, limit=limit)

    async def retry(self, notification_id: int) -> Notification:
        async with self._uow_factory(readonly=True) as uow:
            notification = await uow.notifications.get_by_id(notification_id)
        if notification is None:
            raise NotificationNotFoundException(notification_id)
        if notification.status != NotificationStatus.SENT:
            if self._queue is None:
                raise RuntimeError("NotificationService.retry requires a queue")
            task_id = self._queue.enqueue_email(notification_id)
            logger.info("notification_requeued", notification_id=notification_id, task_id=task_id)
        return notification
