"""Email related Celery tasks"""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask
from ..utils.runtime import run_with_uow
from application.services.notification_service import NotificationService
from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.mail import SMTPMailer

logger = get_logger(__name__)


@shared_task(
    name="notifications.send_email",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_notification_email(self, notification_id: int) -> bool:
    """Deliver one outbox row over SMTP.

    A failed attempt is recorded on the row before the task retries.
    """
    logger.info("send_notification_email", notification_id=notification_id, attempt=self.request.retries)
    mailer = SMTPMailer()
    return run_with_uow(
        lambda uow_factory: NotificationService(
            uow_factory,
            mailer=mailer,
            admin_recipients=settings.mail.admin_recipients,
        ).deliver(notification_id)
    )
