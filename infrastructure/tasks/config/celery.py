"""Celery application for notification delivery and payment reconciliation."""
from __future__ import annotations

import os

from celery import Celery
from kombu import Exchange, Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE


logger = get_logger(__name__)

CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)

# 邮件走 high，对账扫表走 low，互不阻塞
QUEUE_HIGH = "high"
QUEUE_DEFAULT = "default"
QUEUE_LOW = "low"

# SMTP 超时之外留出余量，防止挂死的连接长期占住 worker
EMAIL_SOFT_TIME_LIMIT = int(settings.mail.timeout) + 10
EMAIL_TIME_LIMIT = EMAIL_SOFT_TIME_LIMIT + 15


def _broker_url() -> str | None:
    return settings.redis.url or os.getenv("CELERY_BROKER_URL")


celery_app = Celery("storefront_payments")

_exchange = Exchange("storefront", type="direct")

celery_app.conf.update(
    broker_url=_broker_url(),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    broker_connection_retry_on_startup=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # 执行完成后再 ack：worker 崩溃时通知任务会被重新投递，由 outbox 状态去重
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue=QUEUE_DEFAULT,
    task_default_exchange=_exchange.name,
    task_default_routing_key=QUEUE_DEFAULT,
    task_default_retry_delay=5,
    task_queues=(
        Queue(QUEUE_HIGH, _exchange, routing_key=QUEUE_HIGH),
        Queue(QUEUE_DEFAULT, _exchange, routing_key=QUEUE_DEFAULT),
        Queue(QUEUE_LOW, _exchange, routing_key=QUEUE_LOW),
    ),
    task_routes={
        "notifications.*": {"queue": QUEUE_HIGH, "routing_key": QUEUE_HIGH},
        "payments.*": {"queue": QUEUE_LOW, "routing_key": QUEUE_LOW},
    },
    task_annotations={
        "notifications.send_email": {
            "soft_time_limit": EMAIL_SOFT_TIME_LIMIT,
            "time_limit": EMAIL_TIME_LIMIT,
        },
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

environment = (getattr(settings, "ENVIRONMENT", "production") or "production").lower()
if environment in {"development", "dev", "test", "testing"}:
    # 只影响 .delay()/.apply_async()；send_task 始终投递到 broker
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker_configured=bool(sender.conf.broker_url),
        queues=[q.name for q in sender.conf.task_queues],
        eager=bool(sender.conf.task_always_eager),
    )
