"""
Celery tasks for payment reconciliation and resuming stalled side effects.
"""
from __future__ import annotations

from datetime import timedelta

from celery import shared_task

from ..utils.base_task import BaseTask
from ..utils.dispatcher import TaskDispatcher
from ..utils.runtime import run_with_uow
from application.services.payment_callback_service import PaymentCallbackService
from application.services.reconciliation_service import ReconciliationService
from application.services.side_effects import SideEffectDispatcher
from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.payments import get_payment_gateway


logger = get_logger(__name__)


def _build_dispatcher(uow_factory) -> SideEffectDispatcher:
    return SideEffectDispatcher(
        uow_factory,
        TaskDispatcher(),
        admin_recipients=settings.mail.admin_recipients,
        store_name=settings.PROJECT_NAME,
    )


def _build_service(uow_factory) -> ReconciliationService:
    callbacks = PaymentCallbackService(uow_factory, _build_dispatcher(uow_factory))
    return ReconciliationService(uow_factory, get_payment_gateway, callbacks)


@shared_task(name="payments.reconcile_pending", bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def reconcile_pending(self, gateway: str = "razorpay", older_than_minutes: int = 15, limit: int = 100):
    try:
        summary = run_with_uow(
            lambda uow_factory: _build_service(uow_factory).reconcile_pending(
                gateway,
                older_than=timedelta(minutes=older_than_minutes),
                limit=limit,
            )
        )
    except Exception as exc:  # pragma: no cover
        logger.error("payment_reconcile_sweep_failed", gateway=gateway, error=str(exc))
        raise self.retry(exc=exc)
    return summary


@shared_task(name="payments.resume_side_effects", bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def resume_side_effects(self, older_than_minutes: int = 10, limit: int = 100):
    try:
        summary = run_with_uow(
            lambda uow_factory: _build_dispatcher(uow_factory).resume_stalled(
                older_than=timedelta(minutes=older_than_minutes),
                limit=limit,
            )
        )
    except Exception as exc:  # pragma: no cover
        logger.error("side_effects_resume_sweep_failed", error=str(exc))
        raise self.retry(exc=exc)
    return summary
