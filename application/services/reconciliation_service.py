"""
Reconciliation: read-only order status lookup and gateway status pull.

A pull never writes state directly; the gateway's answer goes through
PaymentCallbackService.process like any other callback.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from application.dtos.payments import CallbackResult, OrderStatusView
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_callback_service import PaymentCallbackService
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.order.exceptions import OrderNotFoundException


logger = get_logger(__name__)


class ReconciliationService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway_factory: Callable[[str], PaymentGateway],
        callback_service: PaymentCallbackService,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway_factory = gateway_factory
        self._callbacks = callback_service

    async def get_order_status(self, gateway: str, reference: str) -> OrderStatusView:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_gateway_ref(gateway.lower(), reference)
        if order is None:
            raise OrderNotFoundException(reference, gateway=gateway)
        return OrderStatusView(
            order_id=order.id,
            gateway=order.gateway,
            order_reference=order.gateway_order_ref,
            status=order.status.value,
            amount=order.amount,
            currency=order.currency,
            paid_at=order.paid_at,
        )

    async def reconcile_order(self, gateway_name: str, reference: str) -> CallbackResult:
        gateway = self._gateway_factory(gateway_name)
        try:
            return await self._callbacks.reconcile(gateway, reference)
        finally:
            await gateway.aclose()

    async def reconcile_pending(
        self,
        gateway_name: str,
        *,
        older_than: timedelta = timedelta(minutes=15),
        limit: int = 100,
    ) -> dict[str, int]:
        """Pull the status of orders stuck in pending; one failure never stops the sweep."""
        cutoff = datetime.now(timezone.utc) - older_than
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.orders.list_pending(gateway_name, cutoff, limit=limit)

        summary = {"checked": 0, "errors": 0}
        if not orders:
            return summary

        gateway = self._gateway_factory(gateway_name)
        try:
            for order in orders:
                summary["checked"] += 1
                try:
                    result = await self._callbacks.reconcile(gateway, order.gateway_order_ref)
                except BusinessException as exc:
                    summary["errors"] += 1
                    logger.warning(
                        "payment_reconcile_failed",
                        gateway=gateway_name,
                        order_id=order.id,
                        error_type=exc.error_type,
                        error=exc.message,
                    )
                    continue
                summary[result.outcome.value] = summary.get(result.outcome.value, 0) + 1
        finally:
            await gateway.aclose()

        logger.info("payment_reconcile_sweep", gateway=gateway_name, **summary)
        return summary
