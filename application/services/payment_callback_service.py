"""
Payment callback handler.

Client callbacks, browser returns, webhooks and reconciliation results all
funnel into `process`, parameterized by a gateway adapter:

1. verify (done by the entry points, before anything is read),
2. look the order up by (gateway, gateway order reference),
3. map the gateway status once through the central table,
4. move the order out of `pending` with a conditional update; a won `paid`
   stages its outbox rows in the same transaction,
5. hand a won `paid` transition to the side-effect dispatcher.

Losing the conditional update is not an error: it means another delivery of
the same verdict got there first, and the caller answers as for a duplicate.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from application.dtos.payments import CallbackOutcome, CallbackPayload, CallbackResult
from application.ports.payment_gateway import PaymentGateway
from application.services.side_effects import SideEffectDispatcher
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.order.entity import Order, OrderStatus
from domain.order.events import OrderPaid, OrderPaymentFailed
from domain.order.exceptions import OrderNotFoundException
from domain.payment.exceptions import SignatureVerificationFailed
from shared.codes.payment_codes import PAID, PAYMENT_FAILED


logger = get_logger(__name__)


class PaymentCallbackService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        dispatcher: Optional[SideEffectDispatcher] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher

    # ---- entry points ----

    async def handle_client_callback(
        self,
        gateway: PaymentGateway,
        fields: Mapping[str, Any],
        *,
        source: str = "client_callback",
        client: Optional[Mapping[str, Any]] = None,
    ) -> CallbackResult:
        if not gateway.verify_callback(fields):
            self._reject(gateway.provider, source, client)
        payload = gateway.parse_callback(fields)
        return await self.process(gateway, payload, source=source)

    async def handle_webhook(
        self,
        gateway: PaymentGateway,
        headers: Mapping[str, str],
        body: bytes,
        *,
        client: Optional[Mapping[str, Any]] = None,
    ) -> Optional[CallbackResult]:
        """Returns None when the event type carries nothing to process."""
        if not gateway.verify_webhook(headers, body):
            self._reject(gateway.provider, "webhook", client)
        payload = gateway.parse_webhook(headers, body)
        if payload is None:
            return None
        return await self.process(gateway, payload, source="webhook")

    async def reconcile(self, gateway: PaymentGateway, reference: str) -> CallbackResult:
        """Fold the gateway's own view of an order into the same processing path."""
        payload = await gateway.query_order(reference)
        if payload is None:
            order = await self._load(gateway.provider, reference)
            logger.info("payment_reconcile_no_verdict", gateway=gateway.provider, order_reference=reference)
            return self._result(CallbackOutcome.IGNORED, gateway.provider, order, None)
        if not payload.order_reference:
            payload.order_reference = reference
        return await self.process(gateway, payload, source="reconciliation")

    # ---- core ----

    async def process(self, gateway: PaymentGateway, payload: CallbackPayload, *, source: str) -> CallbackResult:
        name = gateway.provider
        reference = payload.order_reference
        if not reference:
            raise DomainValidationException("Missing order reference", field="order_reference")

        order = await self._load(name, reference)

        if order.is_payment_settled:
            logger.info(
                "payment_callback_duplicate",
                gateway=name,
                source=source,
                order_id=order.id,
                status=order.status.value,
            )
            return self._result(CallbackOutcome.DUPLICATE, name, order, payload)

        if order.status != OrderStatus.PENDING:
            logger.warning(
                "payment_callback_for_closed_order",
                gateway=name,
                source=source,
                order_id=order.id,
                status=order.status.value,
                raw_status=payload.raw_status,
            )
            return self._result(CallbackOutcome.IGNORED, name, order, payload)

        internal = gateway.map_status(payload.raw_status)
        if internal not in (PAID, PAYMENT_FAILED):
            logger.info(
                "payment_status_ignored",
                gateway=name,
                source=source,
                order_id=order.id,
                raw_status=payload.raw_status,
                mapped=internal,
            )
            return self._result(CallbackOutcome.IGNORED, name, order, payload)

        if internal == PAID and payload.amount is not None and payload.amount != order.amount:
            await self._flag_amount_mismatch(order, payload, source)
            return self._result(CallbackOutcome.AMOUNT_MISMATCH, name, order, payload)

        target = OrderStatus.PAID if internal == PAID else OrderStatus.PAYMENT_FAILED
        changes: dict[str, Any] = {
            "gateway_payment_ref": payload.payment_reference,
            "payment_metadata": {
                **order.payment_metadata,
                **payload.fields,
                "gateway": name,
                "source": source,
                "raw_status": payload.raw_status,
            },
        }
        if target == OrderStatus.PAYMENT_FAILED:
            changes["failure_code"] = payload.failure_code or (payload.raw_status or "").lower() or None
            changes["failure_description"] = payload.failure_description

        async with self._uow_factory() as uow:
            won = await uow.orders.transition_status(order.id, OrderStatus.PENDING, target, changes=changes)
            if won and target == OrderStatus.PAID and self._dispatcher is not None:
                # 发件箱行与副作用标记随 paid 一同提交；写入失败则整个转换回滚
                paid_order = await uow.orders.get_by_id(order.id)
                await self._dispatcher.stage(uow, paid_order)

        if not won:
            current = await self._load(name, reference)
            logger.info(
                "payment_callback_race_lost",
                gateway=name,
                source=source,
                order_id=order.id,
                status=current.status.value,
            )
            return self._result(CallbackOutcome.DUPLICATE, name, current, payload)

        logger.info(
            "payment_callback_processed",
            gateway=name,
            source=source,
            order_id=order.id,
            order_reference=reference,
            payment_reference=payload.payment_reference,
            status=target.value,
        )

        if target == OrderStatus.PAID:
            event = OrderPaid(
                order_id=order.id,
                gateway=name,
                gateway_order_ref=reference,
                gateway_payment_ref=payload.payment_reference,
                source=source,
                amount=order.amount,
                currency=order.currency,
            )
            if self._dispatcher is not None:
                await self._dispatcher.dispatch(event)
            outcome = CallbackOutcome.PAID
        else:
            event = OrderPaymentFailed(
                order_id=order.id,
                gateway=name,
                gateway_order_ref=reference,
                gateway_payment_ref=payload.payment_reference,
                source=source,
                failure_code=changes["failure_code"],
                failure_description=changes["failure_description"],
            )
            logger.info(
                "order_payment_failed",
                order_id=event.order_id,
                event_id=event.event_id,
                failure_code=event.failure_code,
            )
            outcome = CallbackOutcome.PAYMENT_FAILED

        return CallbackResult(
            outcome=outcome,
            gateway=name,
            order_id=order.id,
            order_reference=reference,
            payment_reference=payload.payment_reference,
            status=target.value,
        )

    # ---- helpers ----

    async def _load(self, gateway: str, reference: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_gateway_ref(gateway, reference)
        if order is None:
            logger.warning("payment_callback_order_not_found", gateway=gateway, order_reference=reference)
            raise OrderNotFoundException(reference, gateway=gateway)
        return order

    async def _flag_amount_mismatch(self, order: Order, payload: CallbackPayload, source: str) -> None:
        logger.warning(
            "payment_amount_mismatch",
            gateway=order.gateway,
            source=source,
            order_id=order.id,
            expected=order.amount,
            reported=payload.amount,
        )
        async with self._uow_factory() as uow:
            await uow.orders.merge_payment_metadata(
                order.id,
                {
                    "review_reason": "amount_mismatch",
                    "reported_amount": payload.amount,
                    "reported_payment_reference": payload.payment_reference,
                    "reported_source": source,
                },
            )
            await uow.orders.flag_inventory_review(order.id)

    @staticmethod
    def _reject(gateway: str, source: str, client: Optional[Mapping[str, Any]]) -> None:
        client = client or {}
        logger.warning(
            "payment_signature_rejected",
            gateway=gateway,
            source=source,
            client_ip=client.get("client_ip"),
            user_agent=client.get("user_agent"),
        )
        raise SignatureVerificationFailed(provider=gateway, source=source)

    @staticmethod
    def _result(
        outcome: CallbackOutcome,
        gateway: str,
        order: Order,
        payload: Optional[CallbackPayload],
    ) -> CallbackResult:
        return CallbackResult(
            outcome=outcome,
            gateway=gateway,
            order_id=order.id,
            order_reference=order.gateway_order_ref,
            payment_reference=(payload.payment_reference if payload else None) or order.gateway_payment_ref,
            status=order.status.value,
        )
