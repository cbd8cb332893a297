"""
Gateway order initiation.

The local receipt is generated (or taken from the Idempotency-Key) and a
`pending` order committed before any remote call, so every gateway order can
be traced back to a local row. The gateway reference is attached afterwards
with a write that only succeeds while it is still empty.
"""
from __future__ import annotations

import re
import secrets
import time
from typing import Callable, Optional

from application.dtos.checkout import CheckoutRequest, CheckoutResult
from application.dtos.payments import GatewayOrderRequest
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from core.settings import CheckoutSettings, payment_settings
from domain.common.exceptions import BusinessException, DomainValidationException
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.order.entity import LineItem, Order, OrderStatus
from domain.order.exceptions import CheckoutConflictException


logger = get_logger(__name__)

_IDEMPOTENCY_KEY_RE = re.compile(r"^[A-Za-z0-9_\-]{8,40}$")


def generate_receipt() -> str:
    return f"rcpt_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


def _product_info(req: CheckoutRequest) -> str:
    if req.description:
        return req.description[:100]
    names = ", ".join(i.name for i in req.items)
    return (names or "Storefront order")[:100]


class CheckoutService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway_factory: Callable[[str], PaymentGateway],
        *,
        checkout_settings: Optional[CheckoutSettings] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway_factory = gateway_factory
        self._cfg = checkout_settings or payment_settings.checkout

    def validate(self, req: CheckoutRequest) -> None:
        """Business rules beyond the DTO schema; nothing reaches a gateway when they fail."""
        if not self._cfg.min_amount <= req.amount <= self._cfg.max_amount:
            raise DomainValidationException(
                f"Amount must be between {self._cfg.min_amount} and {self._cfg.max_amount}",
                field="amount",
                details={"min": self._cfg.min_amount, "max": self._cfg.max_amount},
            )
        if req.currency not in self._cfg.currencies:
            raise DomainValidationException(
                f"Unsupported currency: {req.currency}",
                field="currency",
                details={"supported": list(self._cfg.currencies)},
            )
        if req.items_total != req.amount:
            raise DomainValidationException(
                "Amount does not match the items total",
                field="amount",
                details={"amount": req.amount, "items_total": req.items_total},
            )

    async def start_checkout(
        self,
        gateway_name: str,
        req: CheckoutRequest,
        *,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutResult:
        self.validate(req)
        if idempotency_key is not None and not _IDEMPOTENCY_KEY_RE.match(idempotency_key):
            raise DomainValidationException(
                "Idempotency-Key must be 8-40 characters of letters, digits, '-' or '_'",
                field="Idempotency-Key",
            )

        gateway = self._gateway_factory(gateway_name)
        try:
            if idempotency_key:
                replay = await self._replay(gateway.provider, idempotency_key)
                if replay is not None:
                    return replay

            order = await self._create_pending(gateway.provider, req, idempotency_key or generate_receipt())
            remote_req = GatewayOrderRequest(
                receipt=order.receipt,
                amount=order.amount,
                currency=order.currency,
                customer=req.customer,
                description=req.description,
                product_info=_product_info(req),
                notes={"receipt": order.receipt},
            )
            try:
                remote = await gateway.create_order(remote_req)
            except Exception as exc:
                await self._mark_failed_to_initiate(order, exc)
                raise

            async with self._uow_factory() as uow:
                assigned = await uow.orders.assign_gateway_ref(order.id, remote.reference)
                if assigned:
                    await uow.orders.merge_payment_metadata(
                        order.id,
                        {"gateway": gateway.provider, "client_parameters": remote.client_parameters},
                    )
            if not assigned:
                # 已有其它请求为该订单写入了网关订单号，以库中记录为准
                replay = await self._replay(gateway.provider, order.receipt)
                if replay is not None:
                    return replay
                raise CheckoutConflictException(order.receipt, order.status.value)

            logger.info(
                "checkout_started",
                order_id=order.id,
                gateway=gateway.provider,
                receipt=order.receipt,
                gateway_order_reference=remote.reference,
                amount=order.amount,
            )
            return CheckoutResult(
                order_id=order.id,
                receipt=order.receipt,
                gateway=gateway.provider,
                gateway_order_reference=remote.reference,
                amount=order.amount,
                currency=order.currency,
                status=OrderStatus.PENDING.value,
                client_parameters=remote.client_parameters,
            )
        finally:
            await gateway.aclose()

    async def _replay(self, gateway: str, receipt: str) -> Optional[CheckoutResult]:
        async with self._uow_factory(readonly=True) as uow:
            existing = await uow.orders.get_by_receipt(receipt)
        if existing is None:
            return None
        if existing.gateway != gateway or not existing.gateway_order_ref:
            logger.info(
                "checkout_conflict",
                receipt=receipt,
                order_id=existing.id,
                status=existing.status.value,
                gateway=existing.gateway,
            )
            raise CheckoutConflictException(receipt, existing.status.value)
        logger.info("checkout_replayed", receipt=receipt, order_id=existing.id)
        return CheckoutResult(
            order_id=existing.id,
            receipt=existing.receipt,
            gateway=existing.gateway,
            gateway_order_reference=existing.gateway_order_ref,
            amount=existing.amount,
            currency=existing.currency,
            status=existing.status.value,
            client_parameters=dict(existing.payment_metadata.get("client_parameters") or {}),
        )

    async def _create_pending(self, gateway: str, req: CheckoutRequest, receipt: str) -> Order:
        order = Order(
            id=None,
            receipt=receipt,
            gateway=gateway,
            amount=req.amount,
            currency=req.currency,
            customer_name=req.customer.name,
            customer_email=str(req.customer.email),
            customer_phone=req.customer.phone,
            items=[LineItem(**i.model_dump()) for i in req.items],
            shipping_address=req.shipping_address.model_dump() if req.shipping_address else {},
            description=req.description,
        )
        async with self._uow_factory() as uow:
            return await uow.orders.create(order)

    async def _mark_failed_to_initiate(self, order: Order, exc: Exception) -> None:
        failure_code = exc.error_type if isinstance(exc, BusinessException) else type(exc).__name__
        description = exc.message if isinstance(exc, BusinessException) else str(exc)
        async with self._uow_factory() as uow:
            await uow.orders.transition_status(
                order.id,
                OrderStatus.PENDING,
                OrderStatus.FAILED_TO_INITIATE,
                changes={"failure_code": failure_code, "failure_description": description},
            )
        logger.warning(
            "checkout_initiation_failed",
            order_id=order.id,
            gateway=order.gateway,
            receipt=order.receipt,
            failure_code=failure_code,
        )
