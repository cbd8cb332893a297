"""
Fulfillment status changes driven by operators.

Payment verdicts (paid / payment_failed) are never set here; only the
callback handler writes them.
"""
from __future__ import annotations

from typing import List

from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.order.entity import Order, OrderStatus
from domain.order.exceptions import InvalidOrderTransitionException, OrderNotFoundException


logger = get_logger(__name__)

FULFILLMENT_TARGETS = frozenset({
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})


class FulfillmentService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def advance(self, order_id: int, target: OrderStatus) -> Order:
        if target not in FULFILLMENT_TARGETS:
            raise DomainValidationException(
                f"Status {target.value} cannot be set by fulfillment",
                field="status",
            )
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(str(order_id))
        if not order.can_transition_to(target):
            raise InvalidOrderTransitionException(order.status.value, target.value)

        async with self._uow_factory() as uow:
            won = await uow.orders.transition_status(order.id, order.status, target)
        if not won:
            # 状态在读取后被并发修改
            raise InvalidOrderTransitionException(order.status.value, target.value)

        async with self._uow_factory(readonly=True) as uow:
            updated = await uow.orders.get_by_id(order_id)
        logger.info("order_fulfillment_advanced", order_id=order_id, status=target.value)
        return updated

    async def list_review_required(self, skip: int = 0, limit: int = 100) -> List[Order]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.orders.list_review_required(skip=skip, limit=limit)
