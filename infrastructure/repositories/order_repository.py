"""
订单仓储实现 - 使用SQLAlchemy实现数据访问

状态变化全部是条件 UPDATE：
    UPDATE orders SET ... WHERE id = :id AND status = :expected
影响行数为 0 即表示竞争失败（或已处理），由调用方决定如何应答。
"""
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.order.entity import LineItem, Order, OrderStatus, SideEffectsStatus
from domain.order.exceptions import CheckoutConflictException
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel


logger = get_logger(__name__)

# transition_status 允许随状态一起写入的列
_TRANSITION_COLUMNS = frozenset({
    "gateway_payment_ref",
    "failure_code",
    "failure_description",
    "payment_metadata",
})


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            receipt=model.receipt,
            gateway=model.gateway,
            amount=int(model.amount),
            currency=model.currency,
            customer_name=model.customer_name,
            customer_email=model.customer_email,
            customer_phone=model.customer_phone,
            items=[LineItem.from_dict(i) for i in (model.items or [])],
            status=OrderStatus(model.status),
            gateway_order_ref=model.gateway_order_ref,
            gateway_payment_ref=model.gateway_payment_ref,
            shipping_address=dict(model.shipping_address or {}),
            description=model.description,
            payment_metadata=dict(model.payment_metadata or {}),
            failure_code=model.failure_code,
            failure_description=model.failure_description,
            inventory_review_required=bool(model.inventory_review_required),
            side_effects_status=SideEffectsStatus(model.side_effects_status) if model.side_effects_status else None,
            created_at=model.created_at,
            updated_at=model.updated_at,
            status_changed_at=model.status_changed_at,
            paid_at=model.paid_at,
            failed_at=model.failed_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        now = datetime.now(timezone.utc)
        return OrderModel(
            id=entity.id,
            receipt=entity.receipt,
            gateway=entity.gateway,
            amount=entity.amount,
            currency=entity.currency,
            customer_name=entity.customer_name,
            customer_email=entity.customer_email,
            customer_phone=entity.customer_phone,
            items=[i.to_dict() for i in entity.items],
            status=entity.status.value,
            gateway_order_ref=entity.gateway_order_ref,
            gateway_payment_ref=entity.gateway_payment_ref,
            shipping_address=entity.shipping_address or None,
            description=entity.description,
            payment_metadata=entity.payment_metadata or None,
            failure_code=entity.failure_code,
            failure_description=entity.failure_description,
            inventory_review_required=entity.inventory_review_required,
            side_effects_status=entity.side_effects_status.value if entity.side_effects_status else None,
            created_at=entity.created_at or now,
            updated_at=entity.updated_at or now,
            status_changed_at=entity.status_changed_at or now,
        )

    async def create(self, order: Order) -> Order:
        """创建订单"""
        try:
            db_order = self._to_model(order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
        except IntegrityError as e:
            await self.session.rollback()
            if "receipt" in str(e).lower():
                logger.warning("order_create_conflict", receipt=order.receipt)
                raise CheckoutConflictException(order.receipt, OrderStatus.PENDING.value)
            raise
        logger.info(
            "order_created",
            order_id=db_order.id,
            receipt=db_order.receipt,
            gateway=db_order.gateway,
            amount=db_order.amount,
        )
        return self._to_entity(db_order)

    async def _get_one(self, *criteria) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(*criteria))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        return await self._get_one(OrderModel.id == order_id)

    async def get_by_receipt(self, receipt: str) -> Optional[Order]:
        return await self._get_one(OrderModel.receipt == receipt)

    async def get_by_gateway_ref(self, gateway: str, gateway_order_ref: str) -> Optional[Order]:
        return await self._get_one(
            OrderModel.gateway == gateway,
            OrderModel.gateway_order_ref == gateway_order_ref,
        )

    async def assign_gateway_ref(self, order_id: int, gateway_order_ref: str) -> bool:
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.gateway_order_ref.is_(None))
            .values(gateway_order_ref=gateway_order_ref, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        assigned = result.rowcount == 1
        logger.info(
            "order_gateway_ref_assigned" if assigned else "order_gateway_ref_unchanged",
            order_id=order_id,
            gateway_order_ref=gateway_order_ref,
        )
        return assigned

    async def transition_status(
        self,
        order_id: int,
        expected: OrderStatus,
        target: OrderStatus,
        *,
        changes: Optional[dict[str, Any]] = None,
    ) -> bool:
        now = datetime.now(timezone.utc)
        values: dict[Any, Any] = {
            OrderModel.status: target.value,
            OrderModel.status_changed_at: now,
            OrderModel.updated_at: now,
        }
        if target == OrderStatus.PAID:
            values[OrderModel.paid_at] = now
        elif target == OrderStatus.PAYMENT_FAILED:
            values[OrderModel.failed_at] = now
        for key, value in (changes or {}).items():
            if key not in _TRANSITION_COLUMNS:
                raise ValueError(f"Column {key} cannot be changed with a status transition")
            values[getattr(OrderModel, key)] = value

        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected.value)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        won = result.rowcount == 1
        if won:
            logger.info(
                "order_transitioned",
                order_id=order_id,
                from_status=expected.value,
                to_status=target.value,
            )
        else:
            logger.info(
                "order_transition_skipped",
                order_id=order_id,
                expected=expected.value,
                target=target.value,
            )
        return won

    async def merge_payment_metadata(self, order_id: int, metadata: dict[str, Any]) -> None:
        result = await self.session.execute(
            select(OrderModel.payment_metadata).where(OrderModel.id == order_id)
        )
        current = result.scalar_one_or_none() or {}
        merged = {**current, **metadata}
        await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id)
            .values({OrderModel.payment_metadata: merged, OrderModel.updated_at: datetime.now(timezone.utc)})
            .execution_options(synchronize_session=False)
        )

    async def flag_inventory_review(self, order_id: int) -> None:
        await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id)
            .values(inventory_review_required=True, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        logger.warning("order_flagged_for_review", order_id=order_id)

    async def set_side_effects_status(
        self,
        order_id: int,
        status: SideEffectsStatus,
        *,
        expected: Optional[SideEffectsStatus] = None,
    ) -> bool:
        criteria = [OrderModel.id == order_id]
        if expected is not None:
            criteria.append(OrderModel.side_effects_status == expected.value)
        result = await self.session.execute(
            update(OrderModel)
            .where(*criteria)
            .values(side_effects_status=status.value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        logger.info(
            "order_side_effects_status",
            order_id=order_id,
            status=status.value,
            expected=expected.value if expected else None,
            changed=changed,
        )
        return changed

    async def list_side_effects_stalled(self, updated_before: datetime, limit: int = 100) -> List[Order]:
        query = (
            select(OrderModel)
            .where(
                OrderModel.side_effects_status.in_(
                    (SideEffectsStatus.PENDING.value, SideEffectsStatus.RUNNING.value)
                ),
                OrderModel.updated_at < updated_before,
            )
            .order_by(OrderModel.updated_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_pending(
        self,
        gateway: str,
        created_before: datetime,
        limit: int = 100,
    ) -> List[Order]:
        query = (
            select(OrderModel)
            .where(
                OrderModel.gateway == gateway,
                OrderModel.status == OrderStatus.PENDING.value,
                OrderModel.gateway_order_ref.is_not(None),
                OrderModel.created_at < created_before,
            )
            .order_by(OrderModel.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_review_required(self, skip: int = 0, limit: int = 100) -> List[Order]:
        query = (
            select(OrderModel)
            .where(OrderModel.inventory_review_required.is_(True))
            .order_by(OrderModel.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]
