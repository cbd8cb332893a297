"""
订单领域实体 - 订单聚合根与状态机
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class OrderStatus(str, Enum):
    """订单状态枚举（封闭集合）"""
    PENDING = "pending"                        # 待支付
    PAID = "paid"                              # 支付成功
    PAYMENT_FAILED = "payment_failed"          # 支付失败
    PROCESSING = "processing"                  # 履约处理中
    SHIPPED = "shipped"                        # 已发货
    DELIVERED = "delivered"                    # 已签收
    CANCELLED = "cancelled"                    # 已取消
    FAILED_TO_INITIATE = "failed_to_initiate"  # 网关下单失败


class SideEffectsStatus(str, Enum):
    """支付成功后的副作用进度；与 paid 状态在同一事务内置为 pending"""
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PAID,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.CANCELLED,
        OrderStatus.FAILED_TO_INITIATE,
    }),
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.PAYMENT_FAILED: frozenset(),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.FAILED_TO_INITIATE: frozenset(),
}

# Statuses a payment callback has nothing left to decide for.
PAYMENT_SETTLED_STATUSES = frozenset({
    OrderStatus.PAID,
    OrderStatus.PAYMENT_FAILED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class LineItem:
    product_id: int
    name: str
    quantity: int
    unit_price: int  # minor units
    variant: Optional[str] = None

    def __post_init__(self):
        if self.quantity <= 0:
            raise DomainValidationException(
                f"Quantity must be positive: {self.quantity}",
                field="items.quantity",
            )
        if self.unit_price < 0:
            raise DomainValidationException(
                f"Unit price must not be negative: {self.unit_price}",
                field="items.unit_price",
            )

    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "variant": self.variant,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        return cls(
            product_id=int(data["product_id"]),
            name=str(data.get("name") or ""),
            quantity=int(data["quantity"]),
            unit_price=int(data["unit_price"]),
            variant=data.get("variant"),
        )


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. (gateway, gateway_order_ref) 全局唯一，作为回调幂等键
    2. gateway_order_ref 只能赋值一次
    3. 金额以最小货币单位（整数）存储，必须大于0
    4. 状态转换必须遵循 ALLOWED_TRANSITIONS
    """

    id: Optional[int]
    receipt: str
    gateway: str
    amount: int
    currency: str
    customer_name: str
    customer_email: str
    customer_phone: str
    items: list[LineItem] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    gateway_order_ref: Optional[str] = None
    gateway_payment_ref: Optional[str] = None
    shipping_address: dict = field(default_factory=dict)
    description: Optional[str] = None
    payment_metadata: dict = field(default_factory=dict)
    failure_code: Optional[str] = None
    failure_description: Optional[str] = None
    inventory_review_required: bool = False
    side_effects_status: Optional[SideEffectsStatus] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    def __post_init__(self):
        self._validate_amount()
        self._validate_currency()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.status_changed_at = _ensure_utc(self.status_changed_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.failed_at = _ensure_utc(self.failed_at)
        if self.payment_metadata is None:
            self.payment_metadata = {}
        if self.shipping_address is None:
            self.shipping_address = {}

    def _validate_amount(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise DomainValidationException(
                f"Amount must be an integer in minor units: {self.amount!r}",
                field="amount",
            )
        if self.amount <= 0:
            raise DomainValidationException(f"Amount must be positive: {self.amount}", field="amount")

    def _validate_currency(self) -> None:
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")

    @property
    def items_total(self) -> int:
        return sum(item.subtotal for item in self.items)

    @property
    def is_payment_settled(self) -> bool:
        return self.status in PAYMENT_SETTLED_STATUSES

    def can_transition_to(self, target: OrderStatus) -> bool:
        return can_transition(self.status, target)
