"""
订单仓储接口 - Order Store Adapter 的抽象

状态修改只允许通过条件更新（transition_status / assign_gateway_ref），
不提供“先读后盲写”的 update 方法。
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

from .entity import Order, OrderStatus, SideEffectsStatus


class OrderRepository(ABC):
    """订单仓储抽象接口"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建 pending 订单"""

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """根据内部ID获取订单"""

    @abstractmethod
    async def get_by_receipt(self, receipt: str) -> Optional[Order]:
        """根据本地幂等引用获取订单"""

    @abstractmethod
    async def get_by_gateway_ref(self, gateway: str, gateway_order_ref: str) -> Optional[Order]:
        """根据 (网关, 网关订单号) 获取订单"""

    @abstractmethod
    async def assign_gateway_ref(self, order_id: int, gateway_order_ref: str) -> bool:
        """仅当订单尚未绑定网关订单号时写入；返回是否写入成功"""

    @abstractmethod
    async def transition_status(
        self,
        order_id: int,
        expected: OrderStatus,
        target: OrderStatus,
        *,
        changes: Optional[dict[str, Any]] = None,
    ) -> bool:
        """条件更新：WHERE id = ? AND status = expected。返回是否有行被更新"""

    @abstractmethod
    async def merge_payment_metadata(self, order_id: int, metadata: dict[str, Any]) -> None:
        """合并审计用的支付元数据（不改变状态）"""

    @abstractmethod
    async def flag_inventory_review(self, order_id: int) -> None:
        """标记库存需要人工复核"""

    @abstractmethod
    async def set_side_effects_status(
        self,
        order_id: int,
        status: SideEffectsStatus,
        *,
        expected: Optional[SideEffectsStatus] = None,
    ) -> bool:
        """写入副作用进度；给出 expected 时为条件更新（用于认领）"""

    @abstractmethod
    async def list_side_effects_stalled(self, updated_before: datetime, limit: int = 100) -> List[Order]:
        """列出副作用仍为 pending/running 且 updated_at 早于 updated_before 的订单"""

    @abstractmethod
    async def list_pending(
        self,
        gateway: str,
        created_before: datetime,
        limit: int = 100,
    ) -> List[Order]:
        """列出创建时间早于 created_before 且已绑定网关订单号的 pending 订单"""

    @abstractmethod
    async def list_review_required(self, skip: int = 0, limit: int = 100) -> List[Order]:
        """列出需要库存复核的订单"""
