"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from domain.notification.repository import NotificationRepository
from domain.order.repository import OrderRepository
from domain.product.repository import ProductRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象"""

    orders: OrderRepository
    products: ProductRepository
    notifications: NotificationRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.orders = None  # type: ignore[assignment]
        self.products = None  # type: ignore[assignment]
        self.notifications = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""


# 应用服务通过工厂按需开启独立事务：factory(readonly=True) / factory()
UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]
