"""
商品仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import DecrementOutcome, Product


class ProductRepository(ABC):

    @abstractmethod
    async def create(self, product: Product) -> Product:
        """创建商品"""

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Optional[Product]:
        """根据ID获取商品"""

    @abstractmethod
    async def decrement_stock(self, product_id: int, quantity: int) -> DecrementOutcome:
        """原子扣减库存，库存永不为负：不足时置零并返回 CLAMPED"""
