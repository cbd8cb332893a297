"""
商品领域实体（仅库存相关字段）
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass
class Product:
    id: Optional[int]
    sku: str
    name: str
    price: int  # minor units
    stock_quantity: int = 0


class DecrementOutcome(str, Enum):
    """库存扣减结果"""
    DECREMENTED = "decremented"  # 足量扣减
    CLAMPED = "clamped"          # 库存不足，已置零
    MISSING = "missing"          # 商品不存在
