"""
商品数据库模型
"""
from sqlalchemy import CheckConstraint, Column, Integer, BigInteger, String

from .base import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(100), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    price = Column(BigInteger, nullable=False, comment="单价（最小货币单位）")
    stock_quantity = Column(Integer, nullable=False, default=0, comment="库存，永不为负")

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    def __repr__(self):
        return f"<ProductModel(id={self.id}, sku='{self.sku}', stock={self.stock_quantity})>"
