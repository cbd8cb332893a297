"""
商品仓储实现 - 库存原子扣减
"""
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.product.entity import DecrementOutcome, Product
from domain.product.repository import ProductRepository
from infrastructure.models.product import ProductModel


logger = get_logger(__name__)

# 补货与扣减交错时的最大重试轮数
_DECREMENT_ATTEMPTS = 3


class SQLAlchemyProductRepository(ProductRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            sku=model.sku,
            name=model.name,
            price=int(model.price),
            stock_quantity=int(model.stock_quantity),
        )

    async def create(self, product: Product) -> Product:
        db_product = ProductModel(
            id=product.id,
            sku=product.sku,
            name=product.name,
            price=product.price,
            stock_quantity=product.stock_quantity,
        )
        self.session.add(db_product)
        await self.session.flush()
        await self.session.refresh(db_product)
        logger.info("product_created", product_id=db_product.id, sku=db_product.sku)
        return self._to_entity(db_product)

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        result = await self.session.execute(select(ProductModel).where(ProductModel.id == product_id))
        db_product = result.scalar_one_or_none()
        return self._to_entity(db_product) if db_product else None

    async def decrement_stock(self, product_id: int, quantity: int) -> DecrementOutcome:
        # 足量时在数据库内原子扣减；不足时置零（库存永不为负）。
        # 两条 UPDATE 都带库存条件：期间被补货的行回到扣减分支，不会被覆盖为 0
        for _ in range(_DECREMENT_ATTEMPTS):
            result = await self.session.execute(
                update(ProductModel)
                .where(ProductModel.id == product_id, ProductModel.stock_quantity >= quantity)
                .values(stock_quantity=ProductModel.stock_quantity - quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.info("inventory_decremented", product_id=product_id, quantity=quantity)
                return DecrementOutcome.DECREMENTED

            result = await self.session.execute(
                update(ProductModel)
                .where(ProductModel.id == product_id, ProductModel.stock_quantity < quantity)
                .values(stock_quantity=0)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.warning("inventory_clamped", product_id=product_id, requested=quantity)
                return DecrementOutcome.CLAMPED

            exists = await self.session.execute(select(ProductModel.id).where(ProductModel.id == product_id))
            if exists.scalar_one_or_none() is None:
                logger.warning("inventory_product_missing", product_id=product_id, requested=quantity)
                return DecrementOutcome.MISSING
            logger.info("inventory_decrement_contended", product_id=product_id, requested=quantity)

        raise RuntimeError(f"Stock for product {product_id} kept changing during decrement")
