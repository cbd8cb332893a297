from sqlalchemy import update

from domain.product.entity import DecrementOutcome, Product
from infrastructure.models.product import ProductModel
from infrastructure.repositories.product_repository import SQLAlchemyProductRepository


class RestockingSession:
    """Runs a restock right after the first statement, like a concurrent admin edit."""

    def __init__(self, session, product_id: int, restock_to: int):
        self._session = session
        self._product_id = product_id
        self._restock_to = restock_to
        self.statements = 0

    async def execute(self, statement, *args, **kwargs):
        result = await self._session.execute(statement, *args, **kwargs)
        self.statements += 1
        if self.statements == 1:
            await self._session.execute(
                update(ProductModel)
                .where(ProductModel.id == self._product_id)
                .values(stock_quantity=self._restock_to)
            )
        return result


async def _create(session_factory, stock: int) -> Product:
    async with session_factory() as session:
        product = await SQLAlchemyProductRepository(session).create(
            Product(id=None, sku="SKU-R", name="Restocked", price=10_000, stock_quantity=stock)
        )
        await session.commit()
    return product


async def _stock(session_factory, product_id: int) -> int:
    async with session_factory() as session:
        return (await SQLAlchemyProductRepository(session).get_by_id(product_id)).stock_quantity


async def test_restock_between_decrement_and_clamp_is_not_wiped(session_factory):
    product = await _create(session_factory, stock=1)

    async with session_factory() as session:
        repo = SQLAlchemyProductRepository(RestockingSession(session, product.id, restock_to=100))
        outcome = await repo.decrement_stock(product.id, 5)
        await session.commit()

    assert outcome == DecrementOutcome.DECREMENTED
    assert await _stock(session_factory, product.id) == 95


async def test_short_stock_is_clamped_to_zero(session_factory):
    product = await _create(session_factory, stock=2)

    async with session_factory() as session:
        outcome = await SQLAlchemyProductRepository(session).decrement_stock(product.id, 5)
        await session.commit()

    assert outcome == DecrementOutcome.CLAMPED
    assert await _stock(session_factory, product.id) == 0


async def test_missing_product_is_reported(session_factory):
    async with session_factory() as session:
        outcome = await SQLAlchemyProductRepository(session).decrement_stock(999, 1)

    assert outcome == DecrementOutcome.MISSING
