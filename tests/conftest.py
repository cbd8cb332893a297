"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="storefront-payments-")

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE__URL", f"sqlite+aiosqlite:///{_DB_DIR}/app.db")
os.environ.setdefault("ADMIN_API_TOKEN", "admin-test-token")
os.environ.setdefault("MAIL__ADMIN_RECIPIENTS", '["ops@example.com"]')
os.environ.setdefault("PAYMENT__ENABLED_PROVIDERS", '["razorpay", "hdfc"]')
os.environ.setdefault("PAYMENT__FRONTEND_URL", "https://shop.example.com")
os.environ.setdefault("PAYMENT__RAZORPAY__KEY_ID", "rzp_test_key123")
os.environ.setdefault("PAYMENT__RAZORPAY__KEY_SECRET", "test_key_secret")
os.environ.setdefault("PAYMENT__RAZORPAY__WEBHOOK_SECRET", "test_webhook_secret")
os.environ.setdefault("PAYMENT__HDFC__API_KEY", "hdfc_key")
os.environ.setdefault("PAYMENT__HDFC__MERCHANT_ID", "M12345")
os.environ.setdefault("PAYMENT__HDFC__RESPONSE_KEY", "hdfc_salt")
os.environ.setdefault("PAYMENT__HDFC__SUCCESS_URL", "https://api.example.com/api/v1/payments/hdfc/return")
os.environ.setdefault("PAYMENT__HDFC__FAILURE_URL", "https://api.example.com/api/v1/payments/hdfc/return")

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from domain.order.entity import LineItem, Order, OrderStatus  # noqa: E402
from domain.product.entity import Product  # noqa: E402
from infrastructure.database import build_engine, create_tables  # noqa: E402
from infrastructure.unit_of_work import uow_factory as build_uow_factory  # noqa: E402


class FakeQueue:
    """Records enqueued notification ids; optionally fails like a dead broker."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.enqueued: list[int] = []

    def enqueue_email(self, notification_id: int) -> str:
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.enqueued.append(notification_id)
        return f"task-{notification_id}"


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    await create_tables(engine)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    return build_uow_factory(session_factory)


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def make_product(uow_factory):
    async def _make(sku: str = "SKU-1", stock: int = 10, price: int = 25_000) -> Product:
        async with uow_factory() as uow:
            return await uow.products.create(
                Product(id=None, sku=sku, name=f"Product {sku}", price=price, stock_quantity=stock)
            )
    return _make


@pytest.fixture
def make_order(uow_factory):
    async def _make(
        *,
        gateway: str = "razorpay",
        reference: str = "order_Abc123",
        items: list[LineItem] | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        receipt: str | None = None,
    ) -> Order:
        items = items or [LineItem(product_id=1, name="Tee", quantity=2, unit_price=25_000)]
        order = Order(
            id=None,
            receipt=receipt or f"rcpt_{reference}",
            gateway=gateway,
            amount=sum(i.subtotal for i in items),
            currency="INR",
            customer_name="Asha Rao",
            customer_email="asha@example.com",
            customer_phone="9876543210",
            items=items,
            status=status,
            gateway_order_ref=reference,
            shipping_address={"line1": "12 MG Road", "city": "Bengaluru", "postal_code": "560001"},
        )
        async with uow_factory() as uow:
            return await uow.orders.create(order)
    return _make


@pytest.fixture
def load_order(uow_factory):
    async def _load(order_id: int) -> Order:
        async with uow_factory(readonly=True) as uow:
            return await uow.orders.get_by_id(order_id)
    return _load
