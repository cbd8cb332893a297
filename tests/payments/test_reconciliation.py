from datetime import timedelta

import httpx
import pytest

from application.dtos.payments import CallbackOutcome
from application.services.payment_callback_service import PaymentCallbackService
from application.services.reconciliation_service import ReconciliationService
from application.services.side_effects import SideEffectDispatcher
from core.settings import RazorpaySettings
from domain.order.entity import OrderStatus
from domain.order.exceptions import OrderNotFoundException
from infrastructure.external.payments.razorpay_client import RazorpayClient


RAZORPAY_CFG = RazorpaySettings(key_id="rzp_test_key123", key_secret="test_key_secret")


class PaymentsApi:
    """Answers GET /orders/{id}/payments from a canned table."""

    def __init__(self, payments: dict[str, list[dict]], broken: frozenset[str] = frozenset()):
        self.payments = payments
        self.broken = broken
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        reference = request.url.path.split("/")[-2]
        self.calls.append(reference)
        if reference in self.broken:
            return httpx.Response(502, json={"error": {"code": "SERVER_ERROR"}})
        if reference not in self.payments:
            return httpx.Response(404, json={"error": {"code": "BAD_REQUEST_ERROR"}})
        return httpx.Response(200, json={"items": self.payments[reference]})


def _payment(order_ref: str, status: str, amount: int = 50_000, **extra) -> dict:
    return {"id": f"pay_{order_ref[6:]}", "order_id": order_ref, "status": status, "amount": amount, "created_at": 1, **extra}


@pytest.fixture
def build_service(uow_factory, queue):
    def _build(api: PaymentsApi) -> ReconciliationService:
        dispatcher = SideEffectDispatcher(uow_factory, queue)
        callbacks = PaymentCallbackService(uow_factory, dispatcher)

        def gateway_factory(name: str) -> RazorpayClient:
            return RazorpayClient(config=RAZORPAY_CFG, transport=httpx.MockTransport(api))

        return ReconciliationService(uow_factory, gateway_factory, callbacks)
    return _build


async def test_order_status_lookup(build_service, make_order):
    order = await make_order(reference="order_Look1")
    service = build_service(PaymentsApi({}))

    view = await service.get_order_status("RAZORPAY", "order_Look1")

    assert view.order_id == order.id
    assert view.status == "pending"
    assert view.amount == 50_000
    assert view.paid_at is None

    with pytest.raises(OrderNotFoundException):
        await service.get_order_status("razorpay", "order_Nowhere")


async def test_reconcile_order_applies_captured_payment(build_service, make_order, load_order, queue):
    order = await make_order(reference="order_Rec1")
    service = build_service(PaymentsApi({"order_Rec1": [_payment("order_Rec1", "captured", method="card")]}))

    result = await service.reconcile_order("razorpay", "order_Rec1")

    assert result.outcome == CallbackOutcome.PAID
    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PAID
    assert stored.payment_metadata["source"] == "reconciliation"
    assert stored.payment_metadata["method"] == "card"
    assert len(queue.enqueued) == 1


async def test_reconcile_order_without_payments_is_ignored(build_service, make_order, load_order):
    order = await make_order(reference="order_Quiet1")
    service = build_service(PaymentsApi({}))

    result = await service.reconcile_order("razorpay", "order_Quiet1")

    assert result.outcome == CallbackOutcome.IGNORED
    assert (await load_order(order.id)).status == OrderStatus.PENDING


async def test_reconcile_pending_sweep_survives_gateway_errors(build_service, make_order, load_order):
    paid = await make_order(reference="order_Sweep1")
    failed = await make_order(reference="order_Sweep2")
    broken = await make_order(reference="order_Sweep3")
    await make_order(reference="order_Done1", status=OrderStatus.PAID)
    api = PaymentsApi(
        {
            "order_Sweep1": [_payment("order_Sweep1", "captured")],
            "order_Sweep2": [_payment("order_Sweep2", "failed", error_code="BAD_REQUEST_ERROR")],
        },
        broken=frozenset({"order_Sweep3"}),
    )

    summary = await build_service(api).reconcile_pending("razorpay", older_than=timedelta(seconds=-60))

    assert summary["checked"] == 3
    assert summary["errors"] == 1
    assert summary["paid"] == 1
    assert summary["payment_failed"] == 1
    assert "order_Done1" not in api.calls
    assert (await load_order(paid.id)).status == OrderStatus.PAID
    assert (await load_order(failed.id)).status == OrderStatus.PAYMENT_FAILED
    assert (await load_order(broken.id)).status == OrderStatus.PENDING


async def test_reconcile_pending_skips_recent_orders(build_service, make_order):
    await make_order(reference="order_Fresh1")
    api = PaymentsApi({})

    summary = await build_service(api).reconcile_pending("razorpay", older_than=timedelta(hours=1))

    assert summary == {"checked": 0, "errors": 0}
    assert api.calls == []
