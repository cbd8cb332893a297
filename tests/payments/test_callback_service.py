import asyncio
import hashlib
import hmac
import json

import pytest

from application.dtos.payments import CallbackOutcome
from application.services.payment_callback_service import PaymentCallbackService
from application.services.side_effects import SideEffectDispatcher
from core.settings import HdfcSettings, RazorpaySettings
from domain.order.entity import LineItem, OrderStatus, SideEffectsStatus
from domain.order.exceptions import OrderNotFoundException
from domain.payment.exceptions import PaymentConfigurationError, SignatureVerificationFailed
from domain.payment.signatures import compute_hash_chain
from infrastructure.external.payments.hdfc_client import HdfcClient
from infrastructure.external.payments.razorpay_client import RazorpayClient
from infrastructure.repositories.notification_repository import SQLAlchemyNotificationRepository


KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


@pytest.fixture
def razorpay():
    return RazorpayClient(
        config=RazorpaySettings(key_id="rzp_test_key123", key_secret=KEY_SECRET, webhook_secret=WEBHOOK_SECRET)
    )


@pytest.fixture
def service(uow_factory, queue):
    dispatcher = SideEffectDispatcher(
        uow_factory,
        queue,
        admin_recipients=["ops@example.com"],
        store_name="Test Store",
    )
    return PaymentCallbackService(uow_factory, dispatcher)


def _callback_fields(order_ref="order_Abc123", payment_ref="pay_Xyz789", secret=KEY_SECRET):
    signature = hmac.new(secret.encode(), f"{order_ref}|{payment_ref}".encode(), hashlib.sha256).hexdigest()
    return {
        "razorpay_order_id": order_ref,
        "razorpay_payment_id": payment_ref,
        "razorpay_signature": signature,
    }


def _webhook(event: str, *, order_ref="order_Abc123", status="captured", amount=50_000, secret=WEBHOOK_SECRET):
    body = json.dumps({
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": "pay_Web456",
                    "order_id": order_ref,
                    "status": status,
                    "amount": amount,
                    "method": "upi",
                    "error_code": "BAD_REQUEST_ERROR" if status == "failed" else None,
                    "error_description": "Payment declined by bank" if status == "failed" else None,
                }
            }
        },
    }).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return {"X-Razorpay-Signature": signature, "Content-Type": "application/json"}, body


async def _stock(uow_factory, product_id):
    async with uow_factory(readonly=True) as uow:
        return (await uow.products.get_by_id(product_id)).stock_quantity


async def test_verified_callback_marks_paid_and_runs_side_effects(
    service, razorpay, make_product, make_order, load_order, queue, uow_factory
):
    product = await make_product(stock=10)
    order = await make_order(items=[LineItem(product_id=product.id, name="Tee", quantity=2, unit_price=25_000)])

    result = await service.handle_client_callback(razorpay, _callback_fields())

    assert result.outcome == CallbackOutcome.PAID
    assert result.status == "paid"
    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PAID
    assert stored.gateway_payment_ref == "pay_Xyz789"
    assert stored.paid_at is not None
    assert stored.payment_metadata["source"] == "client_callback"
    assert await _stock(uow_factory, product.id) == 8
    assert len(queue.enqueued) == 2
    assert stored.side_effects_status == SideEffectsStatus.DONE


async def test_outbox_write_failure_rolls_back_the_paid_transition(
    service, razorpay, make_product, make_order, load_order, queue, uow_factory, monkeypatch
):
    product = await make_product(stock=10)
    order = await make_order(items=[LineItem(product_id=product.id, name="Tee", quantity=2, unit_price=25_000)])
    original_add = SQLAlchemyNotificationRepository.add
    calls = {"n": 0}

    async def flaky_add(self, notification):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionError("database went away")
        return await original_add(self, notification)

    monkeypatch.setattr(SQLAlchemyNotificationRepository, "add", flaky_add)

    with pytest.raises(ConnectionError):
        await service.handle_client_callback(razorpay, _callback_fields())

    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PENDING
    assert stored.side_effects_status is None
    async with uow_factory(readonly=True) as uow:
        assert await uow.notifications.list_by_order(order.id) == []
    assert queue.enqueued == []

    retried = await service.handle_client_callback(razorpay, _callback_fields())

    assert retried.outcome == CallbackOutcome.PAID
    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PAID
    assert stored.side_effects_status == SideEffectsStatus.DONE
    async with uow_factory(readonly=True) as uow:
        assert len(await uow.notifications.list_by_order(order.id)) == 2
    assert await _stock(uow_factory, product.id) == 8
    assert len(queue.enqueued) == 2


async def test_repeated_callback_is_duplicate_without_side_effects(
    service, razorpay, make_product, make_order, queue, uow_factory
):
    product = await make_product(stock=10)
    await make_order(items=[LineItem(product_id=product.id, name="Tee", quantity=2, unit_price=25_000)])

    first = await service.handle_client_callback(razorpay, _callback_fields())
    second = await service.handle_client_callback(razorpay, _callback_fields())
    headers, body = _webhook("payment.captured")
    third = await service.handle_webhook(razorpay, headers, body)

    assert first.outcome == CallbackOutcome.PAID
    assert second.outcome == CallbackOutcome.DUPLICATE
    assert third.outcome == CallbackOutcome.DUPLICATE
    assert await _stock(uow_factory, product.id) == 8
    assert len(queue.enqueued) == 2


async def test_concurrent_callback_and_webhook_transition_once(
    service, razorpay, make_product, make_order, load_order, queue, uow_factory
):
    product = await make_product(stock=5)
    order = await make_order(items=[LineItem(product_id=product.id, name="Tee", quantity=2, unit_price=25_000)])
    headers, body = _webhook("payment.captured")

    results = await asyncio.gather(
        service.handle_client_callback(razorpay, _callback_fields()),
        service.handle_webhook(razorpay, headers, body),
    )

    outcomes = sorted(r.outcome.value for r in results)
    assert outcomes == ["duplicate", "paid"]
    assert (await load_order(order.id)).status == OrderStatus.PAID
    assert await _stock(uow_factory, product.id) == 3
    assert len(queue.enqueued) == 2


async def test_invalid_signature_is_rejected_and_order_untouched(service, razorpay, make_order, load_order):
    order = await make_order()
    fields = _callback_fields(secret="someone-elses-secret")

    with pytest.raises(SignatureVerificationFailed) as exc_info:
        await service.handle_client_callback(razorpay, fields, client={"client_ip": "203.0.113.9"})

    assert exc_info.value.error_type == "INVALID_SIGNATURE"
    assert (await load_order(order.id)).status == OrderStatus.PENDING


async def test_tampered_webhook_body_is_rejected(service, razorpay, make_order, load_order):
    order = await make_order()
    headers, body = _webhook("payment.captured")
    tampered = body.replace(b"50000", b"100")

    with pytest.raises(SignatureVerificationFailed):
        await service.handle_webhook(razorpay, headers, tampered)

    assert (await load_order(order.id)).status == OrderStatus.PENDING


async def test_failed_payment_records_failure_without_side_effects(service, razorpay, make_order, load_order, queue):
    order = await make_order()
    headers, body = _webhook("payment.failed", status="failed")

    result = await service.handle_webhook(razorpay, headers, body)

    assert result.outcome == CallbackOutcome.PAYMENT_FAILED
    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PAYMENT_FAILED
    assert stored.failure_code == "BAD_REQUEST_ERROR"
    assert stored.failure_description == "Payment declined by bank"
    assert stored.failed_at is not None
    assert queue.enqueued == []


async def test_amount_mismatch_flags_order_for_review(service, razorpay, make_order, load_order, queue):
    order = await make_order()
    headers, body = _webhook("payment.captured", amount=100)

    result = await service.handle_webhook(razorpay, headers, body)

    assert result.outcome == CallbackOutcome.AMOUNT_MISMATCH
    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PENDING
    assert stored.inventory_review_required is True
    assert stored.payment_metadata["review_reason"] == "amount_mismatch"
    assert stored.payment_metadata["reported_amount"] == 100
    assert queue.enqueued == []


async def test_pending_status_is_ignored(service, razorpay, make_order, load_order):
    order = await make_order()
    headers, body = _webhook("payment.authorized", status="authorized")

    result = await service.handle_webhook(razorpay, headers, body)

    assert result.outcome == CallbackOutcome.IGNORED
    assert (await load_order(order.id)).status == OrderStatus.PENDING


async def test_unhandled_webhook_event_returns_none(service, razorpay):
    body = json.dumps({"event": "refund.created", "payload": {}}).encode()
    signature = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()

    assert await service.handle_webhook(razorpay, {"x-razorpay-signature": signature}, body) is None


async def test_unknown_order_reference_raises_not_found(service, razorpay):
    with pytest.raises(OrderNotFoundException):
        await service.handle_client_callback(razorpay, _callback_fields(order_ref="order_Missing1"))


async def test_webhook_without_configured_secret_is_a_configuration_error(service):
    client = RazorpayClient(config=RazorpaySettings(key_id="rzp_test_key123", key_secret=KEY_SECRET))
    headers, body = _webhook("payment.captured")

    with pytest.raises(PaymentConfigurationError):
        await service.handle_webhook(client, headers, body)


async def test_hdfc_form_post_for_fifty_thousand_paise_marks_paid(service, make_product, make_order, load_order, queue):
    product = await make_product(stock=3)
    order = await make_order(
        gateway="hdfc",
        reference="TXN_1700000000000_ab12cd34",
        items=[LineItem(product_id=product.id, name="Tee", quantity=2, unit_price=25_000)],
    )
    hdfc = HdfcClient(config=HdfcSettings(api_key="hdfc_key", merchant_id="M12345", response_key="hdfc_salt"))
    fields = {
        "status": "success",
        "txnid": "TXN_1700000000000_ab12cd34",
        "amount": "500.00",
        "productinfo": "Tee x2",
        "firstname": "Asha Rao",
        "email": "asha@example.com",
        "udf1": order.receipt,
        "mihpayid": "403993715521234567",
        "cardnum": "512345XXXXXX2346",
    }
    fields["hash"] = compute_hash_chain(hdfc.response_layout, fields, {"key": "hdfc_key", "salt": "hdfc_salt"})

    result = await service.handle_client_callback(hdfc, fields, source="browser_return")

    assert result.outcome == CallbackOutcome.PAID
    stored = await load_order(order.id)
    assert stored.status == OrderStatus.PAID
    assert stored.gateway_payment_ref == "403993715521234567"
    assert stored.payment_metadata["card"] == "XXXX2346"
    assert "hash" not in stored.payment_metadata
    assert len(queue.enqueued) == 2


async def test_hdfc_form_post_with_bad_hash_is_rejected(service, make_order, load_order):
    order = await make_order(gateway="hdfc", reference="TXN_1700000000000_ffff0000")
    hdfc = HdfcClient(config=HdfcSettings(api_key="hdfc_key", merchant_id="M12345", response_key="hdfc_salt"))
    fields = {"status": "success", "txnid": "TXN_1700000000000_ffff0000", "amount": "500.00", "hash": "0" * 128}

    with pytest.raises(SignatureVerificationFailed):
        await service.handle_client_callback(hdfc, fields, source="browser_return")

    assert (await load_order(order.id)).status == OrderStatus.PENDING
