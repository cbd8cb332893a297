import hashlib
import hmac
import json
import uuid
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_gateway_factory, get_notification_queue
from domain.payment.signatures import compute_hash_chain
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.hdfc_client import HdfcClient
from infrastructure.external.payments.razorpay_client import RazorpayClient
from main import app


KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"
ADMIN = {"X-Admin-Token": "admin-test-token"}

CHECKOUT_BODY = {
    "amount": 50_000,
    "currency": "INR",
    "customer": {"name": "Asha Rao", "email": "asha@example.com", "phone": "9876543210"},
    "items": [{"product_id": 1, "name": "Tee", "quantity": 2, "unit_price": 25_000}],
    "shipping_address": {"line1": "12 MG Road", "city": "Bengaluru", "postal_code": "560001"},
}


class RecordingQueue:
    def __init__(self):
        self.enqueued: list[int] = []

    def enqueue_email(self, notification_id: int) -> str:
        self.enqueued.append(notification_id)
        return f"task-{notification_id}"


def _orders_api(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={
        "id": f"order_{uuid.uuid4().hex[:14]}",
        "amount": body["amount"],
        "currency": body["currency"],
        "receipt": body["receipt"],
        "status": "created",
    })


def _gateways(name: str):
    if name.lower() == "razorpay":
        return RazorpayClient(transport=httpx.MockTransport(_orders_api))
    return get_payment_gateway(name)


@pytest.fixture(scope="module")
def queue():
    return RecordingQueue()


@pytest.fixture(scope="module")
def client(queue):
    app.dependency_overrides[get_gateway_factory] = lambda: _gateways
    app.dependency_overrides[get_notification_queue] = lambda: queue
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _checkout(client, gateway="razorpay", **headers) -> dict:
    resp = client.post(f"/api/v1/checkout/{gateway}", json=CHECKOUT_BODY, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def _verify_body(order_ref: str, payment_ref: str, secret: str = KEY_SECRET) -> dict:
    signature = hmac.new(secret.encode(), f"{order_ref}|{payment_ref}".encode(), hashlib.sha256).hexdigest()
    return {"orderReference": order_ref, "paymentReference": payment_ref, "signature": signature}


def _webhook(order_ref: str, amount: int = 50_000, secret: str = WEBHOOK_SECRET):
    body = json.dumps({
        "event": "payment.captured",
        "payload": {"payment": {"entity": {
            "id": f"pay_{uuid.uuid4().hex[:10]}",
            "order_id": order_ref,
            "status": "captured",
            "amount": amount,
        }}},
    }).encode()
    signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return body, {"X-Razorpay-Signature": signature, "Content-Type": "application/json"}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"
    assert resp.headers["X-Request-ID"]


def test_checkout_then_verify_is_idempotent(client, queue):
    order = _checkout(client, **{"Idempotency-Key": f"cart-{uuid.uuid4().hex[:12]}"})
    assert order["status"] == "pending"
    assert order["client_parameters"]["key_id"] == "rzp_test_key123"
    sent_before = len(queue.enqueued)

    body = _verify_body(order["gateway_order_reference"], "pay_Api1")
    first = client.post("/api/v1/payments/verify", json=body)
    second = client.post("/api/v1/payments/verify", json=body)

    assert first.status_code == 200
    assert first.json()["data"]["valid"] is True
    assert first.json()["data"]["outcome"] == "paid"
    assert second.json()["data"]["outcome"] == "duplicate"
    assert len(queue.enqueued) == sent_before + 2

    status_resp = client.get(f"/api/v1/payments/orders/razorpay/{order['gateway_order_reference']}")
    assert status_resp.json()["data"]["status"] == "paid"


def test_verify_with_bad_signature_returns_invalid(client):
    order = _checkout(client)

    resp = client.post(
        "/api/v1/payments/verify",
        json=_verify_body(order["gateway_order_reference"], "pay_Api2", secret="forged"),
    )

    assert resp.status_code == 400
    payload = resp.json()
    assert payload["data"] == {"valid": False}
    assert payload["error"]["type"] == "INVALID_SIGNATURE"
    assert payload["error"]["request_id"] == resp.headers["X-Request-ID"]


def test_verify_rejects_malformed_fields(client):
    resp = client.post(
        "/api/v1/payments/verify",
        json={"orderReference": "nope", "paymentReference": "pay_1", "signature": "abc"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "ValidationError"


def test_webhook_marks_order_paid(client):
    order = _checkout(client)
    body, headers = _webhook(order["gateway_order_reference"])

    resp = client.post("/api/v1/payments/webhooks/razorpay", content=body, headers=headers)

    assert resp.status_code == 200
    assert resp.json() == {"status": "success"}
    status_resp = client.get(f"/api/v1/payments/orders/razorpay/{order['gateway_order_reference']}")
    assert status_resp.json()["data"]["status"] == "paid"


def test_webhook_with_bad_signature_or_unknown_order(client):
    order = _checkout(client)
    body, headers = _webhook(order["gateway_order_reference"], secret="forged")
    assert client.post("/api/v1/payments/webhooks/razorpay", content=body, headers=headers).status_code == 400

    body, headers = _webhook("order_DoesNotExist1")
    resp = client.post("/api/v1/payments/webhooks/razorpay", content=body, headers=headers)
    assert resp.status_code == 404


def test_unknown_gateway_is_a_validation_error(client):
    resp = client.post("/api/v1/checkout/paypal", json=CHECKOUT_BODY)
    assert resp.status_code == 400
    assert resp.json()["error"]["field"] == "gateway"


def test_hdfc_browser_return_redirects_to_storefront(client):
    order = _checkout(client, gateway="hdfc")
    form = order["client_parameters"]["fields"]
    hdfc = HdfcClient()
    fields = {
        "status": "success",
        "txnid": form["txnid"],
        "amount": form["amount"],
        "productinfo": form["productinfo"],
        "firstname": form["firstname"],
        "email": form["email"],
        "udf1": form["udf1"],
        "mihpayid": "403993715521234567",
    }
    fields["hash"] = compute_hash_chain(hdfc.response_layout, fields, {"key": "hdfc_key", "salt": "hdfc_salt"})

    resp = client.post("/api/v1/payments/hdfc/return", data=fields, follow_redirects=False)

    assert resp.status_code == 303
    location = urlsplit(resp.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == "https://shop.example.com/payment/success"
    assert parse_qs(location.query) == {"outcome": ["paid"], "order_reference": [form["txnid"]]}


def test_hdfc_browser_return_with_bad_hash_redirects_to_failure(client):
    order = _checkout(client, gateway="hdfc")
    txnid = order["client_parameters"]["fields"]["txnid"]

    resp = client.post(
        "/api/v1/payments/hdfc/return",
        data={"status": "success", "txnid": txnid, "amount": "500.00", "hash": "0" * 128},
        follow_redirects=False,
    )

    assert resp.status_code == 303
    location = urlsplit(resp.headers["location"])
    assert location.path == "/payment/failure"
    assert parse_qs(location.query)["outcome"] == ["error"]


def test_gateway_status_hides_secrets(client):
    resp = client.get("/api/v1/payments/gateways/status")
    assert resp.status_code == 200
    assert KEY_SECRET not in resp.text
    assert {g["gateway"] for g in resp.json()["data"]} == {"razorpay", "hdfc"}


def test_admin_requires_token(client):
    assert client.get("/api/v1/admin/orders/review").status_code == 401
    assert client.get("/api/v1/admin/orders/review", headers={"X-Admin-Token": "wrong"}).status_code == 403


def test_admin_review_queue_and_fulfillment(client):
    # product 1 is not in the catalogue, so a paid order lands in review
    order = _checkout(client)
    client.post("/api/v1/payments/verify", json=_verify_body(order["gateway_order_reference"], "pay_Api3"))

    review = client.get("/api/v1/admin/orders/review", headers=ADMIN)
    assert review.status_code == 200
    assert order["order_id"] in [o["id"] for o in review.json()["data"]]

    advanced = client.post(
        f"/api/v1/admin/orders/{order['order_id']}/status",
        json={"status": "processing"},
        headers=ADMIN,
    )
    assert advanced.status_code == 200
    assert advanced.json()["data"]["status"] == "processing"

    illegal = client.post(
        f"/api/v1/admin/orders/{order['order_id']}/status",
        json={"status": "delivered"},
        headers=ADMIN,
    )
    assert illegal.status_code == 409


def test_admin_lists_and_requeues_notifications(client, queue):
    order = _checkout(client)
    client.post("/api/v1/payments/verify", json=_verify_body(order["gateway_order_reference"], "pay_Api4"))

    pending = client.get("/api/v1/admin/notifications", headers=ADMIN)
    assert pending.status_code == 200
    rows = pending.json()["data"]
    assert rows

    before = len(queue.enqueued)
    resp = client.post(f"/api/v1/admin/notifications/{rows[0]['id']}/retry", headers=ADMIN)
    assert resp.status_code == 200
    assert queue.enqueued[before:] == [rows[0]["id"]]
