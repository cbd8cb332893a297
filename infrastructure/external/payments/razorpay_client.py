"""
Razorpay Orders adapter (REST over httpx, HMAC-SHA256 signatures).

- Orders: POST /orders with basic auth key_id:key_secret, amounts in paise.
- Client callback: `razorpay_signature` = HMAC(key_secret, "order_id|payment_id").
- Webhook: `X-Razorpay-Signature` = HMAC(webhook_secret, raw body).
"""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional

import httpx

from application.dtos.payments import CallbackPayload, GatewayOrder, GatewayOrderRequest
from core.config import settings
from core.settings import RazorpaySettings, payment_settings
from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import (
    GatewayRejectedError,
    GatewayUnavailableError,
    PaymentConfigurationError,
)
from domain.payment.signatures import verify_hmac_signature, verify_reference_signature
from infrastructure.external.payments.base import BasePaymentClient, header_value


WEBHOOK_SIGNATURE_HEADER = "X-Razorpay-Signature"

# Events that carry a payment verdict; everything else is acknowledged and dropped.
HANDLED_WEBHOOK_EVENTS = frozenset({
    "payment.captured",
    "payment.failed",
    "payment.authorized",
    "order.paid",
})

# Payment entity fields kept for audit
_AUDIT_FIELDS = ("method", "bank", "wallet", "vpa", "card_id", "international", "fee", "tax")


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        config: Optional[RazorpaySettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = config or payment_settings.razorpay
        missing = cfg.missing()
        if missing:
            raise PaymentConfigurationError(
                "Razorpay credentials are not configured",
                provider=self.provider,
                missing=missing,
            )
        super().__init__(transport=transport)
        self._cfg = cfg

    @property
    def mode(self) -> str:
        return "LIVE" if (self._cfg.key_id or "").startswith("rzp_live_") else "TEST"

    @property
    def _auth(self) -> tuple[str, str]:
        return (self._cfg.key_id or "", self._cfg.key_secret or "")

    def _url(self, path: str) -> str:
        return f"{self._cfg.base_url.rstrip('/')}/{path.lstrip('/')}"

    @staticmethod
    def _error_info(resp: httpx.Response) -> tuple[Optional[str], str]:
        try:
            err = (resp.json() or {}).get("error") or {}
        except ValueError:
            err = {}
        return err.get("code"), err.get("description") or f"HTTP {resp.status_code}"

    async def create_order(self, req: GatewayOrderRequest) -> GatewayOrder:
        notes = {
            "customer_email": str(req.customer.email),
            "customer_phone": req.customer.phone,
            "source": "storefront",
            "environment": settings.ENVIRONMENT,
            **req.notes,
        }
        body = {
            "amount": req.amount,
            "currency": req.currency,
            "receipt": req.receipt,
            "payment_capture": 1,
            "notes": notes,
        }
        resp = await self._send("POST", self._url("/orders"), json=body, auth=self._auth)
        if resp.status_code >= 500:
            code, description = self._error_info(resp)
            self._log("razorpay_order_failed", status_code=resp.status_code, error_code=code)
            raise GatewayUnavailableError(
                "Razorpay is unavailable",
                provider=self.provider,
                details={"status_code": resp.status_code},
            )
        if resp.status_code >= 400:
            code, description = self._error_info(resp)
            self._log("razorpay_order_rejected", status_code=resp.status_code, error_code=code)
            raise GatewayRejectedError(
                "Failed to create payment order",
                provider=self.provider,
                provider_code=code,
                details={"status_code": resp.status_code, "description": description},
            )

        data = resp.json()
        order_id = data.get("id")
        if not order_id:
            raise GatewayRejectedError("Gateway response carried no order id", provider=self.provider)

        self._log("razorpay_order_created", order_reference=order_id, receipt=req.receipt)
        amount = int(data.get("amount", req.amount))
        currency = data.get("currency", req.currency)
        return GatewayOrder(
            reference=order_id,
            amount=amount,
            currency=currency,
            raw_status=data.get("status"),
            client_parameters={
                "key_id": self._cfg.key_id,
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
                "name": self._cfg.merchant_name,
                "description": req.description or req.product_info,
                "prefill": {
                    "name": req.customer.name,
                    "email": str(req.customer.email),
                    "contact": req.customer.phone,
                },
            },
        )

    # ---- client callback ----

    def parse_callback(self, fields: Mapping[str, Any]) -> CallbackPayload:
        order_ref = fields.get("razorpay_order_id") or fields.get("order_reference") or fields.get("orderReference")
        payment_ref = (
            fields.get("razorpay_payment_id") or fields.get("payment_reference") or fields.get("paymentReference")
        )
        # Checkout only invokes the success handler for captured payments
        # (orders are created with payment_capture=1).
        raw_status = fields.get("status") or "captured"
        return CallbackPayload(
            order_reference=order_ref,
            payment_reference=payment_ref,
            raw_status=str(raw_status),
            fields={"channel": "checkout"},
        )

    def verify_callback(self, fields: Mapping[str, Any]) -> bool:
        order_ref = fields.get("razorpay_order_id") or fields.get("order_reference") or fields.get("orderReference")
        payment_ref = (
            fields.get("razorpay_payment_id") or fields.get("payment_reference") or fields.get("paymentReference")
        )
        signature = fields.get("razorpay_signature") or fields.get("signature")
        return verify_reference_signature(self._cfg.key_secret, order_ref, payment_ref, signature)

    # ---- webhook ----

    def verify_webhook(self, headers: Mapping[str, str], body: bytes) -> bool:
        if not self._cfg.webhook_secret:
            raise PaymentConfigurationError(
                "Razorpay webhook secret is not configured",
                provider=self.provider,
                missing=["webhook_secret"],
            )
        return verify_hmac_signature(
            self._cfg.webhook_secret,
            body,
            header_value(headers, WEBHOOK_SIGNATURE_HEADER),
        )

    def parse_webhook(self, headers: Mapping[str, str], body: bytes) -> Optional[CallbackPayload]:
        try:
            event = json.loads(body or b"{}")
        except ValueError as exc:
            raise DomainValidationException("Malformed webhook body", field="body") from exc
        if not isinstance(event, dict):
            raise DomainValidationException("Malformed webhook body", field="body")

        event_type = event.get("event")
        if event_type not in HANDLED_WEBHOOK_EVENTS:
            self._log("razorpay_webhook_event_ignored", event_type=event_type)
            return None

        payload = event.get("payload") or {}
        payment = ((payload.get("payment") or {}).get("entity")) or {}
        order = ((payload.get("order") or {}).get("entity")) or {}
        if event_type == "order.paid" and not payment:
            return CallbackPayload(
                order_reference=order.get("id"),
                raw_status=order.get("status") or "paid",
                amount=order.get("amount_paid"),
                event_type=event_type,
                fields={"channel": "webhook", "event": event_type},
            )
        return self._payment_entity_to_payload(payment, event_type=event_type, channel="webhook")

    def _payment_entity_to_payload(
        self,
        payment: Mapping[str, Any],
        *,
        event_type: Optional[str],
        channel: str,
    ) -> CallbackPayload:
        audit = {k: payment.get(k) for k in _AUDIT_FIELDS if payment.get(k) is not None}
        audit["channel"] = channel
        if event_type:
            audit["event"] = event_type
        amount = payment.get("amount")
        return CallbackPayload(
            order_reference=payment.get("order_id"),
            payment_reference=payment.get("id"),
            raw_status=payment.get("status"),
            amount=int(amount) if amount is not None else None,
            failure_code=payment.get("error_code"),
            failure_description=payment.get("error_description"),
            event_type=event_type,
            fields=audit,
        )

    # ---- reconciliation ----

    async def query_order(self, reference: str) -> Optional[CallbackPayload]:
        resp = await self._send("GET", self._url(f"/orders/{reference}/payments"), auth=self._auth)
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise GatewayUnavailableError(
                "Razorpay status query failed",
                provider=self.provider,
                details={"status_code": resp.status_code},
            )
        items = (resp.json() or {}).get("items") or []
        if not items:
            return None
        # Prefer a captured payment; otherwise the most recent attempt decides.
        captured = [p for p in items if self.map_status(p.get("status")) == "paid"]
        chosen = captured[0] if captured else max(items, key=lambda p: p.get("created_at") or 0)
        return self._payment_entity_to_payload(chosen, event_type=None, channel="reconciliation")
