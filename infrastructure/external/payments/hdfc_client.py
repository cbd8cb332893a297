"""
HDFC hosted-checkout adapter (SHA-512 hash chain).

Initiation is local: the transaction id and request hash are computed here and
the browser posts the form to `payment_url`. The gateway answers by
form-posting the result, with a `hash` over the response layout, to surl/furl.
"""
from __future__ import annotations

import json
import secrets
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl

from application.dtos.payments import CallbackPayload, GatewayOrder, GatewayOrderRequest
from core.settings import HdfcSettings, payment_settings
from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import PaymentConfigurationError
from domain.payment.signatures import (
    REQUEST_REQUIRED_FIELDS,
    RESPONSE_REQUIRED_FIELDS,
    HashChainLayout,
    compute_hash_chain,
    verify_hash_chain,
)
from infrastructure.external.payments.base import BasePaymentClient, header_value


# Response fields copied into payment_metadata
_AUDIT_FIELDS = ("mode", "bank_ref_num", "bankcode", "PG_TYPE", "unmappedstatus", "name_on_card")


def format_amount(minor: int) -> str:
    """Minor units to the gateway's major-unit string with two decimals (10050 -> '100.50')."""
    return f"{minor // 100}.{minor % 100:02d}"


def parse_amount(raw: Any) -> Optional[int]:
    """Major-unit string to minor units; None when absent or not a whole number of paise."""
    if raw is None or raw == "":
        return None
    try:
        minor = Decimal(str(raw).strip()) * 100
    except InvalidOperation:
        return None
    if minor != minor.to_integral_value():
        return None
    return int(minor)


def mask_card(cardnum: Optional[str]) -> Optional[str]:
    if not cardnum:
        return None
    digits = "".join(ch for ch in str(cardnum) if ch.isdigit())
    return f"XXXX{digits[-4:]}" if len(digits) >= 4 else None


def generate_txnid() -> str:
    return f"TXN_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class HdfcClient(BasePaymentClient):
    provider = "hdfc"

    def __init__(self, config: Optional[HdfcSettings] = None):
        cfg = config or payment_settings.hdfc
        missing = cfg.missing()
        if missing:
            raise PaymentConfigurationError(
                "HDFC credentials are not configured",
                provider=self.provider,
                missing=missing,
            )
        super().__init__()
        self._cfg = cfg
        self.request_layout = HashChainLayout.from_tokens(cfg.request_hash_layout, REQUEST_REQUIRED_FIELDS)
        self.response_layout = HashChainLayout.from_tokens(cfg.response_hash_layout, RESPONSE_REQUIRED_FIELDS)

    @property
    def _secrets(self) -> dict[str, Optional[str]]:
        return {
            "key": self._cfg.api_key,
            "salt": self._cfg.response_key,
            "merchant_id": self._cfg.merchant_id,
            "client_id": self._cfg.client_id,
        }

    async def create_order(self, req: GatewayOrderRequest) -> GatewayOrder:
        missing = [n for n in ("success_url", "failure_url") if not getattr(self._cfg, n)]
        if missing:
            raise PaymentConfigurationError(
                "HDFC return URLs are not configured",
                provider=self.provider,
                missing=missing,
            )
        txnid = generate_txnid()
        fields: dict[str, Any] = {
            "key": self._cfg.api_key,
            "txnid": txnid,
            "amount": format_amount(req.amount),
            "productinfo": req.product_info,
            "firstname": req.customer.name,
            "email": str(req.customer.email),
            "phone": req.customer.phone,
            "udf1": req.receipt,
            "surl": self._cfg.success_url,
            "furl": self._cfg.failure_url,
            "curl": self._cfg.cancel_url or self._cfg.failure_url,
        }
        if self._cfg.merchant_id:
            fields["merchant_id"] = self._cfg.merchant_id
        fields["hash"] = compute_hash_chain(self.request_layout, fields, self._secrets)
        self._log("hdfc_order_prepared", order_reference=txnid, receipt=req.receipt)
        return GatewayOrder(
            reference=txnid,
            amount=req.amount,
            currency=req.currency,
            raw_status="new",
            client_parameters={
                "payment_url": self._cfg.payment_url,
                "method": "POST",
                "fields": fields,
            },
        )

    def parse_callback(self, fields: Mapping[str, Any]) -> CallbackPayload:
        audit = {k: fields.get(k) for k in _AUDIT_FIELDS if fields.get(k)}
        masked = mask_card(fields.get("cardnum"))
        if masked:
            audit["card"] = masked
        audit["channel"] = "return"
        return CallbackPayload(
            order_reference=fields.get("txnid"),
            payment_reference=fields.get("mihpayid") or fields.get("payment_id"),
            raw_status=fields.get("status"),
            amount=parse_amount(fields.get("amount")),
            failure_code=fields.get("error") or fields.get("error_code"),
            failure_description=fields.get("error_Message") or fields.get("error_message"),
            fields=audit,
        )

    def verify_callback(self, fields: Mapping[str, Any]) -> bool:
        return verify_hash_chain(self.response_layout, fields, self._secrets, fields.get("hash"))

    @staticmethod
    def _decode_body(headers: Mapping[str, str], body: bytes) -> dict[str, Any]:
        content_type = (header_value(headers, "content-type") or "").lower()
        text = (body or b"").decode("utf-8", errors="replace")
        if "json" in content_type:
            try:
                data = json.loads(text or "{}")
            except ValueError as exc:
                raise DomainValidationException("Malformed webhook body", field="body") from exc
            if not isinstance(data, dict):
                raise DomainValidationException("Malformed webhook body", field="body")
            return data
        return dict(parse_qsl(text, keep_blank_values=True))

    def verify_webhook(self, headers: Mapping[str, str], body: bytes) -> bool:
        # Server-to-server notifications carry the same fields and hash as the browser post.
        try:
            fields = self._decode_body(headers, body)
        except DomainValidationException:
            return False
        return self.verify_callback(fields)

    def parse_webhook(self, headers: Mapping[str, str], body: bytes) -> Optional[CallbackPayload]:
        payload = self.parse_callback(self._decode_body(headers, body))
        payload.fields["channel"] = "webhook"
        return payload
