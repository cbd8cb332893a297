"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Any

from application.ports.payment_gateway import PaymentGateway
from core.settings import payment_settings
from domain.common.exceptions import DomainValidationException

SUPPORTED_PROVIDERS = ("razorpay", "hdfc")


def get_payment_gateway(provider: str) -> PaymentGateway:
    name = (provider or "").lower()
    if name not in SUPPORTED_PROVIDERS or name not in payment_settings.enabled_providers:
        raise DomainValidationException(f"Unsupported payment gateway: {provider}", field="gateway")
    if name == "razorpay":
        from .razorpay_client import RazorpayClient
        return RazorpayClient()
    from .hdfc_client import HdfcClient
    return HdfcClient()


def describe_gateways() -> list[dict[str, Any]]:
    """Configuration status per gateway; exposes key prefixes only."""
    razorpay = payment_settings.razorpay
    hdfc = payment_settings.hdfc
    key_id = razorpay.key_id or ""
    return [
        {
            "gateway": "razorpay",
            "enabled": "razorpay" in payment_settings.enabled_providers,
            "configured": not razorpay.missing(),
            "webhook_configured": bool(razorpay.webhook_secret),
            "mode": "LIVE" if key_id.startswith("rzp_live_") else "TEST",
            "key_prefix": key_id[:12] if key_id else None,
        },
        {
            "gateway": "hdfc",
            "enabled": "hdfc" in payment_settings.enabled_providers,
            "configured": not hdfc.missing(),
            "merchant_id": hdfc.merchant_id,
            "payment_url": hdfc.payment_url,
        },
    ]


__all__ = ["get_payment_gateway", "describe_gateways", "SUPPORTED_PROVIDERS"]
