"""
Payment specific codes and provider status mapping.

PROVIDER_STATUS_TO_INTERNAL is the only place where gateway status spellings
are translated into order statuses. Keys are matched case-insensitively, so
every spelling is stored lower-cased.
"""
from __future__ import annotations

from enum import IntEnum
from typing import Optional


class PaymentCode(IntEnum):
    # Gateway / signature errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002
    GATEWAY_UNAVAILABLE = 60005
    CONFIGURATION_ERROR = 60006
    SIDE_EFFECT_FAILED = 60007


# Internal outcomes a gateway status can map to. "pending" means the gateway
# has not reached a verdict yet and no transition must happen.
PAID = "paid"
PAYMENT_FAILED = "payment_failed"
PENDING = "pending"


PROVIDER_STATUS_TO_INTERNAL: dict[str, dict[str, str]] = {
    "razorpay": {
        # payment.status / order.status / client-callback status
        "captured": PAID,
        "paid": PAID,
        "success": PAID,
        "created": PENDING,
        "attempted": PENDING,
        "authorized": PENDING,
        "pending": PENDING,
        "failed": PAYMENT_FAILED,
        "failure": PAYMENT_FAILED,
    },
    "hdfc": {
        # Hash-chain form responses use lower-case words, SmartGateway
        # order status uses upper-case codes.
        "success": PAID,
        "charged": PAID,
        "completed": PAID,
        "pending": PENDING,
        "pending_vbv": PENDING,
        "authorizing": PENDING,
        "started": PENDING,
        "new": PENDING,
        "failure": PAYMENT_FAILED,
        "failed": PAYMENT_FAILED,
        "authorization_failed": PAYMENT_FAILED,
        "authentication_failed": PAYMENT_FAILED,
        "cancelled": PAYMENT_FAILED,
        "juspay_declined": PAYMENT_FAILED,
        "user_aborted": PAYMENT_FAILED,
    },
}


def map_provider_status(provider: str, raw_status: Optional[str]) -> Optional[str]:
    """Return the internal outcome for a gateway status, or None when unknown."""
    if not raw_status:
        return None
    mapping = PROVIDER_STATUS_TO_INTERNAL.get((provider or "").lower(), {})
    return mapping.get(str(raw_status).strip().lower())
