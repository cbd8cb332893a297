"""
Payment DTOs (Pydantic v2) used at application boundaries.

Gateway adapters translate provider-specific payloads into these models so
the callback handler never sees a provider spelling other than `raw_status`.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from application.dtos.checkout import CustomerContact

ORDER_REFERENCE_PATTERN = r"^order_[A-Za-z0-9]+$"
PAYMENT_REFERENCE_PATTERN = r"^pay_[A-Za-z0-9]+$"
HMAC_SIGNATURE_PATTERN = r"^[0-9a-fA-F]{64}$"


class GatewayOrderRequest(BaseModel):
    receipt: str
    amount: int = Field(..., gt=0)
    currency: str
    customer: CustomerContact
    description: Optional[str] = None
    product_info: str = "Storefront order"
    notes: dict[str, str] = Field(default_factory=dict)


class GatewayOrder(BaseModel):
    """Remote order created (or prepared) by a gateway."""

    reference: str
    amount: int
    currency: str
    raw_status: Optional[str] = None
    client_parameters: dict[str, Any] = Field(default_factory=dict)


class CallbackPayload(BaseModel):
    """Normalized inbound callback, webhook or reconciliation result."""

    order_reference: Optional[str] = None
    payment_reference: Optional[str] = None
    raw_status: Optional[str] = None
    amount: Optional[int] = None  # minor units, when the gateway reports one
    failure_code: Optional[str] = None
    failure_description: Optional[str] = None
    event_type: Optional[str] = None
    # audit fields stored in payment_metadata (never secrets or hashes)
    fields: dict[str, Any] = Field(default_factory=dict)


class CallbackOutcome(str, Enum):
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    AMOUNT_MISMATCH = "amount_mismatch"


class CallbackResult(BaseModel):
    outcome: CallbackOutcome
    gateway: str
    order_id: Optional[int] = None
    order_reference: Optional[str] = None
    payment_reference: Optional[str] = None
    status: Optional[str] = None  # order status after processing

    @property
    def successful_payment(self) -> bool:
        return self.status in {"paid", "processing", "shipped", "delivered"}


class VerifyPaymentRequest(BaseModel):
    """Client-side payment confirmation (HMAC scheme)."""

    model_config = ConfigDict(populate_by_name=True)

    order_reference: str = Field(
        ...,
        pattern=ORDER_REFERENCE_PATTERN,
        validation_alias=AliasChoices("orderReference", "razorpay_order_id", "order_reference"),
    )
    payment_reference: str = Field(
        ...,
        pattern=PAYMENT_REFERENCE_PATTERN,
        validation_alias=AliasChoices("paymentReference", "razorpay_payment_id", "payment_reference"),
    )
    signature: str = Field(
        ...,
        pattern=HMAC_SIGNATURE_PATTERN,
        validation_alias=AliasChoices("signature", "razorpay_signature"),
    )
    status: Optional[str] = Field(default=None, max_length=50)


class VerifyPaymentResponse(BaseModel):
    valid: bool
    status: Optional[str] = None
    outcome: Optional[str] = None
    order_reference: Optional[str] = None
    payment_reference: Optional[str] = None
    verified_at: Optional[datetime] = None


class OrderStatusView(BaseModel):
    """Generic, customer-safe view of an order's payment state."""

    order_id: int
    gateway: str
    order_reference: Optional[str] = None
    status: str
    amount: int
    currency: str
    paid_at: Optional[datetime] = None


__all__ = [
    "GatewayOrderRequest",
    "GatewayOrder",
    "CallbackPayload",
    "CallbackOutcome",
    "CallbackResult",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "OrderStatusView",
]
