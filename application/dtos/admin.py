"""Operator-facing views: outbox rows and orders flagged for review."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from domain.notification.entity import Notification
from domain.order.entity import Order, OrderStatus


class NotificationView(BaseModel):
    id: int
    order_id: int
    kind: str
    recipient: str
    subject: str
    status: str
    attempts: int
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, n: Notification) -> "NotificationView":
        return cls(
            id=n.id,
            order_id=n.order_id,
            kind=n.kind.value,
            recipient=n.recipient,
            subject=n.subject,
            status=n.status.value,
            attempts=n.attempts,
            last_error=n.last_error,
            created_at=n.created_at,
            sent_at=n.sent_at,
        )


class OrderSummary(BaseModel):
    id: int
    receipt: str
    gateway: str
    gateway_order_reference: Optional[str] = None
    status: str
    amount: int
    currency: str
    inventory_review_required: bool
    review_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, o: Order) -> "OrderSummary":
        return cls(
            id=o.id,
            receipt=o.receipt,
            gateway=o.gateway,
            gateway_order_reference=o.gateway_order_ref,
            status=o.status.value,
            amount=o.amount,
            currency=o.currency,
            inventory_review_required=o.inventory_review_required,
            review_reason=(o.payment_metadata or {}).get("review_reason"),
            updated_at=o.updated_at,
        )


class FulfillmentUpdate(BaseModel):
    status: OrderStatus = Field(..., description="processing / shipped / delivered / cancelled")
