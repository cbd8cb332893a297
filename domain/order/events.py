"""
Order payment events.

Dataclass events record payment lifecycle facts produced by the callback
handler. Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderPaymentEvent:
    order_id: int
    gateway: str
    gateway_order_ref: str
    gateway_payment_ref: Optional[str] = None
    source: str = "webhook"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderPaid(OrderPaymentEvent):
    amount: int = 0
    currency: str = ""


@dataclass
class OrderPaymentFailed(OrderPaymentEvent):
    failure_code: Optional[str] = None
    failure_description: Optional[str] = None
