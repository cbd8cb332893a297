"""
Notification outbox entity.

One row per transactional email. Rows that are not `sent` are what operators
see as "notifications pending" and can be retried independently.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class NotificationKind(str, Enum):
    CUSTOMER_CONFIRMATION = "customer_confirmation"
    ADMIN_NOTIFICATION = "admin_notification"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class Notification:
    id: Optional[int]
    order_id: int
    kind: NotificationKind
    recipient: str
    subject: str
    text_body: str
    html_body: str
    status: NotificationStatus = NotificationStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
