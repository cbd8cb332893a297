"""
通知发件箱模型：每封交易邮件一行，(order_id, kind) 唯一
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint, Index
from datetime import datetime, timezone

from .base import Base


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    kind = Column(String(50), nullable=False, comment="customer_confirmation/admin_notification")
    recipient = Column(String(500), nullable=False)
    subject = Column(String(300), nullable=False)
    text_body = Column(Text, nullable=False)
    html_body = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending", comment="pending/sent/failed")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    sent_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("order_id", "kind", name="uq_notifications_order_kind"),
        Index("ix_notifications_status", "status"),
    )

    def __repr__(self):
        return f"<NotificationModel(id={self.id}, order_id={self.order_id}, kind='{self.kind}', status='{self.status}')>"
