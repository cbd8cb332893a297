"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Boolean, Column, Integer, BigInteger, String, DateTime, Text, JSON,
    Index, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    所有业务规则都在 domain.order.entity.Order 中；
    status 只通过条件更新修改（见 SQLAlchemyOrderRepository.transition_status）
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)

    # 本地幂等引用（在调用网关之前生成）
    receipt = Column(String(100), unique=True, nullable=False, comment="本地订单收据号")

    # 网关信息
    gateway = Column(String(30), nullable=False, comment="支付网关: razorpay/hdfc")
    gateway_order_ref = Column(String(200), nullable=True, comment="网关订单号，只写一次")
    gateway_payment_ref = Column(String(200), nullable=True, comment="网关支付号")

    # 金额（最小货币单位整数）
    amount = Column(BigInteger, nullable=False, comment="金额（最小货币单位）")
    currency = Column(String(3), nullable=False, default="INR", comment="货币代码 ISO-4217")

    # 客户信息
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(320), nullable=False)
    customer_phone = Column(String(30), nullable=False)
    shipping_address = Column(JSON, nullable=True, comment="收货地址")
    items = Column(JSON, nullable=False, comment="订单行项目")
    description = Column(String(500), nullable=True)

    # 状态
    status = Column(String(30), nullable=False, default="pending", index=True, comment="订单状态")
    failure_code = Column(String(100), nullable=True)
    failure_description = Column(Text, nullable=True)
    inventory_review_required = Column(Boolean, nullable=False, default=False, comment="库存需人工复核")
    side_effects_status = Column(String(20), nullable=True, comment="支付后副作用进度: pending/running/done")

    # 审计元数据（使用 payment_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    payment_metadata = Column("metadata", JSON, nullable=True, comment="支付审计元数据")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    status_changed_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("gateway", "gateway_order_ref", name="uq_orders_gateway_ref"),
        Index("ix_orders_gateway_status", "gateway", "status"),
        Index("ix_orders_side_effects_status", "side_effects_status"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, receipt='{self.receipt}', gateway='{self.gateway}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
