"""create_payment_tables

Revision ID: 3c1f6a2b9d04
Revises:
Create Date: 2026-09-14 09:30:12.418207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f6a2b9d04'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('receipt', sa.String(length=100), nullable=False, comment='本地订单收据号'),
        sa.Column('gateway', sa.String(length=30), nullable=False, comment='支付网关: razorpay/hdfc'),
        sa.Column('gateway_order_ref', sa.String(length=200), nullable=True, comment='网关订单号，只写一次'),
        sa.Column('gateway_payment_ref', sa.String(length=200), nullable=True, comment='网关支付号'),
        sa.Column('amount', sa.BigInteger(), nullable=False, comment='金额（最小货币单位）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='货币代码 ISO-4217'),
        sa.Column('customer_name', sa.String(length=200), nullable=False),
        sa.Column('customer_email', sa.String(length=320), nullable=False),
        sa.Column('customer_phone', sa.String(length=30), nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=True, comment='收货地址'),
        sa.Column('items', sa.JSON(), nullable=False, comment='订单行项目'),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='pending', comment='订单状态'),
        sa.Column('failure_code', sa.String(length=100), nullable=True),
        sa.Column('failure_description', sa.Text(), nullable=True),
        sa.Column('inventory_review_required', sa.Boolean(), nullable=False, server_default=sa.false(), comment='库存需人工复核'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='支付审计元数据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('receipt', name='uq_orders_receipt'),
        sa.UniqueConstraint('gateway', 'gateway_order_ref', name='uq_orders_gateway_ref'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)
    op.create_index('ix_orders_gateway_status', 'orders', ['gateway', 'status'], unique=False)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('price', sa.BigInteger(), nullable=False, comment='单价（最小货币单位）'),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0', comment='库存，永不为负'),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
    )
    op.create_index('ix_products_id', 'products', ['id'], unique=False)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=50), nullable=False, comment='customer_confirmation/admin_notification'),
        sa.Column('recipient', sa.String(length=500), nullable=False),
        sa.Column('subject', sa.String(length=300), nullable=False),
        sa.Column('text_body', sa.Text(), nullable=False),
        sa.Column('html_body', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='pending/sent/failed'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name='fk_notifications_order_id_orders'),
        sa.PrimaryKeyConstraint('id', name='pk_notifications'),
        sa.UniqueConstraint('order_id', 'kind', name='uq_notifications_order_kind'),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'], unique=False)
    op.create_index('ix_notifications_order_id', 'notifications', ['order_id'], unique=False)
    op.create_index('ix_notifications_status', 'notifications', ['status'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_notifications_status', table_name='notifications')
    op.drop_index('ix_notifications_order_id', table_name='notifications')
    op.drop_index('ix_notifications_id', table_name='notifications')
    op.drop_table('notifications')

    op.drop_index('ix_products_id', table_name='products')
    op.drop_table('products')

    op.drop_index('ix_orders_gateway_status', table_name='orders')
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_id', table_name='orders')
    op.drop_table('orders')
