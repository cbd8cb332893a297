"""add_order_side_effects_status

Revision ID: 8e2d4c7a1f35
Revises: 3c1f6a2b9d04
Create Date: 2026-10-19 11:00:41.903512

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8e2d4c7a1f35'
down_revision: Union[str, None] = '3c1f6a2b9d04'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'orders',
        sa.Column('side_effects_status', sa.String(length=20), nullable=True, comment='支付后副作用进度: pending/running/done'),
    )
    op.create_index('ix_orders_side_effects_status', 'orders', ['side_effects_status'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_orders_side_effects_status', table_name='orders')
    op.drop_column('orders', 'side_effects_status')
