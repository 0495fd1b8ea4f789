"""create_payments_table

Revision ID: 5b1f3c2a9d7e
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5b1f3c2a9d7e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create payments table
    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False, comment='主键ID（UUID）'),
        sa.Column('student_id', sa.String(length=64), nullable=False, comment='学员ID'),
        sa.Column('reference_type', sa.String(length=20), nullable=False, comment='支付对象类型: lesson/exam'),
        sa.Column('reference_id', sa.String(length=64), nullable=False, comment='课程或考试ID'),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False, comment='支付金额'),
        sa.Column('method', sa.String(length=20), nullable=False, comment='支付方式: online/cash/card/bank_transfer'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending',
                  comment='支付状态: pending/processing/paid/failed/confirmed/refunded'),
        sa.Column('gateway_transaction_id', sa.String(length=200), nullable=True, comment='网关交易ID'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
        sa.UniqueConstraint('gateway_transaction_id', name='uq_payments_gateway_transaction_id'),
        comment='支付记录表，课程/考试预约的支付生命周期'
    )

    # Create indexes
    op.create_index('ix_payments_student_id', 'payments', ['student_id'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_student_status', 'payments', ['student_id', 'status'], unique=False)
    op.create_index('ix_payments_reference', 'payments', ['reference_type', 'reference_id', 'student_id'], unique=False)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'], unique=False, postgresql_using='btree')


def downgrade() -> None:
    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_index('ix_payments_reference', table_name='payments')
    op.drop_index('ix_payments_student_status', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_student_id', table_name='payments')
    op.drop_table('payments')
