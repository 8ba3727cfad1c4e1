"""Create customers, replenishments and replenishment_payments tables

Revision ID: 001_create_replenishment_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_replenishment_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        if_not_exists=True,
    )

    op.create_table(
        'replenishments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('scheduler_id', sa.String(64), nullable=False),
        sa.Column('next_job_id', sa.String(255), nullable=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('unit', sa.String(16), nullable=False),
        sa.Column('interval', sa.Integer(), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('times', sa.Integer(), nullable=True),
        sa.Column('executions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(16), nullable=False, server_default='active'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint("unit IN ('day', 'week', 'month', 'year', 'custom')", name='ck_replenishments_unit'),
        sa.CheckConstraint(
            "status IN ('scheduled', 'active', 'finished', 'canceled', 'failed')",
            name='ck_replenishments_status',
        ),
        sa.CheckConstraint('"interval" > 0', name='ck_replenishments_interval'),
        sa.CheckConstraint('times IS NULL OR times > 0', name='ck_replenishments_times'),
        sa.CheckConstraint('executions >= 0', name='ck_replenishments_executions'),
    )
    op.create_index('idx_replenishments_scheduler_id', 'replenishments', ['scheduler_id'], unique=True)
    op.create_index('idx_replenishments_customer_id', 'replenishments', ['customer_id'])
    op.create_index('idx_replenishments_status', 'replenishments', ['status'])

    op.create_table(
        'replenishment_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'replenishment_id',
            sa.Integer(),
            sa.ForeignKey('replenishments.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index(
        'idx_replenishment_payments_replenishment',
        'replenishment_payments',
        ['replenishment_id', sa.text('payment_date DESC')],
    )


def downgrade() -> None:
    op.drop_index('idx_replenishment_payments_replenishment', table_name='replenishment_payments')
    op.drop_table('replenishment_payments')
    op.drop_index('idx_replenishments_status', table_name='replenishments')
    op.drop_index('idx_replenishments_customer_id', table_name='replenishments')
    op.drop_index('idx_replenishments_scheduler_id', table_name='replenishments')
    op.drop_table('replenishments')
