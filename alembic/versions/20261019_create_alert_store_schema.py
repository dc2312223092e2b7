# alembic/versions/20261019_create_alert_store_schema.py
"""Alert store schema: alerts, trades, daily_pnl

Revision ID: 20261019_alert_store
Revises: None
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy import inspect

# revision identifiers
revision = '20261019_alert_store'
down_revision = None
branch_labels = None
depends_on = None

ALERT_STATUSES = (
    'PENDING', 'AWAITING_DECISION', 'CONFIRMED', 'EXECUTED',
    'CANCELLED', 'EXPIRED', 'BLOCKED', 'ERROR',
)
# SQLAlchemy persists Enum members by name.
TRADE_STATUSES = ('SUBMITTED', 'PAPER_SIMULATED', 'FAILED')


def table_exists(table_name: str) -> bool:
    return inspect(op.get_bind()).has_table(table_name)


def json_type():
    return sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    alert_status = sa.Enum(*ALERT_STATUSES, name='alertstatus')
    trade_status = sa.Enum(*TRADE_STATUSES, name='tradestatus')

    if not table_exists('alerts'):
        op.create_table(
            'alerts',
            sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('fingerprint', sa.String(64), nullable=False),
            sa.Column('symbol', sa.String(32), nullable=False),
            sa.Column('side', sa.String(8), nullable=False),
            sa.Column('timeframe', sa.String(16), nullable=False),
            sa.Column('status', alert_status, nullable=False, server_default='PENDING'),
            sa.Column('status_reason', sa.Text(), nullable=True),
            sa.Column('payload', json_type(), nullable=False),
            sa.Column('meta', json_type(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index('ix_alerts_fingerprint', 'alerts', ['fingerprint'], unique=True)
        op.create_index('ix_alerts_symbol', 'alerts', ['symbol'])
        op.create_index('ix_alerts_status', 'alerts', ['status'])

    if not table_exists('trades'):
        op.create_table(
            'trades',
            sa.Column('id', sa.String(32), primary_key=True),
            sa.Column('alert_id', sa.Integer(), sa.ForeignKey('alerts.id'), nullable=False),
            sa.Column('router', sa.String(32), nullable=False),
            sa.Column('order_id', sa.String(128), nullable=True),
            sa.Column('client_order_id', sa.String(64), nullable=True),
            sa.Column('symbol', sa.String(32), nullable=False),
            sa.Column('side', sa.String(8), nullable=False),
            sa.Column('entry', sa.Numeric(28, 10), nullable=False),
            sa.Column('stop', sa.Numeric(28, 10), nullable=False),
            sa.Column('targets', json_type(), nullable=False),
            sa.Column('units', sa.Numeric(28, 10), nullable=False),
            sa.Column('status', trade_status, nullable=False),
            sa.Column('raw_response', json_type(), nullable=True),
            sa.Column('error', sa.Text(), nullable=True),
            sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index('ix_trades_alert_id', 'trades', ['alert_id'])
        op.create_index('ix_trades_client_order_id', 'trades', ['client_order_id'])

    if not table_exists('daily_pnl'):
        op.create_table(
            'daily_pnl',
            sa.Column('day', sa.Date(), primary_key=True),
            sa.Column('realized', sa.Numeric(20, 8), nullable=False, server_default='0'),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )


def downgrade() -> None:
    for table in ('daily_pnl', 'trades', 'alerts'):
        if table_exists(table):
            op.drop_table(table)
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS tradestatus')
        op.execute('DROP TYPE IF EXISTS alertstatus')
