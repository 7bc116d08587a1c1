"""initial_pharmacy_schema

Revision ID: a1f3c9e2d7b4
Revises:
Create Date: 2026-10-19 09:12:05.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f3c9e2d7b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create pharmacies, customers, orders and the order/delivery/message tables."""
    op.create_table(
        'pharmacies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('whatsapp_number', sa.String(), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('pickup_address', sa.Text(), nullable=True),
        sa.Column('contact_name', sa.String(), nullable=True),
        sa.Column('upi_id', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pharmacies_id', 'pharmacies', ['id'])
    op.create_index('ix_pharmacies_whatsapp_number', 'pharmacies', ['whatsapp_number'], unique=True)

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('phone', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_id', 'customers', ['id'])
    op.create_index('ix_customers_phone', 'customers', ['phone'], unique=True)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(16), nullable=False),
        sa.Column('pharmacy_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('raw_message', sa.Text(), nullable=True),
        sa.Column('parsed_items', sa.JSON(), nullable=True),
        sa.Column('requires_rx', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('rx_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_method', sa.String(32), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['pharmacy_id'], ['pharmacies.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_pharmacy_id', 'orders', ['pharmacy_id'])
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_customer_pharmacy_status', 'orders', ['customer_id', 'pharmacy_id', 'status'])
    op.create_index('ix_orders_status_created_at', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(32), nullable=True),
        sa.Column('to_status', sa.String(32), nullable=False),
        sa.Column('changed_by', sa.String(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_status_history_id', 'order_status_history', ['id'])
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    op.create_table(
        'prescriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('media_url', sa.Text(), nullable=False),
        sa.Column('media_type', sa.String(), nullable=True),
        sa.Column('is_valid', sa.Boolean(), nullable=True),
        sa.Column('verified_by', sa.String(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_prescriptions_id', 'prescriptions', ['id'])
    op.create_index('ix_prescriptions_order_id', 'prescriptions', ['order_id'])

    op.create_table(
        'deliveries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('pharmacy_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(), nullable=False, server_default='borzo'),
        sa.Column('provider_order_id', sa.String(), nullable=True),
        sa.Column('provider_order_number', sa.String(), nullable=True),
        sa.Column('tracking_url', sa.Text(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('pickup_address', sa.Text(), nullable=False),
        sa.Column('pickup_phone', sa.String(), nullable=False),
        sa.Column('pickup_contact_name', sa.String(), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=False),
        sa.Column('delivery_phone', sa.String(), nullable=False),
        sa.Column('delivery_contact_name', sa.String(), nullable=True),
        sa.Column('estimated_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('final_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('courier_name', sa.String(), nullable=True),
        sa.Column('courier_phone', sa.String(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('booked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['pharmacy_id'], ['pharmacies.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )
    op.create_index('ix_deliveries_id', 'deliveries', ['id'])
    op.create_index('ix_deliveries_provider_order_id', 'deliveries', ['provider_order_id'])
    op.create_index('ix_deliveries_status', 'deliveries', ['status'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('pharmacy_id', sa.Integer(), nullable=True),
        sa.Column('direction', sa.String(8), nullable=False),
        sa.Column('transport_message_id', sa.String(), nullable=True),
        sa.Column('from_number', sa.String(), nullable=True),
        sa.Column('to_number', sa.String(), nullable=True),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('media_type', sa.String(), nullable=True),
        sa.Column('delivery_status', sa.String(), nullable=True),
        sa.Column('reply_body', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['pharmacy_id'], ['pharmacies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transport_message_id'),
    )
    op.create_index('ix_messages_id', 'messages', ['id'])
    op.create_index('ix_messages_order_id', 'messages', ['order_id'])
    op.create_index('ix_messages_customer_id', 'messages', ['customer_id'])
    op.create_index('ix_messages_created_at', 'messages', ['created_at'])

    op.create_table(
        'notification_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('idempotency_key', sa.String(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('transport_message_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index('ix_notification_log_id', 'notification_log', ['id'])
    op.create_index('ix_notification_log_order_id', 'notification_log', ['order_id'])


def downgrade() -> None:
    """Drop all pharmacy tables."""
    op.drop_table('notification_log')
    op.drop_table('messages')
    op.drop_table('deliveries')
    op.drop_table('prescriptions')
    op.drop_table('order_status_history')
    op.drop_table('orders')
    op.drop_table('customers')
    op.drop_table('pharmacies')
