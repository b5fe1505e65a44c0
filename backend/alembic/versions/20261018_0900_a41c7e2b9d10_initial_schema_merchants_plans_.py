"""Initial schema: merchants, outlets, users, products, customers, orders, plans, subscriptions, history

Revision ID: a41c7e2b9d10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a41c7e2b9d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables for rental shop billing."""
    # Enum labels are the Python member names, as stored by SQLAlchemy's Enum type
    op.execute("CREATE TYPE userrole AS ENUM ('ADMIN', 'MERCHANT', 'OUTLET_ADMIN', 'OUTLET_STAFF')")
    op.execute(
        "CREATE TYPE subscriptionstatus AS ENUM ('TRIAL', 'ACTIVE', 'PAST_DUE', 'CANCELLED', 'PAUSED', 'EXPIRED')"
    )
    op.execute("CREATE TYPE billinginterval AS ENUM ('MONTH', 'QUARTER', 'SEMI_ANNUAL', 'YEAR')")

    # 1. Merchants (no dependencies)
    op.create_table(
        'merchants',
        *_timestamps(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_merchants_email'), 'merchants', ['email'], unique=True)

    # 2. Outlets, users, products, customers (depend on merchants)
    op.create_table(
        'outlets',
        *_timestamps(),
        sa.Column('merchant_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_outlets_merchant_id'), 'outlets', ['merchant_id'])

    op.create_table(
        'users',
        *_timestamps(),
        sa.Column('merchant_id', sa.UUID(), nullable=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column(
            'role',
            sa.Enum('ADMIN', 'MERCHANT', 'OUTLET_ADMIN', 'OUTLET_STAFF', name='userrole', create_type=False),
            nullable=False,
            server_default='OUTLET_STAFF',
        ),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index(op.f('ix_users_merchant_id'), 'users', ['merchant_id'])

    op.create_table(
        'products',
        *_timestamps(),
        sa.Column('merchant_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('rent_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_products_merchant_id'), 'products', ['merchant_id'])

    op.create_table(
        'customers',
        *_timestamps(),
        sa.Column('merchant_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_customers_merchant_id'), 'customers', ['merchant_id'])

    # 3. Orders (depend on outlets)
    op.create_table(
        'orders',
        *_timestamps(),
        sa.Column('outlet_id', sa.UUID(), nullable=False),
        sa.Column('order_number', sa.String(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_orders_outlet_id'), 'orders', ['outlet_id'])

    # 4. Plans (no dependencies)
    op.create_table(
        'plans',
        *_timestamps(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('trial_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('limits', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('features', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_popular', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_plans_is_active'), 'plans', ['is_active'])

    # 5. Subscriptions (depend on merchants and plans)
    op.create_table(
        'subscriptions',
        *_timestamps(),
        sa.Column('merchant_id', sa.UUID(), nullable=False),
        sa.Column('plan_id', sa.UUID(), nullable=False),
        sa.Column(
            'status',
            sa.Enum(
                'TRIAL', 'ACTIVE', 'PAST_DUE', 'CANCELLED', 'PAUSED', 'EXPIRED',
                name='subscriptionstatus',
                create_type=False,
            ),
            nullable=False,
            server_default='ACTIVE',
        ),
        sa.Column(
            'billing_interval',
            sa.Enum('MONTH', 'QUARTER', 'SEMI_ANNUAL', 'YEAR', name='billinginterval', create_type=False),
            nullable=False,
            server_default='MONTH',
        ),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('current_period_start', sa.DateTime(), nullable=False),
        sa.Column('current_period_end', sa.DateTime(), nullable=False),
        sa.Column('trial_start', sa.DateTime(), nullable=True),
        sa.Column('trial_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.String(), nullable=True),
        sa.Column('paused_at', sa.DateTime(), nullable=True),
        sa.Column('pause_resumes_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('current_period_end > current_period_start', name='ck_subscriptions_period_order'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscriptions_merchant_id'), 'subscriptions', ['merchant_id'], unique=True)
    op.create_index(op.f('ix_subscriptions_plan_id'), 'subscriptions', ['plan_id'])
    op.create_index(op.f('ix_subscriptions_status'), 'subscriptions', ['status'])
    op.create_index(op.f('ix_subscriptions_current_period_end'), 'subscriptions', ['current_period_end'])

    # Status + period end (lifecycle worker scans for lapsed periods)
    op.create_index(
        'ix_subscriptions_status_period_end',
        'subscriptions',
        ['status', 'current_period_end'],
        unique=False
    )

    # 6. Subscription history (depends on subscriptions)
    op.create_table(
        'subscription_history',
        *_timestamps(),
        sa.Column('subscription_id', sa.UUID(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('old_value', sa.String(), nullable=True),
        sa.Column('new_value', sa.String(), nullable=True),
        sa.Column('reason', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_history_subscription_id'), 'subscription_history', ['subscription_id'])

    # Every table indexes created_at for recent-first listings
    for table in (
        'merchants', 'outlets', 'users', 'products', 'customers', 'orders',
        'plans', 'subscriptions', 'subscription_history',
    ):
        op.create_index(op.f(f'ix_{table}_created_at'), table, ['created_at'])


def downgrade() -> None:
    """Drop all tables."""
    # Drop tables in reverse dependency order
    op.drop_table('subscription_history')
    op.drop_table('subscriptions')
    op.drop_table('plans')
    op.drop_table('orders')
    op.drop_table('customers')
    op.drop_table('products')
    op.drop_table('users')
    op.drop_table('outlets')
    op.drop_table('merchants')

    # Drop enums
    op.execute("DROP TYPE IF EXISTS billinginterval")
    op.execute("DROP TYPE IF EXISTS subscriptionstatus")
    op.execute("DROP TYPE IF EXISTS userrole")
