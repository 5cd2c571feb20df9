"""create subscription tracking tables

Revision ID: 5e1f0c2a9b47
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5e1f0c2a9b47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # 1. users
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('primary_currency', sa.String(length=3), nullable=True),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.Column('push_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('onboarding_done', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # 2. categories
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('color', sa.String(length=32), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_categories_owner_email', 'categories', ['owner_email'])

    # 3. subscriptions
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('merchant', sa.String(length=255), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('cadence_unit', sa.String(length=8), nullable=False),
        sa.Column('cadence_count', sa.Integer(), nullable=False),
        sa.Column('next_renewal_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('rate_at_creation', sa.Float(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_subscriptions_owner_email', 'subscriptions', ['owner_email'])
    op.create_index('ix_subscriptions_status_renewal', 'subscriptions', ['status', 'next_renewal_at'])

    # 4. subscription_events (append-only)
    op.create_table(
        'subscription_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('owner_email', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('occurred_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('rate_at_event', sa.Float(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_subscription_events_subscription_id', 'subscription_events', ['subscription_id'])
    op.create_index('ix_subscription_events_owner_email', 'subscription_events', ['owner_email'])
    op.create_index('ix_subscription_events_occurred_at', 'subscription_events', ['occurred_at'])

    # 5. fx_rates
    op.create_table(
        'fx_rates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('base', sa.String(length=3), nullable=False),
        sa.Column('target', sa.String(length=3), nullable=False),
        sa.Column('rate', sa.Float(), nullable=False),
        sa.Column('fetched_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('is_stale', sa.Boolean(), nullable=False, server_default='false'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_fx_rates_base_fetched', 'fx_rates', ['base', 'fetched_at'])
    op.create_index('ix_fx_rates_base_target_fetched', 'fx_rates', ['base', 'target', 'fetched_at'])

    # 6. notification_snoozes
    op.create_table(
        'notification_snoozes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('snoozed_until', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notification_snoozes_subscription_id', 'notification_snoozes', ['subscription_id'])
    op.create_index('ix_notification_snoozes_user_id', 'notification_snoozes', ['user_id'])

    # 7. push_subscriptions
    op.create_table(
        'push_subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('endpoint', sa.Text(), nullable=False),
        sa.Column('p256dh', sa.Text(), nullable=False),
        sa.Column('auth', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('endpoint')
    )
    op.create_index('ix_push_subscriptions_user_id', 'push_subscriptions', ['user_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_push_subscriptions_user_id', table_name='push_subscriptions')
    op.drop_table('push_subscriptions')
    op.drop_index('ix_notification_snoozes_user_id', table_name='notification_snoozes')
    op.drop_index('ix_notification_snoozes_subscription_id', table_name='notification_snoozes')
    op.drop_table('notification_snoozes')
    op.drop_index('ix_fx_rates_base_target_fetched', table_name='fx_rates')
    op.drop_index('ix_fx_rates_base_fetched', table_name='fx_rates')
    op.drop_table('fx_rates')
    op.drop_index('ix_subscription_events_occurred_at', table_name='subscription_events')
    op.drop_index('ix_subscription_events_owner_email', table_name='subscription_events')
    op.drop_index('ix_subscription_events_subscription_id', table_name='subscription_events')
    op.drop_table('subscription_events')
    op.drop_index('ix_subscriptions_status_renewal', table_name='subscriptions')
    op.drop_index('ix_subscriptions_owner_email', table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_index('ix_categories_owner_email', table_name='categories')
    op.drop_table('categories')
    op.drop_table('users')
