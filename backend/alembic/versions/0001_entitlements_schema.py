"""Entitlements schema

Revision ID: 0001_entitlements_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_entitlements_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create plan, subscription, download and webhook tables."""

    # Collaborator tables (identity, asset catalog, activity feed)
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(100)),
        sa.Column('role', sa.String(20), server_default='USER', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'assets',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_assets_is_active', 'assets', ['is_active'])

    op.create_table(
        'activities',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('message', sa.String(500), nullable=False),
        sa.Column('user_id', sa.Integer),
        sa.Column('asset_id', sa.Integer),
        sa.Column('event_data', sa.JSON),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_activities_type', 'activities', ['type'])
    op.create_index('ix_activities_user_id', 'activities', ['user_id'])
    op.create_index('ix_activities_created_at', 'activities', ['created_at'])

    # Plan catalog
    op.create_table(
        'subscription_plans',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500)),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column(
            'billing_cycle',
            sa.Enum('WEEKLY', 'MONTHLY', 'YEARLY', name='billingcycle'),
            server_default='MONTHLY',
            nullable=False,
        ),
        sa.Column('yearly_discount_percent', sa.Integer, server_default='0', nullable=False),
        sa.Column('daily_download_limit', sa.Integer, nullable=False),
        sa.Column('features', sa.JSON, nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('base_price >= 0', name='ck_subscription_plans_base_price'),
        sa.CheckConstraint(
            'yearly_discount_percent BETWEEN 0 AND 100',
            name='ck_subscription_plans_yearly_discount',
        ),
        sa.CheckConstraint(
            'daily_download_limit >= 0',
            name='ck_subscription_plans_daily_download_limit',
        ),
    )
    op.create_index('ix_subscription_plans_is_active', 'subscription_plans', ['is_active'])

    # Subscription ledger
    op.create_table(
        'user_subscriptions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'user_id',
            sa.Integer,
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'plan_id',
            sa.Integer,
            sa.ForeignKey('subscription_plans.id'),
            nullable=False,
        ),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column('external_subscription_id', sa.String(255)),
        *_timestamps(),
    )
    op.create_index('ix_user_subscriptions_user_id', 'user_subscriptions', ['user_id'])
    op.create_index('ix_user_subscriptions_plan_id', 'user_subscriptions', ['plan_id'])
    op.create_index('ix_user_subscriptions_end_date', 'user_subscriptions', ['end_date'])

    # At most one flagged-active row per user
    op.create_index(
        'uq_user_subscriptions_one_active',
        'user_subscriptions',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )
    op.create_index(
        'uq_user_subscriptions_external_subscription_id',
        'user_subscriptions',
        ['external_subscription_id'],
        unique=True,
    )

    # Download audit records
    op.create_table(
        'downloads',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column(
            'user_id',
            sa.Integer,
            sa.ForeignKey('users.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('asset_id', sa.Integer, sa.ForeignKey('assets.id'), nullable=False),
        sa.Column('downloaded_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('ip_address', sa.String(64)),
        sa.Column('user_agent', sa.String(512)),
    )
    op.create_index('ix_downloads_user_id', 'downloads', ['user_id'])
    op.create_index('ix_downloads_asset_id', 'downloads', ['asset_id'])
    op.create_index('ix_downloads_downloaded_at', 'downloads', ['downloaded_at'])
    op.create_index(
        'ix_downloads_user_id_downloaded_at',
        'downloads',
        ['user_id', 'downloaded_at'],
    )

    # Webhook idempotency markers
    op.create_table(
        'processed_webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('processed_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    # Index for cleanup queries (delete events older than X days)
    op.create_index(
        'ix_processed_webhook_events_processed_at',
        'processed_webhook_events',
        ['processed_at'],
    )


def downgrade() -> None:
    op.drop_index('ix_processed_webhook_events_processed_at', table_name='processed_webhook_events')
    op.drop_table('processed_webhook_events')

    op.drop_index('ix_downloads_user_id_downloaded_at', table_name='downloads')
    op.drop_index('ix_downloads_downloaded_at', table_name='downloads')
    op.drop_index('ix_downloads_asset_id', table_name='downloads')
    op.drop_index('ix_downloads_user_id', table_name='downloads')
    op.drop_table('downloads')

    op.drop_index('uq_user_subscriptions_external_subscription_id', table_name='user_subscriptions')
    op.drop_index('uq_user_subscriptions_one_active', table_name='user_subscriptions')
    op.drop_index('ix_user_subscriptions_end_date', table_name='user_subscriptions')
    op.drop_index('ix_user_subscriptions_plan_id', table_name='user_subscriptions')
    op.drop_index('ix_user_subscriptions_user_id', table_name='user_subscriptions')
    op.drop_table('user_subscriptions')

    op.drop_index('ix_subscription_plans_is_active', table_name='subscription_plans')
    op.drop_table('subscription_plans')
    sa.Enum(name='billingcycle').drop(op.get_bind(), checkfirst=True)

    op.drop_index('ix_activities_created_at', table_name='activities')
    op.drop_index('ix_activities_user_id', table_name='activities')
    op.drop_index('ix_activities_type', table_name='activities')
    op.drop_table('activities')

    op.drop_index('ix_assets_is_active', table_name='assets')
    op.drop_table('assets')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
