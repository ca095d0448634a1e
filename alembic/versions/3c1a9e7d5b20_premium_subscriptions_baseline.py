"""premium_subscriptions_baseline

Revision ID: 3c1a9e7d5b20
Revises:
Create Date: 2026-10-19 09:14:02.118734

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1a9e7d5b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SUBSCRIPTION_STATUS = sa.Enum(
    'ACTIVE', 'CANCELLED_NO_REFUND', 'CANCELLED_WITH_REFUND', 'EXPIRED', 'REVOKED',
    name='subscriptionstatus',
)
PAYMENT_STATUS = sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'REFUNDED', name='paymentstatus')
PAYMENT_PURPOSE = sa.Enum('PURCHASE', 'RENEWAL', name='paymentpurpose')
CERTIFICATION_STATUS = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='certificationstatus')


def upgrade() -> None:
    """Create premium subscription, payment and seller projection tables."""
    from sqlalchemy import inspect

    # Idempotent: skip tables a previous create_all already made
    bind = op.get_bind()
    existing = set(inspect(bind).get_table_names())

    if 'seller_profiles' not in existing:
        op.create_table(
            'seller_profiles',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), nullable=True),
            sa.Column('company_name', sa.String(length=255), nullable=False),
            sa.Column('primary_category_id', sa.String(length=36), nullable=True),
            sa.Column('is_premium', sa.Boolean(), nullable=False),
            sa.Column('premium_since', sa.DateTime(), nullable=True),
            sa.Column('has_verified_badge', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_seller_profiles_user_id'), 'seller_profiles', ['user_id'], unique=False)
        op.create_index(op.f('ix_seller_profiles_primary_category_id'), 'seller_profiles', ['primary_category_id'], unique=False)

    if 'premium_subscriptions' not in existing:
        op.create_table(
            'premium_subscriptions',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('seller_id', sa.String(length=36), nullable=False),
            sa.Column('plan_id', sa.String(length=50), nullable=False),
            sa.Column('monthly_fee', sa.Numeric(18, 2), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False),
            sa.Column('start_date', sa.DateTime(), nullable=False),
            sa.Column('end_date', sa.DateTime(), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.Column('is_auto_renewing', sa.Boolean(), nullable=False),
            sa.Column('status', SUBSCRIPTION_STATUS, nullable=False),
            sa.Column('payment_id', sa.String(length=36), nullable=True),
            sa.Column('granted_by_admin_id', sa.String(length=36), nullable=True),
            sa.Column('cancellation_reason', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_premium_subscriptions_seller_id'), 'premium_subscriptions', ['seller_id'], unique=False)
        op.create_index('idx_premium_sub_seller_active', 'premium_subscriptions', ['seller_id', 'is_active'], unique=False)
        op.create_index('idx_premium_sub_active_end', 'premium_subscriptions', ['is_active', 'end_date'], unique=False)

    if 'payments' not in existing:
        op.create_table(
            'payments',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('seller_id', sa.String(length=36), nullable=False),
            sa.Column('amount', sa.Numeric(18, 2), nullable=False),
            sa.Column('currency', sa.String(length=3), nullable=False),
            sa.Column('status', PAYMENT_STATUS, nullable=False),
            sa.Column('plan_id', sa.String(length=50), nullable=False),
            sa.Column('purpose', PAYMENT_PURPOSE, nullable=False),
            sa.Column('subscription_id', sa.String(length=36), nullable=True),
            sa.Column('description', sa.String(length=255), nullable=True),
            sa.Column('provider', sa.String(length=50), nullable=False),
            sa.Column('provider_transaction_id', sa.String(length=255), nullable=True),
            sa.Column('payment_method', sa.String(length=255), nullable=True),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('refunded_amount', sa.Numeric(18, 2), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_payments_seller_id'), 'payments', ['seller_id'], unique=False)
        op.create_index(op.f('ix_payments_status'), 'payments', ['status'], unique=False)
        op.create_index(op.f('ix_payments_subscription_id'), 'payments', ['subscription_id'], unique=False)
        op.create_index(op.f('ix_payments_provider_transaction_id'), 'payments', ['provider_transaction_id'], unique=False)
        op.create_index('idx_payment_status_created', 'payments', ['status', 'created_at'], unique=False)
        op.create_index('idx_payment_seller_status', 'payments', ['seller_id', 'status'], unique=False)

    if 'certifications' not in existing:
        op.create_table(
            'certifications',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('seller_id', sa.String(length=36), nullable=False),
            sa.Column('category_id', sa.String(length=36), nullable=True),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('status', CERTIFICATION_STATUS, nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_certifications_seller_id'), 'certifications', ['seller_id'], unique=False)
        op.create_index('idx_cert_seller_status', 'certifications', ['seller_id', 'status'], unique=False)

    if 'category_configurations' not in existing:
        op.create_table(
            'category_configurations',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('category_id', sa.String(length=36), nullable=False),
            sa.Column('allows_verified_badge', sa.Boolean(), nullable=False),
            sa.Column('min_certifications_for_badge', sa.Integer(), nullable=False),
            sa.Column('badge_requires_premium', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_category_configurations_category_id'), 'category_configurations', ['category_id'], unique=True)

    if 'notifications' not in existing:
        op.create_table(
            'notifications',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('seller_id', sa.String(length=36), nullable=False),
            sa.Column('event_kind', sa.String(length=100), nullable=False),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('is_read', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_notifications_seller_id'), 'notifications', ['seller_id'], unique=False)
        op.create_index('idx_notification_seller_created', 'notifications', ['seller_id', 'created_at'], unique=False)

    if 'premium_audit_logs' not in existing:
        op.create_table(
            'premium_audit_logs',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('action', sa.String(length=100), nullable=False),
            sa.Column('seller_id', sa.String(length=36), nullable=True),
            sa.Column('admin_id', sa.String(length=36), nullable=True),
            sa.Column('entity_type', sa.String(length=50), nullable=False),
            sa.Column('entity_id', sa.String(length=36), nullable=False),
            sa.Column('reason', sa.Text(), nullable=True),
            sa.Column('details', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_premium_audit_logs_action'), 'premium_audit_logs', ['action'], unique=False)
        op.create_index(op.f('ix_premium_audit_logs_seller_id'), 'premium_audit_logs', ['seller_id'], unique=False)
        op.create_index('idx_audit_entity', 'premium_audit_logs', ['entity_type', 'entity_id'], unique=False)


def downgrade() -> None:
    """Drop premium tables in reverse dependency order."""
    op.drop_table('premium_audit_logs')
    op.drop_table('notifications')
    op.drop_table('category_configurations')
    op.drop_table('certifications')
    op.drop_table('payments')
    op.drop_table('premium_subscriptions')
    op.drop_table('seller_profiles')
    bind = op.get_bind()
    for enum_type in (CERTIFICATION_STATUS, PAYMENT_PURPOSE, PAYMENT_STATUS, SUBSCRIPTION_STATUS):
        enum_type.drop(bind, checkfirst=True)
