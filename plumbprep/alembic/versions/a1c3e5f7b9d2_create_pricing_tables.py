"""create pricing tables and seed bulk tiers

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-19 09:00:00.000000

Migration note: bulk_enrollment_tiers has no base_price column. The
per-student base price comes only from BULK_BASE_PRICE_PER_STUDENT
(app/config/pricing.py); the old per-row base price was never used in
totals and has been dropped rather than carried as a second source.

Default tiers are inserted with ON CONFLICT (tier_name) DO NOTHING so a
re-run, or `python -m app.utils.seed` against the same database, never
duplicates them.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('subscription_tier', sa.String(length=50), nullable=False, server_default='basic'),
        sa.Column('subscription_status', sa.String(length=50), nullable=False, server_default='inactive'),
        sa.Column('stripe_customer_id', sa.String(length=100), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(length=100), nullable=True),
        sa.Column('referral_code', sa.String(length=20), nullable=True),
        sa.Column('referred_by', sa.UUID(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['referred_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_referral_code', 'users', ['referral_code'], unique=True)
    op.create_index('ix_users_referred_by', 'users', ['referred_by'])
    op.create_index('ix_users_subscription_tier', 'users', ['subscription_tier'])
    op.create_index('ix_users_stripe_customer_id', 'users', ['stripe_customer_id'])
    op.create_index('ix_users_stripe_subscription_id', 'users', ['stripe_subscription_id'])

    # Create referrals table
    op.create_table('referrals',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('referrer_id', sa.UUID(), nullable=False),
        sa.Column('referred_id', sa.UUID(), nullable=False),
        sa.Column('referrer_plan_tier', sa.String(length=50), nullable=False),
        sa.Column('referred_plan_tier', sa.String(length=50), nullable=False),
        sa.Column('referred_plan_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('eligible_tier', sa.String(length=50), nullable=False),
        sa.Column('commission_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_event_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referred_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referrer_id', 'referred_id', name='uq_referrals_referrer_referred'),
        sa.UniqueConstraint('source_event_id', name='uq_referrals_source_event_id')
    )
    op.create_index('ix_referrals_id', 'referrals', ['id'])
    op.create_index('ix_referrals_referrer_id', 'referrals', ['referrer_id'])
    op.create_index('ix_referrals_referred_id', 'referrals', ['referred_id'])
    op.create_index('ix_referrals_created_at', 'referrals', ['created_at'])

    # Create bulk_enrollment_tiers table
    op.create_table('bulk_enrollment_tiers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('tier_name', sa.String(length=100), nullable=False),
        sa.Column('min_students', sa.Integer(), nullable=False),
        sa.Column('max_students', sa.Integer(), nullable=True),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tier_name')
    )
    op.create_index('ix_bulk_enrollment_tiers_id', 'bulk_enrollment_tiers', ['id'])
    op.create_index('ix_bulk_enrollment_tiers_is_active', 'bulk_enrollment_tiers', ['is_active'])

    # Create bulk_enrollment_requests table
    op.create_table('bulk_enrollment_requests',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('employer_id', sa.String(length=100), nullable=False),
        sa.Column('student_count', sa.Integer(), nullable=False),
        sa.Column('course_ids', sa.JSON(), nullable=False),
        sa.Column('total_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('final_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=False),
        sa.Column('contact_phone', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('requested_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bulk_enrollment_requests_id', 'bulk_enrollment_requests', ['id'])
    op.create_index('ix_bulk_enrollment_requests_employer_id', 'bulk_enrollment_requests', ['employer_id'])
    op.create_index('ix_bulk_enrollment_requests_status', 'bulk_enrollment_requests', ['status'])

    # Create bulk_student_enrollments table
    op.create_table('bulk_student_enrollments',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('bulk_request_id', sa.UUID(), nullable=False),
        sa.Column('student_email', sa.String(length=255), nullable=False),
        sa.Column('student_first_name', sa.String(length=100), nullable=False),
        sa.Column('student_last_name', sa.String(length=100), nullable=True),
        sa.Column('invite_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['bulk_request_id'], ['bulk_enrollment_requests.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bulk_student_enrollments_id', 'bulk_student_enrollments', ['id'])
    op.create_index('ix_bulk_student_enrollments_bulk_request_id', 'bulk_student_enrollments', ['bulk_request_id'])

    # Seed default tiers
    op.execute("""
        INSERT INTO bulk_enrollment_tiers (id, tier_name, min_students, max_students, discount_percent, is_active)
        VALUES
            (gen_random_uuid(), 'Small Team', 5, 19, 10.00, true),
            (gen_random_uuid(), 'Medium Team', 20, 49, 15.00, true),
            (gen_random_uuid(), 'Large Company', 50, NULL, 25.00, true)
        ON CONFLICT (tier_name) DO NOTHING
    """)


def downgrade() -> None:
    op.drop_table('bulk_student_enrollments')
    op.drop_table('bulk_enrollment_requests')
    op.drop_table('bulk_enrollment_tiers')
    op.drop_table('referrals')
    op.drop_table('users')
