"""add monthly commissions for referred plan changes

Revision ID: b4d6f8a0c2e1
Revises: a1c3e5f7b9d2
Create Date: 2026-10-19 14:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'b4d6f8a0c2e1'
down_revision: Union[str, None] = 'a1c3e5f7b9d2'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('monthly_commissions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('referral_id', sa.UUID(), nullable=False),
        sa.Column('referrer_id', sa.UUID(), nullable=False),
        sa.Column('referred_id', sa.UUID(), nullable=False),
        sa.Column('commission_month', sa.String(length=7), nullable=False),
        sa.Column('referrer_tier_at_time', sa.String(length=50), nullable=False),
        sa.Column('referred_tier_at_time', sa.String(length=50), nullable=False),
        sa.Column('eligible_tier', sa.String(length=50), nullable=False),
        sa.Column('commission_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=4), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_event_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['referral_id'], ['referrals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['referred_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referral_id', 'commission_month', name='uq_monthly_commissions_referral_month'),
        sa.UniqueConstraint('referral_id', 'source_event_id', name='uq_monthly_commissions_referral_event')
    )
    op.create_index('ix_monthly_commissions_id', 'monthly_commissions', ['id'])
    op.create_index('ix_monthly_commissions_referral_id', 'monthly_commissions', ['referral_id'])
    op.create_index('ix_monthly_commissions_referrer_id', 'monthly_commissions', ['referrer_id'])
    op.create_index('ix_monthly_commissions_commission_month', 'monthly_commissions', ['commission_month'])


def downgrade() -> None:
    op.drop_table('monthly_commissions')
