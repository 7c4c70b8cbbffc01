"""
Monthly commission model - commission re-earned when a referred user changes plan
"""

from sqlalchemy import Column, String, DateTime, Boolean, Numeric, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func
from app.utils.database import Base
import uuid


class MonthlyCommission(Base):
    __tablename__ = "monthly_commissions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    referral_id = Column(Uuid(as_uuid=True), ForeignKey("referrals.id", ondelete="CASCADE"), nullable=False, index=True)
    referrer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referred_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # "YYYY-MM"
    commission_month = Column(String(7), nullable=False, index=True)

    # Tiers as they stood when the plan change was confirmed
    referrer_tier_at_time = Column(String(50), nullable=False)
    referred_tier_at_time = Column(String(50), nullable=False)
    eligible_tier = Column(String(50), nullable=False)
    commission_amount = Column(Numeric(10, 2), nullable=False)
    commission_rate = Column(Numeric(5, 4), nullable=False)

    # Payout
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True))

    source_event_id = Column(String(255))

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        # One plan-change commission per referral per month; replays of the same event never add another
        UniqueConstraint("referral_id", "commission_month", name="uq_monthly_commissions_referral_month"),
        UniqueConstraint("referral_id", "source_event_id", name="uq_monthly_commissions_referral_event"),
    )

    def __repr__(self):
        return (
            f"<MonthlyCommission(id={self.id}, referrer={self.referrer_id}, "
            f"month={self.commission_month}, amount={self.commission_amount}, paid={self.is_paid})>"
        )
