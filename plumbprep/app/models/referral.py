"""
Referral model - append-only commission ledger
"""

from sqlalchemy import Column, String, DateTime, Boolean, Numeric, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func
from app.utils.database import Base
import uuid


class Referral(Base):
    __tablename__ = "referrals"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    referrer_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referred_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Commission snapshot at the time the referral was confirmed
    referrer_plan_tier = Column(String(50), nullable=False)
    referred_plan_tier = Column(String(50), nullable=False)
    referred_plan_price = Column(Numeric(10, 2), nullable=False)
    eligible_tier = Column(String(50), nullable=False)
    commission_amount = Column(Numeric(10, 2), nullable=False)

    # Payout
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True))

    # Stripe event that triggered the referral (idempotency key)
    source_event_id = Column(String(255), unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_id", name="uq_referrals_referrer_referred"),
    )

    def __repr__(self):
        return f"<Referral(id={self.id}, referrer={self.referrer_id}, amount={self.commission_amount}, paid={self.is_paid})>"
