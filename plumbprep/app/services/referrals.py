"""
Referral Ledger Service
Records commissions when a referred user's paid subscription is confirmed
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import select, func, case, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing import CENTS, DEFAULT_COMMISSION_RATE, get_plan_price, parse_commission_rate
from app.models.monthly_commission import MonthlyCommission
from app.models.referral import Referral
from app.models.user import User, SubscriptionTier
from app.services.referral_commission import calculate_referral_commission, parse_tier
from app.utils.errors import PricingError, PersistenceError

logger = logging.getLogger(__name__)


class ReferralService:
    """Append-only commission ledger; rows only change when a payout marks them paid"""

    async def _find_existing(
        self,
        db: AsyncSession,
        referrer_id: uuid.UUID,
        referred_id: uuid.UUID,
        source_event_id: Optional[str],
    ) -> Optional[Referral]:
        conditions = [
            (Referral.referrer_id == referrer_id) & (Referral.referred_id == referred_id)
        ]
        if source_event_id:
            conditions.append(Referral.source_event_id == source_event_id)

        result = await db.execute(select(Referral).where(or_(*conditions)).limit(1))
        return result.scalar_one_or_none()

    async def record_referral(
        self,
        db: AsyncSession,
        referrer: User,
        referred_id: uuid.UUID,
        referred_tier: str,
        source_event_id: Optional[str] = None,
        commission_rate: Optional[Union[Decimal, float, str]] = None,
    ) -> Tuple[Referral, bool]:
        """
        Create the commission record for a confirmed referral.

        Idempotent per (referrer, referred) pair and per source event: a retry
        returns the existing row with created=False.

        Raises:
            InvalidTierError: referrer or referred tier is unknown
            PricingError: a user referring themselves
            PersistenceError: database failure (nothing is written)
        """
        referrer_id = referrer.id
        referrer_tier = referrer.subscription_tier
        referred = parse_tier(referred_tier)
        commission = calculate_referral_commission(referrer_tier, referred, commission_rate)

        if referrer_id == referred_id:
            raise PricingError("Users cannot refer themselves")

        existing = await self._find_existing(db, referrer_id, referred_id, source_event_id)
        if existing is not None:
            logger.warning(
                f"Referral already recorded for referrer {referrer_id} -> {referred_id} "
                f"(event {source_event_id}), skipping"
            )
            return existing, False

        referral = Referral(
            referrer_id=referrer_id,
            referred_id=referred_id,
            referrer_plan_tier=referrer_tier,
            referred_plan_tier=referred.value,
            referred_plan_price=get_plan_price(referred),
            eligible_tier=commission.eligible_tier.value,
            commission_amount=commission.commission_amount,
            source_event_id=source_event_id,
        )

        try:
            db.add(referral)
            await db.commit()
            await db.refresh(referral)
        except IntegrityError:
            # A concurrent confirmation won the race
            await db.rollback()
            existing = await self._find_existing(db, referrer_id, referred_id, source_event_id)
            if existing is not None:
                logger.warning(f"Concurrent referral insert for {referrer_id} -> {referred_id}, using existing row")
                return existing, False
            logger.error(f"Referral insert for {referrer_id} -> {referred_id} violated a constraint")
            raise PersistenceError("referral creation")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error creating referral for {referrer_id} -> {referred_id}: {e}")
            raise PersistenceError("referral creation") from e

        logger.info(
            f"Recorded referral {referral.id}: referrer={referrer_id} referred={referred_id} "
            f"eligible_tier={commission.eligible_tier.value} commission={commission.commission_amount}"
        )
        return referral, True

    async def get_user_referrals(self, db: AsyncSession, user_id: uuid.UUID) -> List[Referral]:
        """Referrals made by a user, newest first"""
        result = await db.execute(
            select(Referral)
            .where(Referral.referrer_id == user_id)
            .order_by(Referral.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_user_referral_earnings(self, db: AsyncSession, user_id: uuid.UUID) -> Dict[str, Decimal]:
        """Total, paid and unpaid commission for a referrer"""
        result = await db.execute(
            select(
                func.sum(Referral.commission_amount),
                func.sum(case((Referral.is_paid.is_(False), Referral.commission_amount), else_=0)),
                func.sum(case((Referral.is_paid.is_(True), Referral.commission_amount), else_=0)),
            ).where(Referral.referrer_id == user_id)
        )
        total, unpaid, paid = result.one()

        return {
            "total": _to_money(total),
            "unpaid": _to_money(unpaid),
            "paid": _to_money(paid),
        }

    async def get_unpaid_referrals(self, db: AsyncSession) -> List[Referral]:
        result = await db.execute(
            select(Referral)
            .where(Referral.is_paid.is_(False))
            .order_by(Referral.created_at)
        )
        return list(result.scalars().all())

    async def mark_referral_paid(self, db: AsyncSession, referral_id: uuid.UUID) -> Optional[Referral]:
        """Payout: flip is_paid; already-paid referrals are returned unchanged"""
        return await self._mark_paid(db, Referral, referral_id, "referral")

    # Plan-change commissions

    async def record_plan_change(
        self,
        db: AsyncSession,
        referred_id: uuid.UUID,
        new_tier: str,
        source_event_id: Optional[str] = None,
        commission_month: Optional[str] = None,
        commission_rate: Optional[Union[Decimal, float, str]] = None,
    ) -> List[Tuple[MonthlyCommission, bool]]:
        """
        Re-run the commission calculator for each referral of a user whose plan changed.

        The referrer's tier is read as it stands now, so a referrer who upgraded
        since the original referral earns on the new cap. Each referral earns at
        most one plan-change commission per month; a replayed event returns the
        existing row with created=False.
        """
        tier = parse_tier(new_tier)
        rate = DEFAULT_COMMISSION_RATE if commission_rate is None else parse_commission_rate(commission_rate)
        month = commission_month or current_commission_month()

        result = await db.execute(
            select(Referral.id, Referral.referrer_id)
            .where(Referral.referred_id == referred_id)
            .order_by(Referral.created_at)
        )
        referral_keys = list(result.all())

        recorded = []
        for referral_id, referrer_id in referral_keys:
            commission = await self._record_monthly_commission(
                db, referral_id, referrer_id, referred_id, tier, month, rate, source_event_id
            )
            if commission is not None:
                recorded.append(commission)
        return recorded

    async def _find_monthly_commission(
        self,
        db: AsyncSession,
        referral_id: uuid.UUID,
        month: str,
        source_event_id: Optional[str],
    ) -> Optional[MonthlyCommission]:
        conditions = [MonthlyCommission.commission_month == month]
        if source_event_id:
            conditions.append(MonthlyCommission.source_event_id == source_event_id)

        result = await db.execute(
            select(MonthlyCommission)
            .where(MonthlyCommission.referral_id == referral_id, or_(*conditions))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _record_monthly_commission(
        self,
        db: AsyncSession,
        referral_id: uuid.UUID,
        referrer_id: uuid.UUID,
        referred_id: uuid.UUID,
        tier: SubscriptionTier,
        month: str,
        rate: Decimal,
        source_event_id: Optional[str],
    ) -> Optional[Tuple[MonthlyCommission, bool]]:
        result = await db.execute(select(User.subscription_tier).where(User.id == referrer_id))
        referrer_tier = result.scalar_one_or_none()
        if referrer_tier is None:
            logger.warning(f"Referrer {referrer_id} of referral {referral_id} no longer exists")
            return None

        existing = await self._find_monthly_commission(db, referral_id, month, source_event_id)
        if existing is not None:
            logger.warning(
                f"Plan-change commission for referral {referral_id} already recorded for {month} "
                f"(event {source_event_id}), skipping"
            )
            return existing, False

        commission = calculate_referral_commission(referrer_tier, tier, rate)
        monthly_commission = MonthlyCommission(
            referral_id=referral_id,
            referrer_id=referrer_id,
            referred_id=referred_id,
            commission_month=month,
            referrer_tier_at_time=referrer_tier,
            referred_tier_at_time=tier.value,
            eligible_tier=commission.eligible_tier.value,
            commission_amount=commission.commission_amount,
            commission_rate=rate,
            source_event_id=source_event_id,
        )

        try:
            db.add(monthly_commission)
            await db.commit()
            await db.refresh(monthly_commission)
        except IntegrityError:
            await db.rollback()
            existing = await self._find_monthly_commission(db, referral_id, month, source_event_id)
            if existing is not None:
                logger.warning(f"Concurrent plan-change commission for referral {referral_id}, using existing row")
                return existing, False
            logger.error(f"Plan-change commission for referral {referral_id} violated a constraint")
            raise PersistenceError("monthly commission creation")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error creating plan-change commission for referral {referral_id}: {e}")
            raise PersistenceError("monthly commission creation") from e

        logger.info(
            f"Recorded plan-change commission {monthly_commission.id}: referrer={referrer_id} "
            f"referred={referred_id} month={month} eligible_tier={commission.eligible_tier.value} "
            f"commission={commission.commission_amount}"
        )
        return monthly_commission, True

    async def get_monthly_commissions(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        month: Optional[str] = None,
    ) -> List[MonthlyCommission]:
        """Plan-change commissions earned by a referrer, newest month first"""
        query = select(MonthlyCommission).where(MonthlyCommission.referrer_id == user_id)
        if month:
            query = query.where(MonthlyCommission.commission_month == month)

        result = await db.execute(
            query.order_by(MonthlyCommission.commission_month.desc(), MonthlyCommission.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_monthly_earnings_summary(self, db: AsyncSession, user_id: uuid.UUID) -> Dict[str, Any]:
        """Plan-change commissions grouped by month with paid/unpaid totals"""
        result = await db.execute(
            select(
                MonthlyCommission.commission_month,
                func.count(MonthlyCommission.id),
                func.sum(MonthlyCommission.commission_amount),
                func.sum(case((MonthlyCommission.is_paid.is_(True), MonthlyCommission.commission_amount), else_=0)),
                func.sum(case((MonthlyCommission.is_paid.is_(False), MonthlyCommission.commission_amount), else_=0)),
            )
            .where(MonthlyCommission.referrer_id == user_id)
            .group_by(MonthlyCommission.commission_month)
            .order_by(MonthlyCommission.commission_month.desc())
        )

        months = [
            {
                "month": month,
                "count": count,
                "total": _to_money(total),
                "paid": _to_money(paid),
                "unpaid": _to_money(unpaid),
            }
            for month, count, total, paid, unpaid in result.all()
        ]

        return {
            "total": sum((m["total"] for m in months), Decimal("0.00")),
            "unpaid": sum((m["unpaid"] for m in months), Decimal("0.00")),
            "months": months,
        }

    async def get_unpaid_monthly_commissions(self, db: AsyncSession) -> List[MonthlyCommission]:
        result = await db.execute(
            select(MonthlyCommission)
            .where(MonthlyCommission.is_paid.is_(False))
            .order_by(MonthlyCommission.created_at)
        )
        return list(result.scalars().all())

    async def mark_monthly_commission_paid(
        self,
        db: AsyncSession,
        commission_id: uuid.UUID,
    ) -> Optional[MonthlyCommission]:
        return await self._mark_paid(db, MonthlyCommission, commission_id, "monthly commission")

    async def get_eligible_commissions_for_payout(self, db: AsyncSession, user_id: uuid.UUID) -> Dict[str, Any]:
        """Everything still owed to a referrer across both ledgers"""
        result = await db.execute(
            select(Referral)
            .where(Referral.referrer_id == user_id, Referral.is_paid.is_(False))
            .order_by(Referral.created_at)
        )
        referrals = list(result.scalars().all())

        result = await db.execute(
            select(MonthlyCommission)
            .where(MonthlyCommission.referrer_id == user_id, MonthlyCommission.is_paid.is_(False))
            .order_by(MonthlyCommission.created_at)
        )
        monthly_commissions = list(result.scalars().all())

        total = sum(
            (row.commission_amount for row in [*referrals, *monthly_commissions]),
            Decimal("0.00"),
        )
        return {
            "referrals": referrals,
            "monthly_commissions": monthly_commissions,
            "total": _to_money(total),
        }

    async def _mark_paid(self, db: AsyncSession, model, row_id: uuid.UUID, label: str):
        result = await db.execute(select(model).where(model.id == row_id))
        row = result.scalar_one_or_none()
        if row is None or row.is_paid:
            return row

        row.is_paid = True
        row.paid_at = datetime.now(timezone.utc)

        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error marking {label} {row_id} paid: {e}")
            raise PersistenceError(f"{label} payout") from e

        logger.info(f"{label.capitalize()} {row_id} marked paid ({row.commission_amount})")
        return row


def current_commission_month() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


def _to_money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS)


def referral_to_dict(referral: Referral) -> Dict[str, Any]:
    return {
        "id": str(referral.id),
        "referrerId": str(referral.referrer_id),
        "referredId": str(referral.referred_id),
        "referrerPlanTier": referral.referrer_plan_tier,
        "referredPlanTier": referral.referred_plan_tier,
        "referredPlanPrice": float(referral.referred_plan_price),
        "eligibleTier": referral.eligible_tier,
        "commissionAmount": float(referral.commission_amount),
        "isPaid": referral.is_paid,
        "createdAt": referral.created_at.isoformat() if referral.created_at else None,
        "paidAt": referral.paid_at.isoformat() if referral.paid_at else None,
    }


def monthly_commission_to_dict(commission: MonthlyCommission) -> Dict[str, Any]:
    return {
        "id": str(commission.id),
        "referralId": str(commission.referral_id),
        "referrerId": str(commission.referrer_id),
        "referredId": str(commission.referred_id),
        "commissionMonth": commission.commission_month,
        "referrerTierAtTime": commission.referrer_tier_at_time,
        "referredTierAtTime": commission.referred_tier_at_time,
        "eligibleTier": commission.eligible_tier,
        "commissionAmount": float(commission.commission_amount),
        "commissionRate": float(commission.commission_rate),
        "isPaid": commission.is_paid,
        "createdAt": commission.created_at.isoformat() if commission.created_at else None,
        "paidAt": commission.paid_at.isoformat() if commission.paid_at else None,
    }


# Global service instance
referral_service = ReferralService()
