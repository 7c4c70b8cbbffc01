"""
Referral API endpoints
Referral stats, commission previews and invitations for the current student
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, EmailStr
from typing import Optional
from decimal import Decimal
import logging
import uuid

from app.utils.database import get_db
from app.utils.email_brevo import email_service, PUBLIC_BASE_URL
from app.utils.referral_code import ensure_referral_code
from app.config.pricing import get_plan_price
from app.models.user import User, SubscriptionStatus
from app.middleware.auth import require_auth
from app.services.referral_commission import (
    build_commission_preview,
    get_referral_earnings_potential,
    parse_tier,
)
from app.services.referrals import referral_service, referral_to_dict, monthly_commission_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


class ProcessReferralRequest(BaseModel):
    referredUserId: uuid.UUID
    referredPlanTier: Optional[str] = None
    subscriptionEventId: Optional[str] = None


class SendInvitationRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None


def build_referral_link(referral_code: str) -> str:
    return f"{PUBLIC_BASE_URL}/register?ref={referral_code}"


@router.get("/stats")
async def get_referral_stats(
    user: User = Depends(require_auth),
    db: AsyncSession = Depends(get_db)
):
    """Referral code, earnings and the most recent referrals"""
    referral_code = await ensure_referral_code(user, db)

    referrals = await referral_service.get_user_referrals(db, user.id)
    earnings = await referral_service.get_user_referral_earnings(db, user.id)

    return {
        "referralCode": referral_code,
        "referralLink": build_referral_link(referral_code),
        "planTier": user.subscription_tier,
        "totalReferrals": len(referrals),
        "earnings": {key: float(value) for key, value in earnings.items()},
        "recentReferrals": [referral_to_dict(r) for r in referrals[:10]],
    }


@router.post("/process")
async def process_referral(
    referral_request: ProcessReferralRequest,
    user: User = Depends(require_auth),
    db: AsyncSession = Depends(get_db)
):
    """Record the commission for a paying user the current student referred"""
    claimed_tier = (
        parse_tier(referral_request.referredPlanTier)
        if referral_request.referredPlanTier is not None
        else None
    )

    result = await db.execute(select(User).where(User.id == referral_request.referredUserId))
    referred = result.scalar_one_or_none()
    if not referred:
        raise HTTPException(status_code=404, detail="Referred user not found")

    if referred.referred_by != user.id:
        raise HTTPException(status_code=400, detail="User was not referred by you")

    # The plan comes from the subscription store, never from the caller
    if referred.subscription_status != SubscriptionStatus.ACTIVE.value:
        raise HTTPException(status_code=400, detail="Referred user has no active paid subscription")

    referred_tier = parse_tier(referred.subscription_tier)
    if claimed_tier is not None and claimed_tier != referred_tier:
        raise HTTPException(
            status_code=400,
            detail=f"Referred user is on the {referred_tier.value} plan, not {claimed_tier.value}"
        )

    referral, created = await referral_service.record_referral(
        db,
        referrer=user,
        referred_id=referred.id,
        referred_tier=referred_tier.value,
        source_event_id=referral_request.subscriptionEventId,
    )

    return {
        "success": True,
        "created": created,
        "referral": referral_to_dict(referral),
        "commission": {
            "eligibleTier": referral.eligible_tier,
            "eligiblePrice": float(get_plan_price(referral.eligible_tier)),
            "commissionAmount": float(referral.commission_amount),
        },
    }


@router.get("/commission-preview")
async def get_commission_preview(user: User = Depends(require_auth)):
    """What the current student would earn for each plan a referral could buy"""
    return build_commission_preview(user.subscription_tier)


@router.get("/earnings-potential")
async def get_earnings_potential(user: User = Depends(require_auth)):
    return get_referral_earnings_potential(user.subscription_tier)


@router.get("/monthly-commissions")
async def get_monthly_commissions(
    month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    user: User = Depends(require_auth),
    db: AsyncSession = Depends(get_db)
):
    """Commissions re-earned when referred users changed plan, optionally for one month (YYYY-MM)"""
    commissions = await referral_service.get_monthly_commissions(db, user.id, month)

    return {
        "commissions": [monthly_commission_to_dict(c) for c in commissions],
        "total": float(sum((c.commission_amount for c in commissions), Decimal("0.00"))),
        "unpaid": float(sum((c.commission_amount for c in commissions if not c.is_paid), Decimal("0.00"))),
    }


@router.get("/monthly-earnings-summary")
async def get_monthly_earnings_summary(
    user: User = Depends(require_auth),
    db: AsyncSession = Depends(get_db)
):
    summary = await referral_service.get_monthly_earnings_summary(db, user.id)

    return {
        "totalMonthlyEarnings": float(summary["total"]),
        "unpaidMonthlyEarnings": float(summary["unpaid"]),
        "monthlyBreakdown": [
            {
                "month": month["month"],
                "count": month["count"],
                "total": float(month["total"]),
                "paid": float(month["paid"]),
                "unpaid": float(month["unpaid"]),
            }
            for month in summary["months"]
        ],
    }


@router.post("/send-invitation")
async def send_referral_invitation(
    invitation: SendInvitationRequest,
    user: User = Depends(require_auth),
    db: AsyncSession = Depends(get_db)
):
    """Email a referral invitation carrying the student's referral code"""
    referral_code = await ensure_referral_code(user, db)
    referral_link = build_referral_link(referral_code)

    sent = await email_service.send_referral_invitation(
        to_email=invitation.email,
        referrer_name=user.name,
        referral_code=referral_code,
        referral_link=referral_link,
        to_name=invitation.name,
    )

    if not sent:
        raise HTTPException(status_code=502, detail="Failed to send invitation email")

    logger.info(f"User {user.id} sent a referral invitation to {invitation.email}")

    return {
        "success": True,
        "referralCode": referral_code,
        "referralLink": referral_link,
    }
