"""
Admin Referral Payout API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from app.utils.database import get_db
from app.models.user import User
from app.middleware.auth import require_admin
from app.services.referrals import referral_service, referral_to_dict, monthly_commission_to_dict

router = APIRouter()


@router.get("/unpaid")
async def list_unpaid_referrals(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Commissions awaiting payout, oldest first"""
    referrals = await referral_service.get_unpaid_referrals(db)
    total = sum(r.commission_amount for r in referrals)

    return {
        "referrals": [referral_to_dict(r) for r in referrals],
        "count": len(referrals),
        "totalUnpaid": float(total),
    }


@router.post("/{referral_id}/mark-paid")
async def mark_referral_paid(
    referral_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    referral = await referral_service.mark_referral_paid(db, referral_id)
    if not referral:
        raise HTTPException(status_code=404, detail="Referral not found")

    return {"referral": referral_to_dict(referral)}


@router.get("/monthly/unpaid")
async def list_unpaid_monthly_commissions(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Plan-change commissions awaiting payout, oldest first"""
    commissions = await referral_service.get_unpaid_monthly_commissions(db)
    total = sum(c.commission_amount for c in commissions)

    return {
        "monthlyCommissions": [monthly_commission_to_dict(c) for c in commissions],
        "count": len(commissions),
        "totalUnpaid": float(total),
    }


@router.post("/monthly/{commission_id}/mark-paid")
async def mark_monthly_commission_paid(
    commission_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    commission = await referral_service.mark_monthly_commission_paid(db, commission_id)
    if not commission:
        raise HTTPException(status_code=404, detail="Monthly commission not found")

    return {"monthlyCommission": monthly_commission_to_dict(commission)}


@router.get("/payout/{user_id}")
async def get_payout_for_user(
    user_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Everything owed to one referrer across referrals and plan-change commissions"""
    payout = await referral_service.get_eligible_commissions_for_payout(db, user_id)

    return {
        "referrals": [referral_to_dict(r) for r in payout["referrals"]],
        "monthlyCommissions": [monthly_commission_to_dict(c) for c in payout["monthly_commissions"]],
        "totalAmount": float(payout["total"]),
    }
