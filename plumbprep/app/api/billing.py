"""
Billing API endpoints
Handles subscription checkout and plan listing
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional, List
import logging

from app.config.pricing import PLAN_PRICING
from app.models.user import User, SubscriptionTier
from app.middleware.auth import require_auth
from app.services.billing import billing_service
from app.services.referral_commission import calculate_referral_commission, get_tier_display_name
from app.utils.email_brevo import PUBLIC_BASE_URL

logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic models
class CheckoutRequest(BaseModel):
    planTier: SubscriptionTier
    successUrl: Optional[str] = None
    cancelUrl: Optional[str] = None


@router.post("/checkout", response_model=dict)
async def create_checkout_session(
    checkout_request: CheckoutRequest,
    user: User = Depends(require_auth),
):
    """Create Stripe checkout session for the current user"""

    result = await billing_service.create_checkout_session(
        user=user,
        plan_tier=checkout_request.planTier,
        success_url=checkout_request.successUrl or f"{PUBLIC_BASE_URL}/dashboard?checkout=success",
        cancel_url=checkout_request.cancelUrl or f"{PUBLIC_BASE_URL}/pricing?checkout=cancelled",
    )

    logger.info(f"Checkout session {result['session_id']} created for user {user.id} ({checkout_request.planTier.value})")

    return {
        "checkoutUrl": result["checkout_url"],
        "sessionId": result["session_id"],
    }


@router.get("/plans", response_model=List[dict])
async def get_available_plans():
    """Get all available subscription plans"""
    return [
        {
            "tier": tier,
            "name": get_tier_display_name(tier),
            "priceMonthly": float(price),
            "stripePriceId": billing_service.price_ids.get(tier),
            "maxReferralCommission": float(calculate_referral_commission(tier, tier).commission_amount),
        }
        for tier, price in PLAN_PRICING.items()
    ]
