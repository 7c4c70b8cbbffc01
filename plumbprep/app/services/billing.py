"""
Billing Management Service
Handle subscription checkout and job-posting payment intents
"""

import os
import stripe
import logging
from typing import Dict, Any, Optional
from fastapi import HTTPException
from app.models.user import User, SubscriptionTier
from app.services.job_posting_pricing import price_job_posting_plan

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = os.getenv("STRIPE_SECRET_KEY")


class BillingService:
    """Manages Stripe billing operations"""

    def __init__(self):
        self.price_ids = {
            SubscriptionTier.BASIC.value: os.getenv("STRIPE_BASIC_PRICE_ID"),
            SubscriptionTier.PROFESSIONAL.value: os.getenv("STRIPE_PROFESSIONAL_PRICE_ID"),
            SubscriptionTier.MASTER.value: os.getenv("STRIPE_MASTER_PRICE_ID"),
        }

    def get_tier_from_price_id(self, price_id: Optional[str]) -> Optional[SubscriptionTier]:
        """Map a Stripe price id back to a plan tier"""
        for tier, configured_id in self.price_ids.items():
            if configured_id and configured_id == price_id:
                return SubscriptionTier(tier)
        logger.warning(f"Unknown price_id: {price_id}")
        return None

    async def create_checkout_session(
        self,
        user: User,
        plan_tier: SubscriptionTier,
        success_url: str,
        cancel_url: str
    ) -> Dict[str, Any]:
        """Create Stripe checkout session for a subscription"""

        price_id = self.price_ids.get(plan_tier.value)
        if not price_id:
            raise HTTPException(status_code=400, detail=f"Price not configured for plan: {plan_tier.value}")

        metadata = {
            "user_id": str(user.id),
            "plan_tier": plan_tier.value,
        }
        if user.referred_by:
            metadata["referred_by"] = str(user.referred_by)

        try:
            session = stripe.checkout.Session.create(
                customer=user.stripe_customer_id or None,
                customer_email=None if user.stripe_customer_id else user.email,
                payment_method_types=['card'],
                line_items=[{
                    'price': price_id,
                    'quantity': 1,
                }],
                mode='subscription',
                success_url=success_url,
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                client_reference_id=str(user.id),
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )

            return {
                "checkout_url": session.url,
                "session_id": session.id
            }

        except stripe.StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise HTTPException(status_code=400, detail=f"Billing error: {str(e)}")

    async def create_job_posting_payment_intent(self, quantity: int, plan_type: str) -> Dict[str, Any]:
        """
        Create a payment intent for a bundle of job postings.

        The charged amount comes from the same calculation as the pricing
        preview, so the two can never disagree.
        """
        pricing = price_job_posting_plan(plan_type, quantity)

        try:
            payment_intent = stripe.PaymentIntent.create(
                amount=pricing.total_cents,
                currency="usd",
                metadata={
                    "service": "job-postings",
                    "planType": plan_type,
                    "quantity": str(quantity),
                    "unitPrice": f"{pricing.unit_price:.2f}",
                    "originalPrice": f"{pricing.base_price:.2f}",
                    "discount": f"{pricing.discount * 100:.0f}%",
                    "totalSavings": f"{pricing.total_savings:.2f}",
                }
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create job posting payment intent: {e}")
            raise HTTPException(status_code=400, detail=f"Billing error: {str(e)}")

        logger.info(
            f"Created job posting payment intent {payment_intent.id}: "
            f"{quantity} x {plan_type} at {pricing.unit_price} = {pricing.total_price}"
        )

        return {
            "client_secret": payment_intent.client_secret,
            "pricing": pricing,
        }


# Global service instance
billing_service = BillingService()
