"""
Stripe Webhook Handler
Processes Stripe events for subscriptions and referral commissions
"""

import os
import stripe
import logging
import uuid
from typing import Dict, Any, List, Optional
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.models.user import User, SubscriptionTier, SubscriptionStatus
from app.services.billing import billing_service
from app.services.referrals import referral_service
from app.utils.database import get_async_session
from app.utils.errors import PricingError

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = os.getenv("STRIPE_SECRET_KEY")

# Stripe subscription status -> local status
STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


class StripeWebhookHandler:
    """Handles Stripe webhook events"""

    def __init__(self):
        self.webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
        if not self.webhook_secret:
            logger.warning("STRIPE_WEBHOOK_SECRET not configured")

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> stripe.Event:
        """Verify webhook signature and construct event"""
        try:
            return stripe.Webhook.construct_event(
                payload, sig_header, self.webhook_secret
            )
        except ValueError as e:
            logger.error(f"Invalid payload: {e}")
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid signature: {e}")
            raise HTTPException(status_code=400, detail="Invalid signature")

    async def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Route webhook events to appropriate handlers.

        Bad event data is reported in the result and acknowledged. Database
        failures propagate so Stripe retries the delivery; retries are safe
        because referral creation is keyed on the event id.
        """
        event_type = event['type']
        logger.info(f"Processing Stripe event: {event_type} ({event['id']})")

        try:
            if event_type == 'customer.subscription.created':
                return await self.handle_subscription_created(event)

            elif event_type == 'customer.subscription.updated':
                return await self.handle_subscription_updated(event)

            elif event_type == 'customer.subscription.deleted':
                return await self.handle_subscription_cancelled(event)

            elif event_type == 'payment_intent.succeeded':
                return await self.handle_payment_intent_succeeded(event)

            else:
                logger.info(f"Unhandled event type: {event_type}")
                return {"status": "ignored", "event_type": event_type}

        except PricingError as e:
            logger.error(f"Rejected {event_type} event {event['id']}: {e}")
            return {"status": "error", "message": str(e)}

    async def handle_subscription_created(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """New subscription: set the plan and, once it is paid, credit the referrer"""
        subscription = event['data']['object']
        plan_tier = self._get_plan_from_subscription(subscription)

        async with get_async_session() as db:
            user = await self._find_user(db, subscription)
            if not user:
                logger.warning(f"No user found for customer {subscription.get('customer')}")
                return {"status": "warning", "message": "User not found"}

            user.stripe_customer_id = subscription.get('customer') or user.stripe_customer_id
            user.stripe_subscription_id = subscription['id']
            user.subscription_tier = plan_tier.value
            user.subscription_status = self._map_status(subscription).value
            user_id = user.id
            referred_by = user.referred_by

            await db.commit()
            logger.info(f"User {user_id} subscribed to {plan_tier.value} ({subscription['id']})")

            result = {
                "status": "success",
                "action": "subscription_created",
                "user_id": str(user_id),
                "plan_tier": plan_tier.value,
            }

            if referred_by and self._is_paid(subscription):
                result["referral"] = await self._record_referral(
                    db, referred_by, user_id, plan_tier, event['id']
                )
            elif referred_by:
                logger.info(
                    f"Referral for user {user_id} waits for payment "
                    f"(subscription status {subscription.get('status')})"
                )

            return result

    async def handle_subscription_updated(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Handle subscription changes (first payment, upgrades, downgrades, dunning)"""
        subscription = event['data']['object']
        plan_tier = self._get_plan_from_subscription(subscription)

        async with get_async_session() as db:
            user = await self._find_user(db, subscription)
            if not user:
                logger.warning(f"No user found for subscription {subscription['id']}")
                return {"status": "warning", "message": "User not found"}

            old_plan = user.subscription_tier
            user.subscription_tier = plan_tier.value
            user.subscription_status = self._map_status(subscription).value
            user_id = user.id
            referred_by = user.referred_by

            await db.commit()
            logger.info(f"Updated user {user_id} subscription: {old_plan} -> {plan_tier.value}")

            result = {
                "status": "success",
                "action": "subscription_updated",
                "user_id": str(user_id),
                "old_plan": old_plan,
                "new_plan": plan_tier.value,
            }

            if not self._is_paid(subscription):
                return result

            referral_created = False
            if referred_by:
                # No-op when the created event already recorded it
                result["referral"] = await self._record_referral(
                    db, referred_by, user_id, plan_tier, event['id']
                )
                referral_created = result["referral"]["status"] == "created"

            if self._plan_changed(event, old_plan, plan_tier) and not referral_created:
                result["monthly_commissions"] = await self._record_plan_change(
                    db, user_id, plan_tier, event['id']
                )

            return result

    async def handle_subscription_cancelled(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Handle subscription cancellation"""
        subscription = event['data']['object']

        async with get_async_session() as db:
            user = await self._find_user(db, subscription)
            if not user:
                logger.warning(f"No user found for cancelled subscription {subscription['id']}")
                return {"status": "warning", "message": "User not found"}

            user.subscription_status = SubscriptionStatus.CANCELLED.value
            user_id = user.id
            await db.commit()

            logger.info(f"Cancelled subscription for user {user_id}")

            return {
                "status": "success",
                "action": "subscription_cancelled",
                "user_id": str(user_id),
            }

    async def handle_payment_intent_succeeded(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Job posting bundles are paid with one-off payment intents"""
        payment_intent = event['data']['object']
        metadata = payment_intent.get('metadata') or {}

        if metadata.get('service') != 'job-postings':
            return {"status": "ignored", "event_type": event['type']}

        logger.info(
            f"Job posting payment {payment_intent['id']} succeeded: "
            f"{metadata.get('quantity')} x {metadata.get('planType')} "
            f"for {payment_intent.get('amount')} cents"
        )

        return {
            "status": "success",
            "action": "job_postings_paid",
            "payment_intent_id": payment_intent['id'],
        }

    async def _record_referral(
        self,
        db: AsyncSession,
        referrer_id: uuid.UUID,
        referred_id: uuid.UUID,
        plan_tier: SubscriptionTier,
        event_id: str,
    ) -> Dict[str, Any]:
        result = await db.execute(select(User).where(User.id == referrer_id))
        referrer = result.scalar_one_or_none()
        if not referrer:
            logger.warning(f"Referrer {referrer_id} of user {referred_id} no longer exists")
            return {"status": "skipped", "reason": "referrer_not_found"}

        referral, created = await referral_service.record_referral(
            db,
            referrer=referrer,
            referred_id=referred_id,
            referred_tier=plan_tier.value,
            source_event_id=event_id,
        )

        return {
            "status": "created" if created else "duplicate",
            "referral_id": str(referral.id),
            "commission_amount": f"{referral.commission_amount:.2f}",
        }

    async def _record_plan_change(
        self,
        db: AsyncSession,
        referred_id: uuid.UUID,
        plan_tier: SubscriptionTier,
        event_id: str,
    ) -> List[Dict[str, Any]]:
        recorded = await referral_service.record_plan_change(
            db,
            referred_id=referred_id,
            new_tier=plan_tier.value,
            source_event_id=event_id,
        )

        return [
            {
                "status": "created" if created else "duplicate",
                "monthly_commission_id": str(commission.id),
                "commission_month": commission.commission_month,
                "commission_amount": f"{commission.commission_amount:.2f}",
            }
            for commission, created in recorded
        ]

    async def _find_user(self, db: AsyncSession, subscription: Dict[str, Any]) -> Optional[User]:
        """Match by subscription, then Stripe customer, then checkout metadata"""
        result = await db.execute(
            select(User).where(User.stripe_subscription_id == subscription['id'])
        )
        user = result.scalar_one_or_none()
        if user:
            return user

        customer_id = subscription.get('customer')
        if customer_id:
            result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
            user = result.scalar_one_or_none()
            if user:
                return user

        user_id = (subscription.get('metadata') or {}).get('user_id')
        if user_id:
            try:
                result = await db.execute(select(User).where(User.id == uuid.UUID(user_id)))
            except ValueError:
                logger.warning(f"Malformed user_id in subscription metadata: {user_id}")
                return None
            return result.scalar_one_or_none()

        return None

    def _get_plan_from_subscription(self, subscription: Dict[str, Any]) -> SubscriptionTier:
        """Plan from the subscription's price id, falling back to checkout metadata"""
        items = (subscription.get('items') or {}).get('data') or []
        price_id = items[0]['price']['id'] if items else None

        tier = billing_service.get_tier_from_price_id(price_id) if price_id else None
        if tier:
            return tier

        plan_tier = (subscription.get('metadata') or {}).get('plan_tier')
        if plan_tier in {t.value for t in SubscriptionTier}:
            return SubscriptionTier(plan_tier)

        raise PricingError(f"Cannot determine plan for subscription {subscription['id']}")

    def _plan_changed(self, event: Dict[str, Any], stored_plan: str, plan_tier: SubscriptionTier) -> bool:
        """Compare with the stored plan, or with previous_attributes when a retried delivery already stored it"""
        if stored_plan != plan_tier.value:
            return True

        previous = event['data'].get('previous_attributes') or {}
        items = (previous.get('items') or {}).get('data') or []
        previous_tier = billing_service.get_tier_from_price_id(items[0]['price']['id']) if items else None
        if previous_tier is None:
            previous_plan = (previous.get('metadata') or {}).get('plan_tier')
            previous_tier = SubscriptionTier(previous_plan) if previous_plan in {t.value for t in SubscriptionTier} else None

        return previous_tier is not None and previous_tier != plan_tier

    def _map_status(self, subscription: Dict[str, Any]) -> SubscriptionStatus:
        return STATUS_MAP.get(subscription.get('status'), SubscriptionStatus.INACTIVE)

    def _is_paid(self, subscription: Dict[str, Any]) -> bool:
        """Only a paid subscription earns commission; trials and incomplete checkouts do not"""
        return subscription.get('status') == 'active'


# Global handler instance
webhook_handler = StripeWebhookHandler()
