"""
Referral Commission Calculator
Commissions are capped at the referrer's own plan tier

Rule: referrers only earn commission for their plan tier or lower
- Basic referrer: gets Basic commission even if the referral buys Professional/Master
- Professional referrer: Professional commission for Professional/Master, Basic for Basic
- Master referrer: full commission for any tier
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, Optional, Union

from app.config.pricing import (
    PLAN_PRICING,
    PLAN_TIER_LEVELS,
    DEFAULT_COMMISSION_RATE,
    CENTS,
    parse_commission_rate,
)
from app.models.user import SubscriptionTier
from app.utils.errors import InvalidTierError

TierLike = Union[SubscriptionTier, str]

_TIERS_BY_LEVEL = {level: tier for tier, level in PLAN_TIER_LEVELS.items()}


@dataclass(frozen=True)
class CommissionResult:
    eligible_tier: SubscriptionTier
    eligible_price: Decimal
    commission_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eligibleTier": self.eligible_tier.value,
            "eligiblePrice": float(self.eligible_price),
            "commissionAmount": float(self.commission_amount),
        }


def is_valid_subscription_tier(tier: Any) -> bool:
    """Check whether a value names one of the plan tiers"""
    if isinstance(tier, SubscriptionTier):
        return True
    return isinstance(tier, str) and tier in PLAN_PRICING


def parse_tier(tier: Any) -> SubscriptionTier:
    """Convert a tier string to SubscriptionTier, raising InvalidTierError otherwise"""
    if not is_valid_subscription_tier(tier):
        raise InvalidTierError(tier)
    return SubscriptionTier(tier)


def round_to_cents(amount: Decimal) -> Decimal:
    """Round half-up to 2 decimal places"""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_referral_commission(
    referrer_tier: TierLike,
    referred_tier: TierLike,
    commission_rate: Optional[Union[Decimal, float, str]] = None,
) -> CommissionResult:
    """
    Calculate the referral commission for a confirmed subscription.

    The referrer is paid on the lower of their own tier and the tier the
    referred user bought, so a referral never earns more than the referrer's
    own plan would.

    Args:
        referrer_tier: Referrer's current plan tier
        referred_tier: Tier the referred user purchased
        commission_rate: Fraction of the eligible price, defaults to REFERRAL_COMMISSION_RATE

    Raises:
        InvalidTierError: either tier is not basic/professional/master
        InvalidCommissionRateError: rate outside [0, 1]
    """
    referrer = parse_tier(referrer_tier)
    referred = parse_tier(referred_tier)
    rate = DEFAULT_COMMISSION_RATE if commission_rate is None else parse_commission_rate(commission_rate)

    eligible_level = min(PLAN_TIER_LEVELS[referrer.value], PLAN_TIER_LEVELS[referred.value])
    eligible_tier = SubscriptionTier(_TIERS_BY_LEVEL[eligible_level])

    eligible_price = PLAN_PRICING[eligible_tier.value]
    commission_amount = round_to_cents(eligible_price * rate)

    return CommissionResult(
        eligible_tier=eligible_tier,
        eligible_price=eligible_price,
        commission_amount=commission_amount,
    )


def get_referral_earnings_potential(referrer_tier: TierLike) -> Dict[str, Any]:
    """Get the maximum monthly commission per referral for a referrer tier"""
    tier = parse_tier(referrer_tier)
    max_commission = calculate_referral_commission(tier, tier)

    return {
        "tier": tier.value,
        "maxMonthlyCommission": float(max_commission.commission_amount),
        "cappedAt": max_commission.eligible_tier.value,
        "description": (
            f"Earn up to {format_commission(max_commission.commission_amount)}/month per referral "
            f"(capped at {max_commission.eligible_tier.value} plan tier)"
        ),
    }


def build_commission_preview(
    referrer_tier: TierLike,
    commission_rate: Optional[Union[Decimal, float, str]] = None,
) -> Dict[str, Any]:
    """What the referrer would earn for each possible referred tier"""
    tier = parse_tier(referrer_tier)
    previews = {
        referred.value: calculate_referral_commission(tier, referred, commission_rate).to_dict()
        for referred in SubscriptionTier
    }

    return {
        "referrerTier": tier.value,
        "commissionPreviews": previews,
        "note": "Commission is capped at your current plan tier or lower",
    }


def format_commission(amount: Union[Decimal, float]) -> str:
    """Format commission amount for display"""
    return f"${Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)}"


def get_tier_display_name(tier: TierLike) -> str:
    """Get tier display name"""
    return parse_tier(tier).value.capitalize()
