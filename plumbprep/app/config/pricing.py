"""
Pricing Configuration
Defines plan prices, tier ranks and volume-discount tables
"""

import os
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Any, Tuple

from app.models.user import SubscriptionTier
from app.utils.errors import InvalidCommissionRateError

# Monthly subscription price per plan tier
PLAN_PRICING: Dict[str, Decimal] = {
    SubscriptionTier.BASIC.value: Decimal("19.99"),
    SubscriptionTier.PROFESSIONAL.value: Decimal("29.99"),
    SubscriptionTier.MASTER.value: Decimal("49.99"),
}

# Plan tier hierarchy (higher number = higher tier)
PLAN_TIER_LEVELS: Dict[str, int] = {
    SubscriptionTier.BASIC.value: 1,
    SubscriptionTier.PROFESSIONAL.value: 2,
    SubscriptionTier.MASTER.value: 3,
}

def parse_commission_rate(rate: Any) -> Decimal:
    """Commission rate as a Decimal in [0, 1], raising InvalidCommissionRateError otherwise"""
    if isinstance(rate, bool):
        raise InvalidCommissionRateError(rate)
    try:
        value = Decimal(str(rate).strip())
    except (InvalidOperation, ValueError):
        raise InvalidCommissionRateError(rate)
    if not value.is_finite() or value < 0 or value > 1:
        raise InvalidCommissionRateError(rate)
    return value


# Referral commission (fraction of the eligible plan price), validated at import
DEFAULT_COMMISSION_RATE = parse_commission_rate(os.getenv("REFERRAL_COMMISSION_RATE", "0.10"))

# Bulk enrollment: the per-student base price lives here and nowhere else
BULK_BASE_PRICE_PER_STUDENT = Decimal(os.getenv("BULK_BASE_PRICE_PER_STUDENT", "49.00"))
DEFAULT_COURSE_ID = os.getenv("DEFAULT_COURSE_ID", "journeyman")

# Seeded once by the migration / seed command
DEFAULT_BULK_TIERS: List[Dict[str, Any]] = [
    {
        "tier_name": "Small Team",
        "min_students": 5,
        "max_students": 19,
        "discount_percent": Decimal("10.00"),
    },
    {
        "tier_name": "Medium Team",
        "min_students": 20,
        "max_students": 49,
        "discount_percent": Decimal("15.00"),
    },
    {
        "tier_name": "Large Company",
        "min_students": 50,
        "max_students": None,  # No upper limit
        "discount_percent": Decimal("25.00"),
    },
]

# Employer job postings
JOB_POST_PRICES: Dict[str, Decimal] = {
    "basic": Decimal("49"),
    "premium": Decimal("89"),
}

# (minimum quantity, discount fraction), highest threshold first
JOB_POST_VOLUME_DISCOUNTS: List[Tuple[int, Decimal]] = [
    (10, Decimal("0.25")),
    (5, Decimal("0.15")),
    (3, Decimal("0.10")),
]

CENTS = Decimal("0.01")


def get_plan_price(tier: str) -> Decimal:
    """Get monthly price for a plan tier"""
    return PLAN_PRICING[getattr(tier, "value", tier)]

