"""
Job Posting Volume Pricing
Step-function discount on employer job-post bundles.

The pricing preview and the payment intent both go through calculate_pricing
so the quoted price is the charged price.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Union

from app.config.pricing import JOB_POST_PRICES, JOB_POST_VOLUME_DISCOUNTS, CENTS
from app.utils.errors import InvalidQuantityError, PricingError


@dataclass(frozen=True)
class JobPostingPricing:
    base_price: Decimal
    quantity: int
    discount: Decimal
    unit_price: Decimal
    total_price: Decimal
    total_savings: Decimal

    @property
    def total_cents(self) -> int:
        return int((self.total_price * 100).to_integral_value(rounding=ROUND_HALF_UP))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "basePrice": float(self.base_price),
            "quantity": self.quantity,
            "unitPrice": float(self.unit_price),
            "totalPrice": float(self.total_price),
            "totalSavings": float(self.total_savings),
            "discount": float(self.discount),
            "discountPercent": float(self.discount * 100),
        }


def get_volume_discount(quantity: int) -> Decimal:
    """Discount fraction for a bundle size, checked from the largest threshold down"""
    for minimum, discount in JOB_POST_VOLUME_DISCOUNTS:
        if quantity >= minimum:
            return discount
    return Decimal("0")


def calculate_pricing(base_price: Union[Decimal, int, str], quantity: int) -> JobPostingPricing:
    """
    Price a bundle of job posts.

    Raises:
        InvalidQuantityError: quantity is not an integer >= 1
        PricingError: negative base price
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity, "quantity")

    base_price = Decimal(str(base_price))
    if base_price < 0:
        raise PricingError(f"Base price must not be negative, got {base_price}")

    discount = get_volume_discount(quantity)
    unit_price = (base_price * (1 - discount)).quantize(CENTS, rounding=ROUND_HALF_UP)
    total_price = unit_price * quantity
    total_savings = base_price * quantity - total_price

    return JobPostingPricing(
        base_price=base_price,
        quantity=quantity,
        discount=discount,
        unit_price=unit_price,
        total_price=total_price,
        total_savings=total_savings,
    )


def price_job_posting_plan(plan_type: str, quantity: int) -> JobPostingPricing:
    """Price a bundle for a named plan (basic or premium)"""
    if plan_type not in JOB_POST_PRICES:
        raise PricingError(f"Unknown job posting plan: {plan_type}")
    return calculate_pricing(JOB_POST_PRICES[plan_type], quantity)


def build_pricing_comparison(quantity: int) -> Dict[str, Any]:
    """Side-by-side basic vs premium preview for the checkout page"""
    return {
        "quantity": quantity,
        "plans": {
            plan_type: price_job_posting_plan(plan_type, quantity).to_dict()
            for plan_type in JOB_POST_PRICES
        },
    }
