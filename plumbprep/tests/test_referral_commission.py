from decimal import Decimal
from itertools import product

import pytest

from app.config.pricing import parse_commission_rate
from app.models.user import SubscriptionTier
from app.services.referral_commission import (
    build_commission_preview,
    calculate_referral_commission,
    format_commission,
    get_referral_earnings_potential,
    get_tier_display_name,
    is_valid_subscription_tier,
    round_to_cents,
)
from app.utils.errors import InvalidTierError, InvalidCommissionRateError

RANK = {"basic": 1, "professional": 2, "master": 3}
TIERS = list(RANK)


@pytest.mark.parametrize("referrer,referred", list(product(TIERS, TIERS)))
def test_eligible_tier_is_the_lower_of_the_two(referrer, referred):
    result = calculate_referral_commission(referrer, referred)
    assert RANK[result.eligible_tier.value] == min(RANK[referrer], RANK[referred])


def test_referrer_is_capped_at_own_tier():
    assert calculate_referral_commission("basic", "master").eligible_tier == SubscriptionTier.BASIC
    assert calculate_referral_commission("master", "basic").eligible_tier == SubscriptionTier.BASIC
    assert calculate_referral_commission("professional", "professional").eligible_tier == SubscriptionTier.PROFESSIONAL


@pytest.mark.parametrize(
    "referrer,referred,expected",
    [
        ("basic", "basic", "2.00"),
        ("professional", "professional", "3.00"),
        ("master", "master", "5.00"),
        ("basic", "master", "2.00"),
        ("master", "basic", "2.00"),
        ("professional", "master", "3.00"),
    ],
)
def test_commission_values(referrer, referred, expected):
    result = calculate_referral_commission(referrer, referred)
    assert result.commission_amount == Decimal(expected)


def test_commission_uses_eligible_tier_price():
    result = calculate_referral_commission("professional", "master")
    assert result.eligible_price == Decimal("29.99")


@pytest.mark.parametrize("referrer,referred", list(product(TIERS, TIERS)))
def test_commission_has_exactly_two_decimals(referrer, referred):
    result = calculate_referral_commission(referrer, referred)
    assert result.commission_amount.as_tuple().exponent == -2


def test_rounding_is_half_up():
    assert round_to_cents(Decimal("1.9995")) == Decimal("2.00")
    # Banker's rounding would give 0.12
    assert round_to_cents(Decimal("0.125")) == Decimal("0.13")


def test_custom_commission_rate():
    result = calculate_referral_commission("master", "master", Decimal("0.20"))
    assert result.commission_amount == Decimal("10.00")

    assert calculate_referral_commission("master", "master", "0").commission_amount == Decimal("0.00")


@pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("1.01"), "abc", True, float("nan")])
def test_invalid_commission_rate_rejected(rate):
    with pytest.raises(InvalidCommissionRateError):
        calculate_referral_commission("basic", "basic", rate)


@pytest.mark.parametrize("raw", ["1.5", "abc", "", "-0.1", "NaN"])
def test_configured_commission_rate_is_validated(raw):
    # REFERRAL_COMMISSION_RATE goes through the same check at import
    with pytest.raises(InvalidCommissionRateError):
        parse_commission_rate(raw)


def test_configured_commission_rate_accepts_fractions():
    assert parse_commission_rate("0.15") == Decimal("0.15")
    assert parse_commission_rate(" 1 ") == Decimal("1")


@pytest.mark.parametrize("referrer,referred", [("gold", "basic"), ("basic", "gold"), ("", "basic"), (None, "basic")])
def test_unknown_tier_rejected(referrer, referred):
    with pytest.raises(InvalidTierError):
        calculate_referral_commission(referrer, referred)


def test_accepts_enum_members():
    result = calculate_referral_commission(SubscriptionTier.MASTER, SubscriptionTier.PROFESSIONAL)
    assert result.eligible_tier == SubscriptionTier.PROFESSIONAL


def test_is_valid_subscription_tier():
    assert is_valid_subscription_tier("master")
    assert is_valid_subscription_tier(SubscriptionTier.BASIC)
    assert not is_valid_subscription_tier("Master")
    assert not is_valid_subscription_tier(3)


def test_commission_preview_shape():
    preview = build_commission_preview("professional")

    assert preview["referrerTier"] == "professional"
    assert set(preview["commissionPreviews"]) == {"basic", "professional", "master"}
    assert preview["commissionPreviews"]["master"] == {
        "eligibleTier": "professional",
        "eligiblePrice": 29.99,
        "commissionAmount": 3.0,
    }
    assert preview["commissionPreviews"]["basic"]["commissionAmount"] == 2.0
    assert preview["note"] == "Commission is capped at your current plan tier or lower"


def test_earnings_potential():
    potential = get_referral_earnings_potential("master")

    assert potential["tier"] == "master"
    assert potential["maxMonthlyCommission"] == 5.0
    assert potential["cappedAt"] == "master"
    assert "$5.00" in potential["description"]


def test_display_helpers():
    assert format_commission(Decimal("2")) == "$2.00"
    assert format_commission(2.995) == "$3.00"
    assert get_tier_display_name("professional") == "Professional"
