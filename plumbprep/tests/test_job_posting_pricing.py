from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from app.services.billing import billing_service
from app.services.job_posting_pricing import (
    build_pricing_comparison,
    calculate_pricing,
    get_volume_discount,
    price_job_posting_plan,
)
from app.utils.errors import InvalidQuantityError, PricingError


@pytest.mark.parametrize(
    "quantity,expected",
    [(1, "0"), (2, "0"), (3, "0.10"), (4, "0.10"), (5, "0.15"), (9, "0.15"), (10, "0.25"), (250, "0.25")],
)
def test_volume_discount_steps(quantity, expected):
    assert get_volume_discount(quantity) == Decimal(expected)


def test_basic_bundle_of_seven():
    pricing = calculate_pricing(49, 7)

    assert pricing.discount == Decimal("0.15")
    assert pricing.unit_price == Decimal("41.65")
    assert pricing.total_price == Decimal("291.55")
    assert pricing.total_savings == Decimal("51.45")
    assert pricing.total_cents == 29155


def test_premium_bundle_of_ten():
    pricing = calculate_pricing(89, 10)

    assert pricing.unit_price == Decimal("66.75")
    assert pricing.total_price == Decimal("667.50")
    assert pricing.total_savings == Decimal("222.50")


def test_single_post_has_no_savings():
    pricing = calculate_pricing(49, 1)

    assert pricing.unit_price == Decimal("49.00")
    assert pricing.total_savings == Decimal("0")


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "3", False])
def test_invalid_quantity_rejected(quantity):
    with pytest.raises(InvalidQuantityError):
        calculate_pricing(49, quantity)


def test_negative_base_price_rejected():
    with pytest.raises(PricingError):
        calculate_pricing(-1, 3)


def test_unknown_plan_rejected():
    with pytest.raises(PricingError):
        price_job_posting_plan("platinum", 3)


def test_comparison_lists_both_plans():
    comparison = build_pricing_comparison(5)

    assert comparison["quantity"] == 5
    assert comparison["plans"]["basic"]["unitPrice"] == 41.65
    assert comparison["plans"]["premium"]["unitPrice"] == 75.65
    assert comparison["plans"]["premium"]["discountPercent"] == 15.0


@pytest.fixture
def captured_intents(monkeypatch):
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="pi_test_123", client_secret="pi_test_123_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    return calls


@pytest.mark.asyncio
@pytest.mark.parametrize("plan_type", ["basic", "premium"])
async def test_payment_intent_charges_the_previewed_price(captured_intents, plan_type):
    preview = build_pricing_comparison(7)["plans"][plan_type]

    result = await billing_service.create_job_posting_payment_intent(quantity=7, plan_type=plan_type)

    charged = result["pricing"]
    assert float(charged.unit_price) == preview["unitPrice"]
    assert float(charged.total_price) == preview["totalPrice"]
    assert captured_intents[0]["amount"] == charged.total_cents
    assert captured_intents[0]["currency"] == "usd"
    assert captured_intents[0]["metadata"]["discount"] == "15%"
    assert captured_intents[0]["metadata"]["service"] == "job-postings"
    assert result["client_secret"] == "pi_test_123_secret"


@pytest.mark.asyncio
async def test_payment_intent_not_created_for_invalid_quantity(captured_intents):
    with pytest.raises(InvalidQuantityError):
        await billing_service.create_job_posting_payment_intent(quantity=0, plan_type="basic")

    assert captured_intents == []
