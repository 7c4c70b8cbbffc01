"""
Employer API endpoints
Job posting bundle pricing and checkout
"""

from fastapi import APIRouter, Query
from pydantic import BaseModel
import logging

from app.services.billing import billing_service
from app.services.job_posting_pricing import build_pricing_comparison

logger = logging.getLogger(__name__)

router = APIRouter()


class JobPostingPaymentRequest(BaseModel):
    quantity: int
    planType: str


@router.get("/job-postings/pricing")
async def get_job_posting_pricing(quantity: int = Query(1)):
    """Basic vs premium bundle price preview"""
    return build_pricing_comparison(quantity)


@router.post("/payment-intent")
async def create_job_posting_payment_intent(payment_request: JobPostingPaymentRequest):
    """Create a Stripe payment intent for a bundle of job postings"""
    result = await billing_service.create_job_posting_payment_intent(
        quantity=payment_request.quantity,
        plan_type=payment_request.planType,
    )
    pricing = result["pricing"]

    return {
        "clientSecret": result["client_secret"],
        "amount": float(pricing.total_price),
        "unitPrice": float(pricing.unit_price),
        "totalSavings": float(pricing.total_savings),
        "discount": float(pricing.discount * 100),
        "metadata": {
            "planType": payment_request.planType,
            "quantity": payment_request.quantity,
            "unitPrice": f"{pricing.unit_price:.2f}",
            "originalPrice": float(pricing.base_price),
        },
    }
