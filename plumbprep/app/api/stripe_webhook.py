"""
Stripe Webhook API Endpoint
Handles incoming webhook events from Stripe
"""

from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse
import logging

from app.services.stripe_webhook import webhook_handler

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/stripe/webhook")
async def stripe_webhook(request: Request) -> JSONResponse:
    """
    Handle Stripe webhook events

    Subscription events update the subscriber's plan and record referral
    commissions. Database failures are answered with a 5xx so Stripe
    retries the delivery.
    """
    # Get raw request body and signature
    payload = await request.body()
    sig_header = request.headers.get('stripe-signature')

    if not sig_header:
        logger.error("Missing Stripe signature header")
        raise HTTPException(status_code=400, detail="Missing signature")

    # Verify webhook signature and construct event
    event = webhook_handler.verify_webhook_signature(payload, sig_header)

    # Process the event
    result = await webhook_handler.handle_event(event)

    logger.info(f"Webhook processed: {event['type']} - {result['status']}")

    return JSONResponse(
        status_code=200,
        content={
            "received": True,
            "event_type": event['type'],
            "event_id": event['id'],
            "result": result
        }
    )
