"""Stripe webhook endpoint — receives, verifies and dispatches Stripe events."""

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.billing.events import parse_event
from app.billing.stripe_client import verify_webhook_signature
from app.billing.webhooks import dispatch_event
from app.config import Settings, get_settings
from app.schemas.webhooks import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> WebhookAck:
    """Receive and process Stripe webhook events."""
    # 1. Signature header is required before anything else is touched
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.warning("Webhook request without Stripe-Signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No signature",
        )

    if not settings.stripe_webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    # 2. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()

    # 3. Verify signature over the raw bytes, then parse them once into a typed event
    try:
        verify_webhook_signature(
            payload,
            sig_header,
            settings.stripe_webhook_secret,
            settings.stripe_webhook_tolerance,
        )
    except stripe.SignatureVerificationError as e:
        logger.warning("Webhook signature verification failed: %s", e.user_message or e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e
    except ValueError as e:
        logger.warning("Invalid webhook payload")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from e

    try:
        event = parse_event(payload)
    except ValueError as e:
        logger.warning("Unparseable webhook event: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from e

    logger.info("Received Stripe event: %s (id=%s)", event.event_type, event.event_id)

    # 4. Dispatch to handler and hooks
    try:
        await dispatch_event(event)
    except Exception as e:
        logger.exception("Error processing webhook event %s", event.event_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from e

    return WebhookAck(received=True)
