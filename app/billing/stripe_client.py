"""Async Stripe API wrapper for the billing backend."""

import logging

import stripe
from fastapi import Depends
from stripe import StripeClient

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


def get_stripe_client(settings: Settings = Depends(get_settings)) -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


def verify_webhook_signature(
    payload: bytes,
    sig_header: str,
    secret: str,
    tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
) -> None:
    """Verify a webhook signature over the raw body.

    Raises ``stripe.SignatureVerificationError`` on a bad signature and
    ``ValueError`` when the body is not UTF-8. Parsing is left to the caller.
    """
    stripe.WebhookSignature.verify_header(payload.decode("utf-8"), sig_header, secret, tolerance)


async def retrieve_checkout_session(
    client: StripeClient, session_id: str
) -> stripe.checkout.Session:
    """Retrieve a Checkout Session with its subscription, customer and line items."""
    logger.info("Retrieving checkout session %s", session_id)
    return await client.v1.checkout.sessions.retrieve_async(
        session_id,
        params={"expand": ["subscription", "customer", "line_items"]},
    )


async def create_portal_session(
    client: StripeClient, customer_id: str, return_url: str
) -> stripe.billing_portal.Session:
    """Create a Stripe Customer Portal session for subscription management."""
    logger.info("Creating portal session for customer %s", customer_id)
    return await client.v1.billing_portal.sessions.create_async(
        params={
            "customer": customer_id,
            "return_url": return_url,
        }
    )


async def list_invoices(
    client: StripeClient, customer_id: str, limit: int = 10
) -> stripe.ListObject:
    """List a customer's invoices, newest first."""
    logger.info("Listing invoices for customer %s (limit=%d)", customer_id, limit)
    return await client.v1.invoices.list_async(
        params={
            "customer": customer_id,
            "limit": limit,
        }
    )
