"""Billing API endpoints — post-purchase session details, Customer Portal, invoices."""

import logging
from datetime import datetime, timezone
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query, status
from stripe import StripeClient

from app.billing.stripe_client import (
    create_portal_session,
    get_stripe_client,
    list_invoices,
    retrieve_checkout_session,
)
from app.config import Settings, get_settings
from app.models.subscription import DEFAULT_PRODUCT_NAME, DEFAULT_TIER
from app.schemas.billing import (
    CheckoutSessionResponse,
    InvoiceLineItem,
    InvoiceListResponse,
    InvoiceResponse,
    PortalRequest,
    PortalResponse,
    SessionCustomer,
    SessionDetails,
    SessionPlan,
    SessionSubscription,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])

MAX_INVOICES = 100


def _ts_to_datetime(ts: int | None) -> datetime | None:
    """Convert Stripe Unix timestamp to an aware UTC datetime."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a Stripe object, tolerating absent keys."""
    if obj is None:
        return default
    try:
        value = obj[name]
    except (KeyError, TypeError, AttributeError):
        value = getattr(obj, name, default)
    return default if value is None else value


def _expanded(obj: Any) -> Any:
    """Return ``obj`` if Stripe expanded it, None if it is only an id string."""
    if obj is None or isinstance(obj, str):
        return None
    return obj


def _ref_id(obj: Any) -> str | None:
    if obj is None or isinstance(obj, str):
        return obj
    return _field(obj, "id")


def _stripe_error(e: stripe.StripeError, not_found: str, action: str) -> HTTPException:
    """Map a Stripe SDK error to the HTTP error returned to the frontend."""
    if e.code == "resource_missing":
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    logger.error("Stripe %s error: %s", action, e)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Failed to {action}",
    )


def _subscription_amount(subscription: Any) -> int:
    """Sum unit_amount * quantity across a subscription's items."""
    items = _field(subscription, "items")
    total = 0
    for item in _field(items, "data", []):
        price = _field(item, "price")
        total += _field(price, "unit_amount", 0) * _field(item, "quantity", 1)
    return total


@router.get("/session", response_model=CheckoutSessionResponse)
async def get_checkout_session(
    session_id: str | None = Query(default=None),
    client: StripeClient = Depends(get_stripe_client),
) -> CheckoutSessionResponse:
    """Retrieve Checkout Session details for the post-purchase flow."""
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session ID is required",
        )

    try:
        session = await retrieve_checkout_session(client, session_id)
    except stripe.StripeError as e:
        raise _stripe_error(e, "Session not found or expired", "retrieve session") from e

    subscription = _expanded(_field(session, "subscription"))
    customer = _expanded(_field(session, "customer"))
    metadata = dict(_field(session, "metadata", {}))

    product_name = DEFAULT_PRODUCT_NAME
    monthly_amount = 0
    line_items = _field(session, "line_items")
    for item in _field(line_items, "data", []):
        price = _field(item, "price")
        if _field(price, "recurring"):
            monthly_amount = _field(item, "amount_total", 0)
            product_name = _field(item, "description") or product_name

    if subscription is not None:
        monthly_amount = _subscription_amount(subscription) or monthly_amount

    currency = _field(session, "currency", "usd")
    return CheckoutSessionResponse(
        session=SessionDetails(
            id=_field(session, "id"),
            status=_field(session, "status"),
            payment_status=_field(session, "payment_status"),
            customer_email=_field(session, "customer_email") or _field(customer, "email"),
            amount_total=_field(session, "amount_total"),
            currency=currency,
        ),
        subscription=SessionSubscription(
            id=_field(subscription, "id"),
            status=_field(subscription, "status"),
            current_period_start=_field(subscription, "current_period_start"),
            current_period_end=_field(subscription, "current_period_end"),
        )
        if subscription is not None
        else None,
        customer=SessionCustomer(
            id=_field(customer, "id"),
            email=_field(customer, "email"),
            name=_field(customer, "name"),
        )
        if customer is not None
        else None,
        plan=SessionPlan(
            type=metadata.get("type", "automation"),
            product_name=product_name,
            tier=metadata.get("tier", DEFAULT_TIER),
            monthly_amount_cents=monthly_amount,
            currency=currency,
        ),
        metadata=metadata,
    )


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    client: StripeClient = Depends(get_stripe_client),
    settings: Settings = Depends(get_settings),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for subscription management."""
    return_url = body.return_url or f"{settings.frontend_url}/portal/billing"

    try:
        session = await create_portal_session(
            client,
            customer_id=body.customer_id,
            return_url=return_url,
        )
    except stripe.StripeError as e:
        raise _stripe_error(
            e, "Customer not found in Stripe. Please contact support.", "create portal session"
        ) from e

    logger.info("Portal session created for customer %s", body.customer_id)
    return PortalResponse(url=session.url)


def _format_invoice(invoice: Any) -> InvoiceResponse:
    """Flatten a Stripe invoice into the billing history shape."""
    number = _field(invoice, "number")
    transitions = _field(invoice, "status_transitions")
    # Newer API versions move the subscription under parent.subscription_details
    subscription = _field(invoice, "subscription")
    if subscription is None:
        details = _field(_field(invoice, "parent"), "subscription_details")
        subscription = _field(details, "subscription")

    lines = _field(invoice, "lines")
    return InvoiceResponse(
        id=_field(invoice, "id"),
        number=number,
        description=_field(invoice, "description") or f"Invoice {number}",
        amount_cents=_field(invoice, "amount_due", 0),
        amount_paid_cents=_field(invoice, "amount_paid", 0),
        currency=_field(invoice, "currency", "usd"),
        status=_field(invoice, "status"),
        invoice_date=_ts_to_datetime(_field(invoice, "created")),
        due_date=_ts_to_datetime(_field(invoice, "due_date")),
        paid_at=_ts_to_datetime(_field(transitions, "paid_at")),
        invoice_pdf_url=_field(invoice, "invoice_pdf"),
        hosted_invoice_url=_field(invoice, "hosted_invoice_url"),
        subscription_id=_ref_id(subscription),
        line_items=[
            InvoiceLineItem(
                description=_field(line, "description"),
                amount=_field(line, "amount", 0),
                quantity=_field(line, "quantity"),
            )
            for line in _field(lines, "data", [])
        ],
    )


@router.get("/invoices", response_model=InvoiceListResponse)
async def get_invoices(
    customer_id: str | None = Query(default=None),
    limit: int = Query(default=10),
    client: StripeClient = Depends(get_stripe_client),
) -> InvoiceListResponse:
    """Fetch a customer's invoice history."""
    if not customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Customer ID is required",
        )

    limit = max(1, min(limit, MAX_INVOICES))
    try:
        invoices = await list_invoices(client, customer_id, limit=limit)
    except stripe.StripeError as e:
        raise _stripe_error(e, "Customer not found", "retrieve invoices") from e

    return InvoiceListResponse(
        invoices=[_format_invoice(invoice) for invoice in invoices.data],
        has_more=bool(_field(invoices, "has_more", False)),
    )
