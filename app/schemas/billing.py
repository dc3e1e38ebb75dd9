"""Pydantic v2 request/response schemas for billing endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

# --- Request schemas ---


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    customer_id: str = Field(min_length=1)
    return_url: str | None = None


# --- Response schemas ---


class PortalResponse(BaseModel):
    """Stripe Customer Portal URL returned to frontend."""

    url: str
    success: bool = True


class SessionDetails(BaseModel):
    id: str
    status: str | None
    payment_status: str | None
    customer_email: str | None
    amount_total: int | None
    currency: str | None


class SessionSubscription(BaseModel):
    id: str
    status: str | None
    current_period_start: int | None
    current_period_end: int | None


class SessionCustomer(BaseModel):
    id: str
    email: str | None
    name: str | None


class SessionPlan(BaseModel):
    """Plan summary derived from session metadata and line items."""

    type: str
    product_name: str
    tier: str
    monthly_amount_cents: int
    currency: str


class CheckoutSessionResponse(BaseModel):
    """Post-purchase view of a completed Checkout Session."""

    success: bool = True
    session: SessionDetails
    subscription: SessionSubscription | None
    customer: SessionCustomer | None
    plan: SessionPlan
    metadata: dict[str, str]


class InvoiceLineItem(BaseModel):
    description: str | None
    amount: int
    quantity: int | None


class InvoiceResponse(BaseModel):
    """One invoice in a customer's billing history."""

    id: str
    number: str | None
    description: str
    amount_cents: int
    amount_paid_cents: int
    currency: str
    status: str | None
    invoice_date: datetime | None
    due_date: datetime | None
    paid_at: datetime | None
    invoice_pdf_url: str | None
    hosted_invoice_url: str | None
    subscription_id: str | None
    line_items: list[InvoiceLineItem]


class InvoiceListResponse(BaseModel):
    success: bool = True
    invoices: list[InvoiceResponse]
    has_more: bool
