"""Typed Stripe webhook events — one model per handled event kind.

A verified payload is parsed into exactly one of the variants below. Types
that have no variant become :class:`UnhandledEvent`, so dispatch is a closed
set with an explicit fallback.
"""

import logging
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.models.subscription import DEFAULT_PRODUCT_NAME, DEFAULT_TIER

logger = logging.getLogger(__name__)


def _ref_id(value: Any) -> str | None:
    """Stripe references are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return None


class StripeEnvelope(BaseModel):
    """The outer ``event`` object delivered by Stripe."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    created: int | None = None
    livemode: bool = False
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def data_object(self) -> dict[str, Any]:
        obj = self.data.get("object")
        return obj if isinstance(obj, dict) else {}


class WebhookEvent(BaseModel):
    """Fields shared by every variant."""

    model_config = ConfigDict(frozen=True)

    kind: ClassVar[str] = "unhandled"
    event_types: ClassVar[tuple[str, ...]] = ()

    event_id: str
    event_type: str

    @classmethod
    def from_envelope(cls, envelope: StripeEnvelope) -> "WebhookEvent":
        return cls(event_id=envelope.id, event_type=envelope.type)


class CheckoutSessionCompleted(WebhookEvent):
    """``checkout.session.completed``: an order was paid."""

    kind: ClassVar[str] = "checkout_completed"
    event_types: ClassVar[tuple[str, ...]] = ("checkout.session.completed",)

    session_id: str
    customer_id: str | None = None
    customer_email: str | None = None
    subscription_id: str | None = None
    product_name: str = DEFAULT_PRODUCT_NAME
    tier: str = DEFAULT_TIER
    plan_type: str = "automation"
    amount_total: int | None = None
    currency: str = "usd"

    @classmethod
    def from_envelope(cls, envelope: StripeEnvelope) -> "CheckoutSessionCompleted":
        session = envelope.data_object
        metadata = session.get("metadata") or {}
        details = session.get("customer_details") or {}
        return cls(
            event_id=envelope.id,
            event_type=envelope.type,
            session_id=session["id"],
            customer_id=_ref_id(session.get("customer")),
            customer_email=session.get("customer_email") or details.get("email"),
            subscription_id=_ref_id(session.get("subscription")),
            product_name=metadata.get("productName") or DEFAULT_PRODUCT_NAME,
            tier=metadata.get("tier") or DEFAULT_TIER,
            plan_type=metadata.get("type") or "automation",
            amount_total=session.get("amount_total"),
            currency=session.get("currency") or "usd",
        )


class CheckoutSessionClosed(WebhookEvent):
    """``checkout.session.expired`` and ``async_payment_failed``."""

    kind: ClassVar[str] = "checkout_closed"
    event_types: ClassVar[tuple[str, ...]] = (
        "checkout.session.expired",
        "checkout.session.async_payment_failed",
    )

    session_id: str
    customer_email: str | None = None
    plan_type: str | None = None
    product_id: str | None = None

    @classmethod
    def from_envelope(cls, envelope: StripeEnvelope) -> "CheckoutSessionClosed":
        session = envelope.data_object
        metadata = session.get("metadata") or {}
        details = session.get("customer_details") or {}
        return cls(
            event_id=envelope.id,
            event_type=envelope.type,
            session_id=session["id"],
            customer_email=session.get("customer_email") or details.get("email"),
            plan_type=metadata.get("type"),
            product_id=metadata.get("productId"),
        )


class SubscriptionChanged(WebhookEvent):
    """``customer.subscription.created`` / ``updated`` / ``deleted``."""

    kind: ClassVar[str] = "subscription_changed"
    event_types: ClassVar[tuple[str, ...]] = (
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    )

    subscription_id: str
    action: Literal["created", "updated", "deleted"]
    status: str | None = None
    customer_id: str | None = None
    cancel_at_period_end: bool = False

    @classmethod
    def from_envelope(cls, envelope: StripeEnvelope) -> "SubscriptionChanged":
        sub = envelope.data_object
        return cls(
            event_id=envelope.id,
            event_type=envelope.type,
            subscription_id=sub["id"],
            action=envelope.type.rsplit(".", 1)[-1],
            status=sub.get("status"),
            customer_id=_ref_id(sub.get("customer")),
            cancel_at_period_end=bool(sub.get("cancel_at_period_end")),
        )


class InvoicePaid(WebhookEvent):
    """``invoice.paid``."""

    kind: ClassVar[str] = "invoice_paid"
    event_types: ClassVar[tuple[str, ...]] = ("invoice.paid",)

    invoice_id: str
    amount_paid: int = 0
    currency: str | None = None
    customer_email: str | None = None
    subscription_id: str | None = None

    @classmethod
    def from_envelope(cls, envelope: StripeEnvelope) -> "InvoicePaid":
        invoice = envelope.data_object
        return cls(
            event_id=envelope.id,
            event_type=envelope.type,
            invoice_id=invoice["id"],
            amount_paid=invoice.get("amount_paid") or 0,
            currency=invoice.get("currency"),
            customer_email=invoice.get("customer_email"),
            subscription_id=_ref_id(invoice.get("subscription")),
        )


class InvoicePaymentFailed(WebhookEvent):
    """``invoice.payment_failed``."""

    kind: ClassVar[str] = "invoice_payment_failed"
    event_types: ClassVar[tuple[str, ...]] = ("invoice.payment_failed",)

    invoice_id: str
    amount_due: int = 0
    customer_email: str | None = None
    subscription_id: str | None = None

    @classmethod
    def from_envelope(cls, envelope: StripeEnvelope) -> "InvoicePaymentFailed":
        invoice = envelope.data_object
        return cls(
            event_id=envelope.id,
            event_type=envelope.type,
            invoice_id=invoice["id"],
            amount_due=invoice.get("amount_due") or 0,
            customer_email=invoice.get("customer_email"),
            subscription_id=_ref_id(invoice.get("subscription")),
        )


class InvoiceIssued(WebhookEvent):
    """``invoice.created`` / ``invoice.finalized``."""

    kind: ClassVar[str] = "invoice_issued"
    event_types: ClassVar[tuple[str, ...]] = ("invoice.created", "invoice.finalized")

    invoice_id: str
    number: str | None = None
    amount_due: int = 0
    customer_email: str | None = None

    @classmethod
    def from_envelope(cls, envelope: StripeEnvelope) -> "InvoiceIssued":
        invoice = envelope.data_object
        return cls(
            event_id=envelope.id,
            event_type=envelope.type,
            invoice_id=invoice["id"],
            number=invoice.get("number"),
            amount_due=invoice.get("amount_due") or 0,
            customer_email=invoice.get("customer_email"),
        )


class UnhandledEvent(WebhookEvent):
    """Any event type without a dedicated variant."""

    kind: ClassVar[str] = "unhandled"


EVENT_VARIANTS: tuple[type[WebhookEvent], ...] = (
    CheckoutSessionCompleted,
    CheckoutSessionClosed,
    SubscriptionChanged,
    InvoicePaid,
    InvoicePaymentFailed,
    InvoiceIssued,
)

EVENT_KINDS: frozenset[str] = frozenset(
    [variant.kind for variant in EVENT_VARIANTS] + [UnhandledEvent.kind]
)

_VARIANT_BY_TYPE: dict[str, type[WebhookEvent]] = {
    event_type: variant
    for variant in EVENT_VARIANTS
    for event_type in variant.event_types
}


def parse_event(payload: bytes | str) -> WebhookEvent:
    """Parse a verified webhook payload into its typed variant.

    Raises ``ValueError`` when the payload is not JSON or not a Stripe event
    envelope. A known event type missing the fields its variant requires is
    logged and falls back to :class:`UnhandledEvent`.
    """
    try:
        envelope = StripeEnvelope.model_validate_json(payload)
    except ValidationError as e:
        raise ValueError(f"Malformed Stripe event: {e.error_count()} error(s)") from e

    variant = _VARIANT_BY_TYPE.get(envelope.type, UnhandledEvent)
    try:
        return variant.from_envelope(envelope)
    except (KeyError, ValidationError) as e:
        logger.warning(
            "Malformed %s event %s (%s); treating as unhandled",
            envelope.type,
            envelope.id,
            e,
        )
        return UnhandledEvent.from_envelope(envelope)
