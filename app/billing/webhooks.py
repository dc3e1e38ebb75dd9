"""Stripe webhook event handlers — log each event and run its extension hooks.

Handlers only log. Business logic (persisting orders, linking subscriptions,
recording invoices) plugs in through :func:`register_hook`, keyed by the
event kind, without touching the dispatcher.
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from app.billing.events import (
    EVENT_KINDS,
    CheckoutSessionClosed,
    CheckoutSessionCompleted,
    InvoiceIssued,
    InvoicePaid,
    InvoicePaymentFailed,
    SubscriptionChanged,
    UnhandledEvent,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

WebhookHook = Callable[[WebhookEvent], Awaitable[None]]

_hooks: dict[str, list[WebhookHook]] = defaultdict(list)


def register_hook(kind: str, hook: WebhookHook) -> None:
    """Attach an async side effect to an event kind (e.g. ``"invoice_paid"``)."""
    if kind not in EVENT_KINDS:
        raise ValueError(f"Unknown webhook event kind: {kind}")
    if kind == UnhandledEvent.kind:
        raise ValueError("Unhandled events are logged only and take no hooks")
    _hooks[kind].append(hook)


def clear_hooks() -> None:
    """Remove every registered hook."""
    _hooks.clear()


def _format_amount(cents: int | None, currency: str | None) -> str:
    if cents is None:
        return "N/A"
    return f"{cents / 100:.2f} {(currency or 'usd').upper()}"


def handle_checkout_session_completed(event: CheckoutSessionCompleted) -> None:
    """Handle checkout.session.completed by logging the order metadata."""
    logger.info(
        "Checkout completed: session=%s product=%r tier=%s customer=%s amount=%s",
        event.session_id,
        event.product_name,
        event.tier,
        event.customer_email or event.customer_id,
        _format_amount(event.amount_total, event.currency),
    )


def handle_checkout_session_closed(event: CheckoutSessionClosed) -> None:
    """Handle expired or failed checkout sessions."""
    logger.info(
        "Checkout %s: session=%s customer=%s type=%s",
        event.event_type.rsplit(".", 1)[-1],
        event.session_id,
        event.customer_email,
        event.plan_type,
    )


def handle_subscription_changed(event: SubscriptionChanged) -> None:
    """Handle customer.subscription.created/updated/deleted."""
    logger.info(
        "Subscription %s: %s (status=%s, cancel_at_period_end=%s)",
        event.action,
        event.subscription_id,
        event.status,
        event.cancel_at_period_end,
    )


def handle_invoice_paid(event: InvoicePaid) -> None:
    """Handle invoice.paid."""
    logger.info(
        "Invoice paid: %s amount=%s",
        event.invoice_id,
        _format_amount(event.amount_paid, event.currency),
    )


def handle_invoice_payment_failed(event: InvoicePaymentFailed) -> None:
    """Handle invoice.payment_failed."""
    logger.warning(
        "Payment failed: invoice %s (payer %s)",
        event.invoice_id,
        event.customer_email,
    )


def handle_invoice_issued(event: InvoiceIssued) -> None:
    """Handle invoice.created/finalized."""
    logger.info("Invoice %s: %s", event.event_type.rsplit(".", 1)[-1], event.invoice_id)


def handle_unhandled(event: UnhandledEvent) -> None:
    """Unknown event types are acknowledged without side effects."""
    logger.info("Unhandled event type: %s (id=%s)", event.event_type, event.event_id)


# Map event kinds to handler functions
EVENT_HANDLERS: dict[str, Callable[..., None]] = {
    CheckoutSessionCompleted.kind: handle_checkout_session_completed,
    CheckoutSessionClosed.kind: handle_checkout_session_closed,
    SubscriptionChanged.kind: handle_subscription_changed,
    InvoicePaid.kind: handle_invoice_paid,
    InvoicePaymentFailed.kind: handle_invoice_payment_failed,
    InvoiceIssued.kind: handle_invoice_issued,
    UnhandledEvent.kind: handle_unhandled,
}


async def dispatch_event(event: WebhookEvent) -> None:
    """Log the event through its handler, then run the hooks for its kind.

    Hook exceptions propagate so the caller can answer non-2xx and let
    Stripe redeliver.
    """
    EVENT_HANDLERS[event.kind](event)
    for hook in _hooks.get(event.kind, ()):
        await hook(event)
