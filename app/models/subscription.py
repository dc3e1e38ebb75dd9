"""Subscription model — billing period state per customer subscription."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Integer, String, false
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

BILLING_INTERVAL_MONTH = "month"
BILLING_INTERVAL_YEAR = "year"

DEFAULT_PRODUCT_NAME = "OASIS AI Automation"
DEFAULT_TIER = "professional"


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Tracks a customer's Stripe subscription and its current billing period."""

    __tablename__ = "subscriptions"

    # Users live in the hosted auth service; no foreign key
    user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)

    # Stripe identifiers
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    # Product
    product_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default=DEFAULT_PRODUCT_NAME,
        server_default=DEFAULT_PRODUCT_NAME,
    )
    tier: Mapped[str] = mapped_column(
        String(50), nullable=False, default=DEFAULT_TIER, server_default=DEFAULT_TIER
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="usd", server_default="usd")

    # Plan & status
    billing_interval: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BILLING_INTERVAL_MONTH,
        server_default=BILLING_INTERVAL_MONTH,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active", server_default="active")

    # Billing period (naive UTC)
    current_period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(nullable=True, index=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, product={self.product_name!r}, "
            f"interval={self.billing_interval}, status={self.status})>"
        )
