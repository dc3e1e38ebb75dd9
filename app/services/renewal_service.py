"""Subscription renewal sweep — roll expired billing periods forward."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.billing.periods import next_period
from app.models.subscription import Subscription

logger = logging.getLogger(__name__)


class RenewalQueryError(Exception):
    """The store could not be queried for subscriptions due for renewal."""


@dataclass(frozen=True)
class DueSubscription:
    """Snapshot of a subscription row selected for renewal."""

    id: uuid.UUID
    product_name: str
    billing_interval: str
    current_period_end: datetime


@dataclass
class RenewalSummary:
    """Outcome of one sweep."""

    timestamp: datetime
    matched: int = 0
    renewed: int = 0
    skipped: int = 0
    failed_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.matched == 0:
            return "No subscriptions need renewal"
        return f"Renewed {self.renewed} subscription(s)"


async def find_due_subscriptions(
    db: AsyncSession, now: datetime
) -> list[DueSubscription]:
    """Active, auto-renewing subscriptions whose period ended at or before ``now``."""
    result = await db.execute(
        select(
            Subscription.id,
            Subscription.product_name,
            Subscription.billing_interval,
            Subscription.current_period_end,
        )
        .where(
            Subscription.status == "active",
            Subscription.cancel_at_period_end.is_(False),
            Subscription.current_period_end <= now,
        )
        .order_by(Subscription.current_period_end)
    )
    return [DueSubscription(*row) for row in result.all()]


async def apply_renewal(
    db: AsyncSession, due: DueSubscription, now: datetime
) -> datetime | None:
    """Write the next billing period for one subscription.

    The update only matches while ``current_period_end`` still holds the value
    read by the sweep, so two overlapping sweeps cannot both renew the same
    period. Returns the new period end, or None if another run got there first.
    """
    period_start, period_end = next_period(
        due.current_period_end, due.billing_interval, now
    )
    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.id == due.id,
            Subscription.current_period_end == due.current_period_end,
        )
        .values(
            current_period_start=period_start,
            current_period_end=period_end,
            updated_at=now,
        )
    )
    if result.rowcount == 0:
        return None
    return period_end


async def renew_expired_subscriptions(
    session_factory: async_sessionmaker[AsyncSession], now: datetime
) -> RenewalSummary:
    """Renew every subscription whose billing period has elapsed.

    Each subscription is updated in its own transaction. A failure on one
    record is logged and counted in ``failed_ids``; the rest of the batch
    still runs. Only the initial query failing aborts the sweep, as
    :class:`RenewalQueryError`.
    """
    summary = RenewalSummary(timestamp=now)
    logger.info("Running subscription period renewal check (now=%s)", now.isoformat())

    try:
        async with session_factory() as db:
            due_subscriptions = await find_due_subscriptions(db, now)
    except SQLAlchemyError as e:
        logger.exception("Error fetching subscriptions due for renewal")
        raise RenewalQueryError("Failed to fetch subscriptions") from e

    summary.matched = len(due_subscriptions)
    if not due_subscriptions:
        logger.info("No subscriptions need renewal")
        return summary

    logger.info("Found %d subscription(s) to renew", summary.matched)

    for due in due_subscriptions:
        try:
            async with session_factory() as db, db.begin():
                new_end = await apply_renewal(db, due, now)
        except Exception:
            logger.exception("Error updating subscription %s", due.id)
            summary.failed_ids.append(due.id)
            continue

        if new_end is None:
            summary.skipped += 1
            logger.info("Subscription %s already renewed by another run, skipping", due.id)
            continue

        summary.renewed += 1
        logger.info(
            "Renewed %r (%s) - new end: %s",
            due.product_name,
            due.id,
            new_end.isoformat(),
        )

    logger.info(
        "Renewed %d of %d subscription(s) (%d skipped, %d failed)",
        summary.renewed,
        summary.matched,
        summary.skipped,
        len(summary.failed_ids),
    )
    return summary
