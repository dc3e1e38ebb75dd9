"""Billing period arithmetic — calendar month/year steps."""

import calendar
from datetime import datetime

from app.models.subscription import BILLING_INTERVAL_YEAR


def add_months(moment: datetime, months: int) -> datetime:
    """Shift ``moment`` by whole calendar months.

    The day of month is clamped to the last day of the target month, so
    Jan 31 + 1 month is Feb 28 (or Feb 29 in a leap year). Time of day and
    tzinfo are preserved.
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def interval_months(interval: str | None) -> int:
    """Number of calendar months in one billing interval.

    ``"year"`` is twelve; every other value, including ``"month"``, None and
    unknown intervals, is one.
    """
    return 12 if interval == BILLING_INTERVAL_YEAR else 1


def advance(period_end: datetime, interval: str | None) -> datetime:
    """Return the end of the period that follows one ending at ``period_end``."""
    return add_months(period_end, interval_months(interval))


def next_period(
    period_end: datetime, interval: str | None, now: datetime | None = None
) -> tuple[datetime, datetime]:
    """Compute the (start, end) of the renewed billing period.

    Periods are contiguous: the new start is the previous end. When ``now``
    is given and the subscription has fallen more than one interval behind,
    periods are stepped forward until the end is strictly after ``now``.
    Every boundary is measured from ``period_end`` so a clamped day
    (Jan 31 -> Feb 29) does not drift the later boundaries.
    """
    step = interval_months(interval)
    periods = 1
    end = add_months(period_end, step)
    if now is not None:
        while end <= now:
            periods += 1
            end = add_months(period_end, step * periods)
    start = add_months(period_end, step * (periods - 1))
    return start, end
