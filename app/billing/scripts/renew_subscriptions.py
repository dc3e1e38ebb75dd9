"""Run the subscription renewal sweep once, outside the HTTP cron endpoint.

For schedulers that run commands rather than call URLs:
    python -m app.billing.scripts.renew_subscriptions
    python -m app.billing.scripts.renew_subscriptions --now 2026-01-01T00:00:00

Exits non-zero if the query fails or any subscription could not be updated.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from app.database import async_session_factory, engine
from app.services.renewal_service import RenewalQueryError, renew_expired_subscriptions


def _parse_now(value: str) -> datetime:
    """Parse an ISO timestamp into naive UTC."""
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


async def main(now: datetime) -> int:
    try:
        summary = await renew_expired_subscriptions(async_session_factory, now)
    except RenewalQueryError as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        await engine.dispose()

    print(f"{summary.message} ({summary.matched} matched, {summary.skipped} skipped)")
    for sub_id in summary.failed_ids:
        print(f"  failed: {sub_id}")
    return 1 if summary.failed_ids else 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--now",
        type=_parse_now,
        default=None,
        help="Treat this ISO timestamp as the current time (default: now, UTC)",
    )
    args = parser.parse_args()
    now = args.now or datetime.now(timezone.utc).replace(tzinfo=None)
    sys.exit(asyncio.run(main(now)))
