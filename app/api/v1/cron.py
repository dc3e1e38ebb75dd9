"""Scheduler-triggered endpoints — daily subscription period renewal."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth.dependencies import require_cron_caller
from app.database import get_session_factory
from app.schemas.cron import RenewalResponse
from app.services.renewal_service import RenewalQueryError, renew_expired_subscriptions

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_caller)],
)


def utcnow() -> datetime:
    """Current time as naive UTC, matching the DB columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@router.api_route(
    "/renew-subscriptions",
    methods=["GET", "POST"],
    response_model=RenewalResponse,
)
async def renew_subscriptions(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    now: datetime = Depends(utcnow),
) -> RenewalResponse:
    """Roll forward every active subscription whose billing period has ended."""
    try:
        summary = await renew_expired_subscriptions(session_factory, now)
    except RenewalQueryError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch subscriptions",
        ) from e

    return RenewalResponse(
        success=True,
        message=summary.message,
        renewed=summary.renewed,
        matched=summary.matched,
        timestamp=summary.timestamp,
    )
