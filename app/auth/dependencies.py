"""FastAPI authorization dependencies for scheduler-triggered routes."""

import logging
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Optional bearer; returns None if no token provided
_bearer_scheme_optional = HTTPBearer(auto_error=False)


def is_scheduler_request(request: Request, marker: str) -> bool:
    """True when the User-Agent carries the scheduler's marker (e.g. ``vercel-cron``)."""
    user_agent = request.headers.get("user-agent", "")
    return bool(marker) and marker in user_agent


def is_valid_cron_token(token: str | None, cron_secret: str) -> bool:
    """Constant-time comparison against the shared cron secret.

    An empty secret never matches, so an unconfigured deployment cannot be
    unlocked with an empty bearer token.
    """
    if not cron_secret or not token:
        return False
    return secrets.compare_digest(token.encode(), cron_secret.encode())


async def require_cron_caller(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme_optional),
    settings: Settings = Depends(get_settings),
) -> None:
    """Allow the platform scheduler or a caller holding the cron secret.

    Raises:
        HTTPException 401: Neither the scheduler marker nor a valid token is present.
    """
    if is_scheduler_request(request, settings.cron_user_agent_marker):
        return

    token = credentials.credentials if credentials else None
    if is_valid_cron_token(token, settings.cron_secret):
        return

    logger.warning(
        "Rejected cron call from %s", request.client.host if request.client else "unknown"
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
