"""Response schemas for scheduler-triggered endpoints."""

from datetime import datetime

from pydantic import BaseModel


class RenewalResponse(BaseModel):
    """Summary of a subscription renewal sweep."""

    success: bool
    message: str
    renewed: int
    matched: int
    timestamp: datetime
