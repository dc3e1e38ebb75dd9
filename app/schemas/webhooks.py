"""Response schema for the Stripe webhook endpoint."""

from pydantic import BaseModel


class WebhookAck(BaseModel):
    """Acknowledgement returned for every verified event."""

    received: bool = True
