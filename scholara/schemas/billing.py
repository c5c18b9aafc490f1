"""Pydantic v2 response schemas for billing endpoints."""

from pydantic import BaseModel


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe for every accepted delivery."""

    received: bool = True
