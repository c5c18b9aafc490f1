"""Async Stripe API wrapper for lookups the webhook payloads do not carry."""

import logging

import stripe
from stripe import StripeClient

from scholara.config import settings

logger = logging.getLogger(__name__)


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(),
    )


async def retrieve_customer_email(customer_id: str) -> str | None:
    """Fetch the email Stripe holds for a customer (None for deleted customers)."""
    client = get_stripe_client()
    customer = await client.v1.customers.retrieve_async(customer_id)
    if getattr(customer, "deleted", False):
        logger.info("Stripe customer %s is deleted, no email available", customer_id)
        return None
    return getattr(customer, "email", None)


async def retrieve_checkout_price_id(session_id: str) -> str | None:
    """Return the price ID of the first line item of a Checkout Session."""
    client = get_stripe_client()
    line_items = await client.v1.checkout.sessions.line_items.list_async(
        session_id, params={"limit": 1}
    )
    if not line_items.data:
        return None
    price = line_items.data[0].price
    return price.id if price else None
