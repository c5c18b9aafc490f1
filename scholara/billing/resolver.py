"""Subscriber resolution — find the profile an event is about.

Stripe payloads identify the subscriber differently depending on the event:
checkout sessions carry our own ``client_reference_id`` and usually an email,
while subscription and invoice objects only carry Stripe references. The
resolver tries an ordered list of strategies per action and stops at the
first match.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import stripe

from scholara.billing.events import ReconciliationAction
from scholara.billing.stripe_client import retrieve_customer_email
from scholara.models.profile import Profile
from scholara.services.profile_service import ProfileGateway

logger = logging.getLogger(__name__)

EmailFetcher = Callable[[str], Awaitable[str | None]]
Strategy = Callable[[dict[str, Any]], Awaitable[Profile | None]]


def payload_emails(data_object: dict[str, Any]) -> list[str]:
    """Candidate emails in priority order: top-level, then customer_details."""
    emails = []
    top_level = data_object.get("customer_email")
    if top_level:
        emails.append(top_level)
    details = data_object.get("customer_details") or {}
    nested = details.get("email") if isinstance(details, dict) else None
    if nested and nested not in emails:
        emails.append(nested)
    return emails


def subscription_ref(data_object: dict[str, Any]) -> str | None:
    """Stripe subscription ID on an invoice (``subscription``) or subscription (``id``)."""
    ref = data_object.get("subscription")
    if isinstance(ref, dict):
        ref = ref.get("id")
    if ref:
        return ref
    # Invoices on API 2025-03-31 (basil) and later nest it under parent
    parent = data_object.get("parent") or {}
    details = parent.get("subscription_details") if isinstance(parent, dict) else None
    if isinstance(details, dict) and details.get("subscription"):
        return details["subscription"]
    if data_object.get("object") == "subscription":
        return data_object.get("id")
    return None


def customer_ref(data_object: dict[str, Any]) -> str | None:
    ref = data_object.get("customer")
    if isinstance(ref, dict):
        ref = ref.get("id")
    return ref or None


class SubscriberResolver:
    def __init__(
        self,
        gateway: ProfileGateway,
        fetch_customer_email: EmailFetcher = retrieve_customer_email,
    ) -> None:
        self.gateway = gateway
        self.fetch_customer_email = fetch_customer_email
        self._strategies: dict[ReconciliationAction, list[tuple[str, Strategy]]] = {
            ReconciliationAction.ACTIVATE: [
                ("client_reference", self._by_client_reference),
                ("email", self._by_email),
                ("customer", self._by_customer),
            ],
        }
        self._default_strategies: list[tuple[str, Strategy]] = [
            ("customer", self._by_customer),
            ("subscription", self._by_subscription),
        ]

    async def resolve(
        self, action: ReconciliationAction, data_object: dict[str, Any]
    ) -> Profile | None:
        """Return the matching profile, or None when no strategy matches."""
        for name, strategy in self._strategies.get(action, self._default_strategies):
            profile = await strategy(data_object)
            if profile is not None:
                logger.debug("Resolved %s event to profile %s via %s", action.value, profile.id, name)
                return profile
        return None

    async def _by_client_reference(self, data_object: dict[str, Any]) -> Profile | None:
        client_ref = data_object.get("client_reference_id")
        if not client_ref:
            return None
        return await self.gateway.find_by_client_ref(client_ref)

    async def _by_email(self, data_object: dict[str, Any]) -> Profile | None:
        emails = payload_emails(data_object)
        if not emails:
            fetched = await self._fetch_email(customer_ref(data_object))
            if fetched:
                emails.append(fetched)

        for email in emails:
            profile = await self.gateway.find_by_email(email)
            if profile is not None:
                return profile
        return None

    async def _fetch_email(self, stripe_customer_id: str | None) -> str | None:
        if not stripe_customer_id:
            return None
        try:
            return await self.fetch_customer_email(stripe_customer_id)
        except stripe.StripeError as e:
            logger.warning(
                "Could not fetch email for Stripe customer %s: %s", stripe_customer_id, e
            )
            return None

    async def _by_customer(self, data_object: dict[str, Any]) -> Profile | None:
        ref = customer_ref(data_object)
        if not ref:
            return None
        return await self.gateway.find_by_customer_ref(ref)

    async def _by_subscription(self, data_object: dict[str, Any]) -> Profile | None:
        ref = subscription_ref(data_object)
        if not ref:
            return None
        return await self.gateway.find_by_subscription_ref(ref)
