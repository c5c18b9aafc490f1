"""Subscription state reconciliation — apply one Stripe event to a profile.

Every transition is computed from the stored profile plus the event payload
and written back as a single partial update, so redelivered or reordered
events converge instead of compounding:

- activate       checkout completed: grant plan, open a fresh window
- update         subscription created/updated: sync plan and status only
- cancel         subscription deleted: back to free
- renew          invoice paid: extend from max(now, current end)
- mark_past_due  invoice payment failed: status only
"""

import enum
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from scholara.billing.events import ReconciliationAction
from scholara.billing.plans import PlanCatalog, add_billing_period
from scholara.billing.stripe_client import retrieve_checkout_price_id
from scholara.models.profile import PlanTier, Profile, SubscriptionStatus
from scholara.services.profile_service import ProfileGateway, utcnow

logger = logging.getLogger(__name__)

PriceFetcher = Callable[[str], Awaitable[str | None]]

# Stripe subscription.status -> internal status
PROVIDER_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete": SubscriptionStatus.INACTIVE,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}

# A checkout redelivered onto one of these statuses starts a new window
_CLOSED_STATUSES = frozenset(
    {SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value}
)


class ReconciliationOutcome(str, enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNRESOLVED = "unresolved"


def _price_id(price: Any) -> str | None:
    if isinstance(price, dict):
        return price.get("id")
    return price or None


def _first_line(container: Any) -> dict[str, Any] | None:
    """First element of a Stripe list object (``{"data": [...]}``)."""
    if not isinstance(container, dict):
        return None
    data = container.get("data") or []
    return data[0] if data and isinstance(data[0], dict) else None


def subscription_price_id(subscription: dict[str, Any]) -> str | None:
    """Price of the first subscription item."""
    item = _first_line(subscription.get("items"))
    return _price_id(item.get("price")) if item else None


def invoice_price_id(invoice: dict[str, Any]) -> str | None:
    """Price of the first invoice line.

    Older API versions expose ``line.price``; 2025-03-31 (basil) and later
    moved it to ``line.pricing.price_details.price``.
    """
    line = _first_line(invoice.get("lines"))
    if line is None:
        return None
    price_id = _price_id(line.get("price"))
    if price_id:
        return price_id
    details = (line.get("pricing") or {}).get("price_details") or {}
    return _price_id(details.get("price"))


class StateReconciler:
    def __init__(
        self,
        gateway: ProfileGateway,
        catalog: PlanCatalog,
        clock: Callable[[], datetime] = utcnow,
        fetch_checkout_price: PriceFetcher = retrieve_checkout_price_id,
    ) -> None:
        self.gateway = gateway
        self.catalog = catalog
        self.clock = clock
        self.fetch_checkout_price = fetch_checkout_price
        self._transitions = {
            ReconciliationAction.ACTIVATE: self._activate,
            ReconciliationAction.UPDATE: self._update,
            ReconciliationAction.CANCEL: self._cancel,
            ReconciliationAction.RENEW: self._renew,
            ReconciliationAction.MARK_PAST_DUE: self._mark_past_due,
        }

    async def apply(
        self,
        action: ReconciliationAction,
        profile: Profile,
        data_object: dict[str, Any],
    ) -> ReconciliationOutcome:
        """Compute the new state for ``profile`` and persist it."""
        transition = self._transitions[action]
        now = self.clock()
        fields = await transition(profile, data_object, now)
        if fields is None:
            return ReconciliationOutcome.DUPLICATE

        fields["updated_at"] = now
        if not await self.gateway.update(profile.id, fields):
            return ReconciliationOutcome.UNRESOLVED

        logger.info(
            "Applied %s to profile %s: %s",
            action.value,
            profile.id,
            {k: v for k, v in fields.items() if k != "updated_at"},
        )
        return ReconciliationOutcome.APPLIED

    async def _checkout_price_id(self, session: dict[str, Any]) -> str | None:
        item = _first_line(session.get("line_items"))
        if item:
            return _price_id(item.get("price"))
        session_id = session.get("id")
        if not session_id:
            return None
        return await self.fetch_checkout_price(session_id)

    async def _activate(
        self, profile: Profile, session: dict[str, Any], now: datetime
    ) -> dict[str, Any] | None:
        subscription_id = session.get("subscription")
        if isinstance(subscription_id, dict):
            subscription_id = subscription_id.get("id")

        if (
            subscription_id
            and profile.stripe_subscription_id == subscription_id
            and profile.subscription_status not in _CLOSED_STATUSES
        ):
            logger.info(
                "Checkout %s already applied to profile %s (subscription %s), skipping",
                session.get("id"),
                profile.id,
                subscription_id,
            )
            return None

        price_id = await self._checkout_price_id(session)
        plan = self.catalog.plan_for(price_id)
        period = self.catalog.billing_period_for(price_id)
        if price_id not in self.catalog:
            logger.warning("Unknown price ID %s in checkout %s", price_id, session.get("id"))

        fields: dict[str, Any] = {
            "subscription_plan": plan.value,
            "subscription_status": SubscriptionStatus.ACTIVE.value,
            "subscription_start_date": now,
            "subscription_end_date": add_billing_period(now, period),
            "stripe_subscription_id": subscription_id,
        }
        customer_id = session.get("customer")
        if isinstance(customer_id, dict):
            customer_id = customer_id.get("id")
        if customer_id:
            fields["stripe_customer_id"] = customer_id
        return fields

    async def _update(
        self, profile: Profile, subscription: dict[str, Any], now: datetime
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}

        price_id = subscription_price_id(subscription)
        if price_id:
            fields["subscription_plan"] = self.catalog.plan_for(price_id).value

        provider_status = subscription.get("status")
        status = PROVIDER_STATUS_MAP.get(provider_status)
        if status is not None:
            fields["subscription_status"] = status.value
        else:
            logger.warning(
                "Unmapped Stripe subscription status %r for profile %s, keeping %s",
                provider_status,
                profile.id,
                profile.subscription_status,
            )
        return fields

    async def _cancel(
        self, profile: Profile, subscription: dict[str, Any], now: datetime
    ) -> dict[str, Any]:
        return {
            "subscription_plan": PlanTier.FREE.value,
            "subscription_status": SubscriptionStatus.CANCELLED.value,
        }

    async def _renew(
        self, profile: Profile, invoice: dict[str, Any], now: datetime
    ) -> dict[str, Any]:
        price_id = invoice_price_id(invoice)
        period = self.catalog.billing_period_for(price_id)

        # The stored end date never moves backward. Extending a live window keeps
        # the day of month the subscription started on; a lapsed one restarts now.
        current_end = profile.subscription_end_date
        start = profile.subscription_start_date
        if current_end and current_end >= now:
            anchor_day = start.day if start else None
            end = add_billing_period(current_end, period, anchor_day=anchor_day)
        else:
            end = add_billing_period(now, period)

        fields: dict[str, Any] = {
            "subscription_status": SubscriptionStatus.ACTIVE.value,
            "subscription_end_date": end,
        }
        if price_id:
            fields["subscription_plan"] = self.catalog.plan_for(price_id).value
        return fields

    async def _mark_past_due(
        self, profile: Profile, invoice: dict[str, Any], now: datetime
    ) -> dict[str, Any]:
        return {"subscription_status": SubscriptionStatus.PAST_DUE.value}
