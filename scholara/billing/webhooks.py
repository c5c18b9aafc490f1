"""Stripe webhook processing — resolve the subscriber, then reconcile state."""

import logging
from collections.abc import Callable
from datetime import datetime

from scholara.billing.events import ReconciliationAction
from scholara.billing.plans import PlanCatalog
from scholara.billing.reconciler import PriceFetcher, ReconciliationOutcome, StateReconciler
from scholara.billing.resolver import EmailFetcher, SubscriberResolver, customer_ref
from scholara.billing.signature import VerifiedEvent
from scholara.billing.stripe_client import retrieve_checkout_price_id, retrieve_customer_email
from scholara.services.profile_service import ProfileGateway, utcnow

logger = logging.getLogger(__name__)


async def process_event(
    gateway: ProfileGateway,
    event: VerifiedEvent,
    action: ReconciliationAction,
    catalog: PlanCatalog,
    clock: Callable[[], datetime] = utcnow,
    fetch_customer_email: EmailFetcher = retrieve_customer_email,
    fetch_checkout_price: PriceFetcher = retrieve_checkout_price_id,
) -> ReconciliationOutcome:
    """Apply one verified, classified event against fresh storage state.

    An unresolvable subscriber is logged and reported as ``UNRESOLVED`` so the
    caller can acknowledge it: redelivery cannot create a missing mapping.
    Persistence failures propagate as ``PersistenceError``.
    """
    if action is ReconciliationAction.IGNORE:
        return ReconciliationOutcome.IGNORED

    data_object = event.data_object
    resolver = SubscriberResolver(gateway, fetch_customer_email=fetch_customer_email)
    profile = await resolver.resolve(action, data_object)
    if profile is None:
        logger.warning(
            "No profile found for %s event %s (object %s, customer %s)",
            event.type,
            event.id,
            data_object.get("id"),
            customer_ref(data_object),
        )
        return ReconciliationOutcome.UNRESOLVED

    reconciler = StateReconciler(
        gateway,
        catalog,
        clock=clock,
        fetch_checkout_price=fetch_checkout_price,
    )
    outcome = await reconciler.apply(action, profile, data_object)
    logger.info(
        "Webhook %s (%s) for profile %s: %s",
        event.id,
        event.type,
        profile.id,
        outcome.value,
    )
    return outcome
