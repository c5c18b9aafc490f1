"""Event classification — Stripe event type to reconciliation action."""

import enum
import logging

from scholara.billing.signature import VerifiedEvent

logger = logging.getLogger(__name__)


class ReconciliationAction(str, enum.Enum):
    ACTIVATE = "activate"
    UPDATE = "update"
    CANCEL = "cancel"
    RENEW = "renew"
    MARK_PAST_DUE = "mark_past_due"
    IGNORE = "ignore"


class StripeEventType(str, enum.Enum):
    """Stripe event types the reconciler acts on."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


EVENT_ACTIONS: dict[StripeEventType, ReconciliationAction] = {
    StripeEventType.CHECKOUT_SESSION_COMPLETED: ReconciliationAction.ACTIVATE,
    StripeEventType.SUBSCRIPTION_CREATED: ReconciliationAction.UPDATE,
    StripeEventType.SUBSCRIPTION_UPDATED: ReconciliationAction.UPDATE,
    StripeEventType.SUBSCRIPTION_DELETED: ReconciliationAction.CANCEL,
    StripeEventType.INVOICE_PAID: ReconciliationAction.RENEW,
    StripeEventType.INVOICE_PAYMENT_FAILED: ReconciliationAction.MARK_PAST_DUE,
}

_unmapped = set(StripeEventType) - EVENT_ACTIONS.keys()
if _unmapped:
    raise RuntimeError(f"Stripe event types without an action: {sorted(t.value for t in _unmapped)}")


def classify(event: VerifiedEvent) -> ReconciliationAction:
    """Map an event to its action. Unknown types are ignored, never an error."""
    try:
        event_type = StripeEventType(event.type)
    except ValueError:
        logger.debug("Unhandled webhook event type: %s", event.type)
        return ReconciliationAction.IGNORE
    return EVENT_ACTIONS[event_type]
