"""Stripe webhook endpoint — receives events and reconciles account entitlements."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scholara.api.deps import get_plan_catalog, get_session_factory
from scholara.billing.events import ReconciliationAction, classify
from scholara.billing.plans import PlanCatalog
from scholara.billing.signature import SignatureError, verify
from scholara.billing.webhooks import process_event
from scholara.config import settings
from scholara.schemas.billing import WebhookAck
from scholara.services.profile_service import ProfileGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    catalog: PlanCatalog = Depends(get_plan_catalog),
) -> WebhookAck:
    """Receive and process Stripe webhook events."""
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    # 2. Verify signature: nothing below runs for an unauthenticated payload
    try:
        event = verify(
            payload,
            sig_header,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance,
        )
    except SignatureError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {e}",
        ) from e

    # 3. Classify: ignored events are acknowledged without touching storage
    action = classify(event)
    if action is ReconciliationAction.IGNORE:
        return WebhookAck()

    logger.info("Processing webhook event: %s (id=%s)", event.type, event.id)

    # 4. Create own DB session (webhook has no auth context)
    async with session_factory() as db:
        try:
            await process_event(ProfileGateway(db), event, action, catalog)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.exception("Error processing webhook event %s", event.id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Webhook processing failed",
            ) from e

    return WebhookAck()
