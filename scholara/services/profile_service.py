"""Profile service — persistence gateway for billing state on account profiles."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scholara.models.profile import Profile

logger = logging.getLogger(__name__)

# Columns the billing flow is allowed to write
UPDATABLE_FIELDS = frozenset(
    {
        "subscription_plan",
        "subscription_status",
        "subscription_start_date",
        "subscription_end_date",
        "stripe_customer_id",
        "stripe_subscription_id",
        "updated_at",
    }
)


def utcnow() -> datetime:
    """Current time as naive UTC, matching the timestamp columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PersistenceError(Exception):
    """Storage failed in a way a webhook redelivery may fix."""


class ProfileGateway:
    """Reads and writes profile rows inside one session.

    Every call queries the database; nothing is cached between events.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _first(self, stmt) -> Profile | None:
        try:
            result = await self.db.execute(stmt.limit(1))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Profile lookup failed: {e}") from e
        return result.scalars().first()

    async def find_by_client_ref(self, client_ref: str) -> Profile | None:
        """Look up a profile by the account ID attached at checkout."""
        try:
            account_id = uuid.UUID(str(client_ref))
        except ValueError:
            logger.warning("Ignoring malformed client reference %r", client_ref)
            return None
        return await self._first(select(Profile).where(Profile.id == account_id))

    async def find_by_email(self, email: str) -> Profile | None:
        normalized = email.strip().lower()
        if not normalized:
            return None
        return await self._first(
            select(Profile)
            .where(func.lower(Profile.email) == normalized)
            .order_by(Profile.created_at)
        )

    async def find_by_customer_ref(self, stripe_customer_id: str) -> Profile | None:
        return await self._first(
            select(Profile).where(Profile.stripe_customer_id == stripe_customer_id)
        )

    async def find_by_subscription_ref(self, stripe_subscription_id: str) -> Profile | None:
        return await self._first(
            select(Profile).where(Profile.stripe_subscription_id == stripe_subscription_id)
        )

    async def update(self, account_id: uuid.UUID, fields: dict[str, Any]) -> bool:
        """Apply a partial update as a single UPDATE statement.

        Returns False when no row matched (the account was deleted between
        lookup and write).
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update profile fields: {sorted(unknown)}")

        values = dict(fields)
        values.setdefault("updated_at", utcnow())

        try:
            result = await self.db.execute(
                update(Profile).where(Profile.id == account_id).values(**values)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Profile update failed for {account_id}: {e}") from e

        if result.rowcount == 0:
            logger.warning("Profile %s disappeared before update", account_id)
            return False

        logger.debug("Updated profile %s: %s", account_id, sorted(values))
        return True
