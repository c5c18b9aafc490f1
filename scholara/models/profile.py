"""Profile model — account record carrying the Stripe entitlement state."""

import enum
from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from scholara.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PlanTier(str, enum.Enum):
    """Entitlement level granted to an account."""

    FREE = "free"
    PRO = "pro"
    PREMIUM = "premium"


class SubscriptionStatus(str, enum.Enum):
    """Internal subscription status (Stripe statuses are mapped onto these)."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Profile(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Scholara account profile.

    Rows are created at signup by the auth provider and deleted by the account
    deletion flow; billing code only ever updates them.
    """

    __tablename__ = "profiles"

    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)

    # Plan & status (plain strings holding enum values)
    subscription_plan: Mapped[str] = mapped_column(
        String(50), nullable=False, default=PlanTier.FREE.value, server_default="free"
    )
    subscription_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=SubscriptionStatus.INACTIVE.value,
        server_default="inactive",
    )

    # Entitlement window (naive UTC)
    subscription_start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    subscription_end_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Stripe identifiers
    stripe_customer_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Profile id={self.id} email={self.email!r} "
            f"plan={self.subscription_plan!r} status={self.subscription_status!r}>"
        )
