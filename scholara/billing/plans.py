"""Plan catalog — Stripe price IDs mapped to plan tier and billing period."""

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from dateutil.relativedelta import relativedelta

from scholara.config import Settings
from scholara.models.profile import PlanTier


class BillingPeriod(str, enum.Enum):
    """Cadence an entitlement is purchased for."""

    MONTHLY = "monthly"
    SEMESTER = "semester"

    @property
    def months(self) -> int:
        return 1 if self is BillingPeriod.MONTHLY else 6


@dataclass(frozen=True)
class PriceEntry:
    """What a single Stripe price grants."""

    plan: PlanTier
    period: BillingPeriod


@dataclass(frozen=True)
class PlanCatalog:
    """Immutable price-to-plan table.

    Lookups are total: a price that is missing from the table (or ``None``)
    resolves to the free tier on a monthly period, so an unrecognised price
    never blocks webhook processing.
    """

    prices: Mapping[str, PriceEntry] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze a private copy so callers cannot mutate the table afterwards
        object.__setattr__(self, "prices", MappingProxyType(dict(self.prices)))

    def plan_for(self, price_id: str | None) -> PlanTier:
        entry = self.prices.get(price_id) if price_id else None
        return entry.plan if entry else PlanTier.FREE

    def billing_period_for(self, price_id: str | None) -> BillingPeriod:
        entry = self.prices.get(price_id) if price_id else None
        return entry.period if entry else BillingPeriod.MONTHLY

    def __contains__(self, price_id: object) -> bool:
        return price_id in self.prices

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlanCatalog":
        """Build the production catalog from the configured Stripe price IDs."""
        pairs = [
            (settings.stripe_pro_monthly_price_id, PlanTier.PRO, BillingPeriod.MONTHLY),
            (settings.stripe_pro_semester_price_id, PlanTier.PRO, BillingPeriod.SEMESTER),
            # Legacy one-time semester prices, still referenced by old checkouts
            (settings.stripe_pro_semester_legacy_price_id, PlanTier.PRO, BillingPeriod.SEMESTER),
            (settings.stripe_premium_monthly_price_id, PlanTier.PREMIUM, BillingPeriod.MONTHLY),
            (settings.stripe_premium_semester_price_id, PlanTier.PREMIUM, BillingPeriod.SEMESTER),
            (
                settings.stripe_premium_semester_legacy_price_id,
                PlanTier.PREMIUM,
                BillingPeriod.SEMESTER,
            ),
        ]
        return cls(
            prices={
                price_id: PriceEntry(plan=plan, period=period)
                for price_id, plan, period in pairs
                if price_id
            }
        )


def add_billing_period(
    start: datetime, period: BillingPeriod, anchor_day: int | None = None
) -> datetime:
    """Advance ``start`` by one billing period (calendar months, end-of-month clamped).

    With ``anchor_day`` the result lands on that day of the month, clamped to the
    month length, so a window started on the 31st returns to the 31st after a
    short month.
    """
    return start + relativedelta(months=period.months, day=anchor_day)
