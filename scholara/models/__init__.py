"""SQLAlchemy models for Scholara billing.

All models are imported here so that ``Base.metadata`` knows every table.
"""

from scholara.models.profile import PlanTier, Profile, SubscriptionStatus

__all__ = [
    "PlanTier",
    "Profile",
    "SubscriptionStatus",
]
