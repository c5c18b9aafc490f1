"""Shared API dependencies — single import point for all routers.

Re-exports the database and billing dependencies so that router modules can
import everything they need from one place::

    from scholara.api.deps import get_plan_catalog, get_session_factory
"""

from functools import lru_cache

from scholara.billing.plans import PlanCatalog
from scholara.config import settings
from scholara.database import get_session_factory


@lru_cache
def get_plan_catalog() -> PlanCatalog:
    """Production plan catalog built once from settings."""
    return PlanCatalog.from_settings(settings)


__all__ = [
    "get_plan_catalog",
    "get_session_factory",
]
