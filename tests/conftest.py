"""Shared test configuration and fixtures.

Each test gets its own in-memory SQLite database (``aiosqlite``) with the
schema created from ``Base.metadata``, so tests need no running PostgreSQL.
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from scholara.api.deps import get_plan_catalog, get_session_factory
from scholara.billing.plans import BillingPeriod, PlanCatalog, PriceEntry
from scholara.database import Base
from scholara.main import app
from scholara.models.profile import PlanTier, Profile

PRO_MONTHLY = "price_test_pro_monthly"
PRO_SEMESTER = "price_test_pro_semester"
PREMIUM_MONTHLY = "price_test_premium_monthly"
PREMIUM_SEMESTER = "price_test_premium_semester"


# ---------------------------------------------------------------------------
# Database: one in-memory SQLite per test
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    """Create an engine bound to a private in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_profile(
    db_session: AsyncSession,
) -> Callable[..., Awaitable[Profile]]:
    """Return a factory that inserts a profile row with optional overrides."""

    async def _make(**overrides) -> Profile:
        unique = uuid.uuid4().hex[:8]
        values = {"email": f"student-{unique}@test.com"}
        values.update(overrides)
        profile = Profile(**values)
        db_session.add(profile)
        await db_session.flush()
        # Load server defaults (created_at/updated_at) so no lazy load happens later
        await db_session.refresh(profile)
        return profile

    return _make


# ---------------------------------------------------------------------------
# Plan catalog with test price IDs
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog() -> PlanCatalog:
    return PlanCatalog(
        prices={
            PRO_MONTHLY: PriceEntry(PlanTier.PRO, BillingPeriod.MONTHLY),
            PRO_SEMESTER: PriceEntry(PlanTier.PRO, BillingPeriod.SEMESTER),
            PREMIUM_MONTHLY: PriceEntry(PlanTier.PREMIUM, BillingPeriod.MONTHLY),
            PREMIUM_SEMESTER: PriceEntry(PlanTier.PREMIUM, BillingPeriod.SEMESTER),
        }
    )


# ---------------------------------------------------------------------------
# HTTP client wired to the test database and catalog
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(session_factory, catalog) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB and plan catalog."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_plan_catalog] = lambda: catalog

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
