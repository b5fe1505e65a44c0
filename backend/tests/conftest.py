"""Pytest configuration and fixtures for async testing."""
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rentalshop.database import Base, get_db
from rentalshop.main import app
from rentalshop.models import Merchant, Plan
from tests.utils.factories import MerchantFactory, PlanFactory

# In-memory SQLite shared across the connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a fresh in-memory database for each test.

    Yields:
        AsyncEngine: Engine with all tables created
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with database dependency override.

    Args:
        db_session: Test database session fixture

    Yields:
        AsyncClient: Async HTTP client for API testing
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_merchant(db_session: AsyncSession) -> Merchant:
    """
    Create a test merchant for integration tests.

    Returns:
        Merchant: Test merchant instance
    """
    merchant = Merchant(**MerchantFactory.create())
    db_session.add(merchant)
    await db_session.commit()
    await db_session.refresh(merchant)
    return merchant


@pytest_asyncio.fixture(scope="function")
async def test_plan(db_session: AsyncSession) -> Plan:
    """
    Create a basic $29.99/month plan without trial.

    Returns:
        Plan: Test plan instance
    """
    plan = Plan(**PlanFactory.create({"name": "Basic", "base_price": Decimal("29.99"), "sort_order": 1}))
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest_asyncio.fixture(scope="function")
async def test_plan_premium(db_session: AsyncSession) -> Plan:
    """
    Create a premium $99.00/month plan with unlimited resources.

    Returns:
        Plan: Premium test plan instance
    """
    plan = Plan(
        **PlanFactory.create(
            {
                "name": "Premium",
                "base_price": Decimal("99.00"),
                "sort_order": 2,
                "limits": {"outlets": -1, "users": -1, "products": -1, "customers": -1, "orders": -1},
            }
        )
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest_asyncio.fixture(scope="function")
async def test_plan_trial(db_session: AsyncSession) -> Plan:
    """
    Create a plan with a 14-day trial.

    Returns:
        Plan: Trial test plan instance
    """
    plan = Plan(**PlanFactory.create({"name": "Starter", "base_price": Decimal("19.00"), "trial_days": 14}))
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest.fixture(scope="function")
def sample_plan_data() -> dict:
    """
    Sample plan creation payload for API tests.

    Returns:
        dict: Plan creation data
    """
    return {
        "name": "Pro",
        "description": "For growing rental shops",
        "base_price": 29.99,
        "currency": "usd",
        "trial_days": 0,
        "limits": {"outlets": 3, "users": 10, "products": 500, "customers": -1, "orders": -1},
        "features": ["Web dashboard access", "Reports"],
        "is_popular": True,
    }
