"""Tests for the scheduled subscription lifecycle jobs."""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rentalshop.models import Subscription
from rentalshop.models.subscription import SubscriptionStatus
from rentalshop.workers import lifecycle
from tests.utils.factories import SubscriptionFactory

NOW = datetime(2026, 6, 1)


@pytest.fixture
def worker_sessions(test_engine, monkeypatch):
    """Point the worker at the test database."""
    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(lifecycle, "AsyncSessionLocal", factory)
    return factory


async def _add_subscription(db, merchant, plan, period_end: datetime) -> Subscription:
    subscription = Subscription(
        **SubscriptionFactory.create(
            {
                "merchant_id": merchant.id,
                "plan_id": plan.id,
                "current_period_start": period_end - timedelta(days=31),
                "current_period_end": period_end,
            }
        )
    )
    db.add(subscription)
    await db.commit()
    return subscription


@pytest.mark.asyncio
async def test_lifecycle_job_commits_status_changes(db_session, worker_sessions, test_merchant, test_plan):
    """
    Given: An active subscription whose period ended two days ago
    When: The lifecycle job runs
    Then: The subscription is past due and the change is committed
    """
    subscription = await _add_subscription(db_session, test_merchant, test_plan, NOW - timedelta(days=2))

    counts = await lifecycle.process_subscription_lifecycle(now=NOW)

    assert counts["past_due"] == 1
    await db_session.refresh(subscription)
    assert subscription.status == SubscriptionStatus.PAST_DUE


@pytest.mark.asyncio
async def test_renewal_job(db_session, worker_sessions, test_merchant, test_plan):
    subscription = await _add_subscription(db_session, test_merchant, test_plan, NOW - timedelta(days=2))

    assert await lifecycle.renew_subscription(subscription.id, now=NOW) is True

    await db_session.refresh(subscription)
    assert subscription.current_period_start == NOW - timedelta(days=2)
    assert subscription.amount == Decimal("29.99")


@pytest.mark.asyncio
async def test_renewal_job_skips_live_subscription(db_session, worker_sessions, test_merchant, test_plan):
    subscription = await _add_subscription(db_session, test_merchant, test_plan, NOW + timedelta(days=10))

    assert await lifecycle.renew_subscription(subscription.id, now=NOW) is False

    await db_session.refresh(subscription)
    assert subscription.current_period_end == NOW + timedelta(days=10)
