"""Subscription lifecycle worker.

Runs periodically to bring stored subscription statuses in line with their
period dates: resume paused subscriptions whose resume date passed, apply
scheduled cancellations, expire ended trials and move lapsed paid periods
through past due to expired once the grace window closes.
"""
from datetime import datetime
from uuid import UUID

import structlog

from rentalshop.database import AsyncSessionLocal
from rentalshop.exceptions import BusinessRuleError
from rentalshop.services.subscription_service import SubscriptionService
from rentalshop.utils.time import utcnow

logger = structlog.get_logger(__name__)


async def process_subscription_lifecycle(now: datetime | None = None) -> dict[str, int]:
    """
    Reconcile subscription statuses for all merchants.

    This function should be called by a scheduler (cron or a task queue) every hour.

    Args:
        now: Reference time (defaults to current UTC time)

    Returns:
        Dict with counts per outcome
    """
    current = now or utcnow()

    async with AsyncSessionLocal() as db:
        try:
            logger.info("subscription_lifecycle_started", now=current.isoformat())

            counts = await SubscriptionService(db).process_lapsed_subscriptions(now=current)
            await db.commit()

            logger.info("subscription_lifecycle_completed", **counts)
            return counts

        except Exception as e:
            await db.rollback()
            logger.exception(
                "subscription_lifecycle_error",
                exc_info=e,
            )
            raise


async def renew_subscription(subscription_id: UUID, now: datetime | None = None) -> bool:
    """
    Renew a single subscription in its own transaction.

    Returns:
        True when renewed, False when the subscription was not eligible
    """
    async with AsyncSessionLocal() as db:
        try:
            await SubscriptionService(db).renew_subscription(subscription_id, now=now)
            await db.commit()
            return True

        except BusinessRuleError as e:
            await db.rollback()
            logger.info(
                "subscription_renewal_skipped",
                subscription_id=str(subscription_id),
                reason=e.message,
            )
            return False

        except Exception as e:
            await db.rollback()
            logger.exception(
                "subscription_renewal_failed",
                subscription_id=str(subscription_id),
                exc_info=e,
            )
            raise
