"""FastAPI dependencies for database sessions and billing calculators."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentalshop.config import settings
from rentalshop.database import get_db
from rentalshop.exceptions import ValidationError
from rentalshop.models.subscription import BillingInterval
from rentalshop.schemas.pricing import PricingConfig
from rentalshop.services.plan_limits_service import PlanLimitsService
from rentalshop.services.plan_service import PlanService
from rentalshop.services.pricing_service import PricingCalculator
from rentalshop.services.proration_service import ProrationCalculator
from rentalshop.services.subscription_manager import SubscriptionManager
from rentalshop.services.subscription_service import SubscriptionService

__all__ = [
    "get_db",
    "get_plan_limits_service",
    "get_plan_service",
    "get_pricing_calculator",
    "get_proration_calculator",
    "get_subscription_manager",
    "get_subscription_service",
    "parse_billing_interval",
]


def get_pricing_calculator() -> PricingCalculator:
    """Pricing calculator configured from settings."""
    return PricingCalculator(PricingConfig.from_settings())


def get_subscription_manager() -> SubscriptionManager:
    """Subscription manager configured from settings."""
    return SubscriptionManager.from_settings()


def get_proration_calculator() -> ProrationCalculator:
    """Proration calculator using the configured price precision."""
    return ProrationCalculator(settings.price_precision)


def get_plan_service(db: AsyncSession = Depends(get_db)) -> PlanService:
    return PlanService(db)


def get_subscription_service(
    db: AsyncSession = Depends(get_db),
    pricing: PricingCalculator = Depends(get_pricing_calculator),
    manager: SubscriptionManager = Depends(get_subscription_manager),
    proration: ProrationCalculator = Depends(get_proration_calculator),
) -> SubscriptionService:
    return SubscriptionService(db, pricing_calculator=pricing, manager=manager, proration_calculator=proration)


def get_plan_limits_service(db: AsyncSession = Depends(get_db)) -> PlanLimitsService:
    return PlanLimitsService(db, upgrade_threshold=settings.upgrade_suggestion_threshold)


def parse_billing_interval(value: str) -> BillingInterval:
    """
    Parse a billing interval query value, accepting aliases like ``monthly``.

    Raises:
        ValidationError: If the value is not a known interval
    """
    try:
        return BillingInterval.parse(value)
    except ValueError as e:
        raise ValidationError(
            str(e),
            details={"billing_interval": value, "allowed": [interval.value for interval in BillingInterval]},
        ) from e
