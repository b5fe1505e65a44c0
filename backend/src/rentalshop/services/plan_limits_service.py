"""Plan limit checks against live merchant entity counts."""
from typing import Iterable
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalshop.exceptions import NotFoundError, PlanLimitError
from rentalshop.metrics import plan_limit_checks_total
from rentalshop.models.merchant import Customer, Merchant, Order, Outlet, Product, User, UserRole
from rentalshop.models.plan import UNLIMITED
from rentalshop.models.subscription import Subscription
from rentalshop.schemas.error import ErrorCode
from rentalshop.schemas.plan_limits import (
    EntityCounts,
    EntityType,
    PlanLimitsInfo,
    PlanLimitsSummary,
    PlanLimitsValidationResult,
    PlanLimitUsage,
    UpgradeSuggestion,
)

logger = structlog.get_logger(__name__)

# Feature flag that unlocks the web dashboard on a plan
WEB_ACCESS_FEATURE = "Web dashboard access"


def evaluate_plan_limit(entity_type: EntityType, current_count: int, limit: int) -> PlanLimitsValidationResult:
    """
    Compare a count with a plan limit.

    Only ``UNLIMITED`` (-1) lifts the cap. Any other limit, including 0, is
    exhausted once ``current_count >= limit``.
    """
    if limit == UNLIMITED:
        return PlanLimitsValidationResult(
            entity_type=entity_type,
            is_valid=True,
            current_count=current_count,
            limit=UNLIMITED,
            is_unlimited=True,
        )

    if current_count >= limit:
        return PlanLimitsValidationResult(
            entity_type=entity_type,
            is_valid=False,
            current_count=current_count,
            limit=limit,
            is_unlimited=False,
            message=(
                f"Plan limit exceeded. You have reached the maximum limit of {limit} {entity_type.value}. "
                f"Current: {current_count}/{limit}. Please upgrade your plan to create more {entity_type.value}."
            ),
        )

    return PlanLimitsValidationResult(
        entity_type=entity_type,
        is_valid=True,
        current_count=current_count,
        limit=limit,
        is_unlimited=False,
    )


def calculate_usage_percentage(current: int, limit: int) -> float:
    """Rounded usage percentage; 0 for unlimited, 100 for an exhausted zero allowance."""
    if limit == UNLIMITED:
        return 0.0
    if limit <= 0:
        return 100.0
    return float(round(current / limit * 100))


class PlanLimitsService:
    """
    Service layer for plan limit checks.

    Each check reads a snapshot of the merchant's counts. The count and the
    caller's insert are not atomic: two concurrent creations can both pass the
    check. Callers that need a hard cap must run the check and the insert in
    one transaction with appropriate locking.
    """

    def __init__(self, db: AsyncSession, upgrade_threshold: float = 80.0):
        """Initialize plan limits service with database session."""
        self.db = db
        self.upgrade_threshold = upgrade_threshold

    async def get_current_entity_counts(self, merchant_id: UUID) -> EntityCounts:
        """
        Count the merchant's outlets, users, products, customers and orders.

        Platform admins are not counted as users; orders are counted through
        the merchant's outlets.
        """
        outlets = await self.db.scalar(select(func.count(Outlet.id)).where(Outlet.merchant_id == merchant_id))
        users = await self.db.scalar(
            select(func.count(User.id)).where(User.merchant_id == merchant_id, User.role != UserRole.ADMIN)
        )
        products = await self.db.scalar(select(func.count(Product.id)).where(Product.merchant_id == merchant_id))
        customers = await self.db.scalar(select(func.count(Customer.id)).where(Customer.merchant_id == merchant_id))
        orders = await self.db.scalar(
            select(func.count(Order.id)).join(Outlet, Order.outlet_id == Outlet.id).where(Outlet.merchant_id == merchant_id)
        )

        return EntityCounts(
            outlets=outlets or 0,
            users=users or 0,
            products=products or 0,
            customers=customers or 0,
            orders=orders or 0,
        )

    async def _get_subscription(self, merchant_id: UUID) -> Subscription:
        merchant = await self.db.scalar(select(Merchant).where(Merchant.id == merchant_id))
        if not merchant:
            raise NotFoundError(f"Merchant {merchant_id} not found", code=ErrorCode.MERCHANT_NOT_FOUND)

        subscription = await self.db.scalar(
            select(Subscription)
            .where(Subscription.merchant_id == merchant_id)
            .options(selectinload(Subscription.plan))
        )
        if not subscription or not subscription.plan:
            raise NotFoundError(
                f"No subscription found for merchant {merchant_id}",
                code=ErrorCode.SUBSCRIPTION_NOT_FOUND,
            )
        return subscription

    async def get_plan_limits_info(self, merchant_id: UUID) -> PlanLimitsInfo:
        """
        Plan limits with live usage for a merchant.

        Raises:
            NotFoundError: If the merchant or its subscription does not exist
        """
        subscription = await self._get_subscription(merchant_id)
        plan = subscription.plan
        counts = await self.get_current_entity_counts(merchant_id)
        limits = {entity_type: plan.get_limit(entity_type.value) for entity_type in EntityType}

        return PlanLimitsInfo(
            merchant_id=merchant_id,
            plan_id=plan.id,
            plan_name=plan.name,
            limits=limits,
            current_usage=counts,
            is_unlimited={entity_type: limit == UNLIMITED for entity_type, limit in limits.items()},
            features=list(plan.features or []),
        )

    async def validate_plan_limits(
        self, merchant_id: UUID, entity_type: EntityType | str
    ) -> PlanLimitsValidationResult:
        """
        Check whether the merchant may create one more entity of a type.

        Args:
            merchant_id: Merchant UUID
            entity_type: Resource type

        Returns:
            PlanLimitsValidationResult, invalid when ``current_count >= limit``

        Raises:
            NotFoundError: If the merchant or its subscription does not exist
        """
        entity_type = EntityType(entity_type)
        info = await self.get_plan_limits_info(merchant_id)
        result = evaluate_plan_limit(entity_type, info.current_usage.get(entity_type), info.limits[entity_type])

        plan_limit_checks_total.labels(
            entity_type=entity_type.value,
            result="allowed" if result.is_valid else "denied",
        ).inc()
        if not result.is_valid:
            logger.info(
                "plan_limit_exceeded",
                merchant_id=str(merchant_id),
                entity_type=entity_type.value,
                current_count=result.current_count,
                limit=result.limit,
            )
        return result

    async def validate_multiple_plan_limits(
        self, merchant_id: UUID, entity_types: Iterable[EntityType | str]
    ) -> tuple[bool, list[PlanLimitsValidationResult]]:
        """
        Check several resource types at once.

        Returns:
            Tuple of (all_valid, results)
        """
        results = [await self.validate_plan_limits(merchant_id, entity_type) for entity_type in entity_types]
        return all(result.is_valid for result in results), results

    async def assert_plan_limit(self, merchant_id: UUID, entity_type: EntityType | str) -> PlanLimitsValidationResult:
        """
        Guard for entity-creation call sites.

        Raises:
            PlanLimitError: If the limit is reached
            NotFoundError: If the merchant or its subscription does not exist
        """
        result = await self.validate_plan_limits(merchant_id, entity_type)
        if not result.is_valid:
            raise PlanLimitError(
                result.message,
                details={
                    "entity_type": result.entity_type.value,
                    "current_count": result.current_count,
                    "limit": result.limit,
                },
            )
        return result

    async def get_plan_limits_summary(self, merchant_id: UUID) -> PlanLimitsSummary:
        """Usage percentages for every resource type."""
        info = await self.get_plan_limits_info(merchant_id)
        usage = []
        for entity_type in EntityType:
            limit = info.limits[entity_type]
            current = info.current_usage.get(entity_type)
            unlimited = limit == UNLIMITED
            usage.append(
                PlanLimitUsage(
                    entity_type=entity_type,
                    current=current,
                    limit=limit,
                    percentage=calculate_usage_percentage(current, limit),
                    is_unlimited=unlimited,
                    is_at_limit=not unlimited and current >= limit,
                )
            )

        return PlanLimitsSummary(merchant_id=merchant_id, plan_name=info.plan_name, usage=usage)

    async def get_upgrade_suggestions(self, merchant_id: UUID) -> list[UpgradeSuggestion]:
        """Resource types at or above the upgrade threshold."""
        summary = await self.get_plan_limits_summary(merchant_id)
        suggestions = []
        for line in summary.usage:
            if line.is_unlimited or line.percentage < self.upgrade_threshold:
                continue
            suggestions.append(
                UpgradeSuggestion(
                    entity_type=line.entity_type,
                    current=line.current,
                    limit=line.limit,
                    percentage=line.percentage,
                    message=(
                        f"You are using {line.percentage:.0f}% of your {line.entity_type.value} limit "
                        f"({line.current}/{line.limit}). Consider upgrading your plan."
                    ),
                )
            )
        return suggestions

    async def check_plan_feature(self, merchant_id: UUID, feature: str) -> bool:
        """Whether the merchant's plan lists a feature (case-insensitive)."""
        info = await self.get_plan_limits_info(merchant_id)
        wanted = feature.strip().lower()
        return any(str(item).strip().lower() == wanted for item in info.features)

    async def validate_platform_access(self, merchant_id: UUID) -> bool:
        """Whether the merchant's plan includes the web dashboard."""
        return await self.check_plan_feature(merchant_id, WEB_ACCESS_FEATURE)
