"""Plan service for business logic."""
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentalshop.exceptions import NotFoundError
from rentalshop.models.plan import Plan
from rentalshop.schemas.error import ErrorCode
from rentalshop.schemas.plan import PlanCreate, PlanUpdate

logger = structlog.get_logger(__name__)


class PlanService:
    """Service layer for plan operations."""

    def __init__(self, db: AsyncSession):
        """Initialize plan service with database session."""
        self.db = db

    async def create_plan(self, plan_data: PlanCreate) -> Plan:
        """
        Create a new pricing plan.

        Args:
            plan_data: Plan creation data

        Returns:
            Created plan
        """
        plan = Plan(
            name=plan_data.name,
            description=plan_data.description,
            base_price=plan_data.base_price,
            currency=plan_data.currency,
            trial_days=plan_data.trial_days,
            limits=plan_data.limits.model_dump(),
            features=list(plan_data.features),
            is_active=plan_data.is_active,
            is_popular=plan_data.is_popular,
            sort_order=plan_data.sort_order,
        )

        self.db.add(plan)
        await self.db.flush()
        await self.db.refresh(plan)

        logger.info("plan_created", plan_id=str(plan.id), name=plan.name, base_price=str(plan.base_price))
        return plan

    async def get_plan(self, plan_id: UUID) -> Plan | None:
        """
        Get plan by ID.

        Args:
            plan_id: Plan UUID

        Returns:
            Plan or None if not found
        """
        result = await self.db.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def get_plan_or_raise(self, plan_id: UUID) -> Plan:
        """
        Get plan by ID.

        Raises:
            NotFoundError: If plan not found
        """
        plan = await self.get_plan(plan_id)
        if not plan:
            raise NotFoundError(f"Plan {plan_id} not found", code=ErrorCode.PLAN_NOT_FOUND)
        return plan

    async def update_plan(self, plan_id: UUID, update_data: PlanUpdate) -> Plan:
        """
        Update plan.

        Live subscriptions keep the amount they were priced at; a new base
        price applies from their next renewal or plan change.

        Args:
            plan_id: Plan UUID
            update_data: Update data

        Returns:
            Updated plan

        Raises:
            NotFoundError: If plan not found
        """
        plan = await self.get_plan_or_raise(plan_id)

        update_dict = update_data.model_dump(exclude_unset=True)
        if "limits" in update_dict and update_dict["limits"] is not None:
            update_dict["limits"] = update_data.limits.model_dump()
        for field, value in update_dict.items():
            setattr(plan, field, value)

        await self.db.flush()
        await self.db.refresh(plan)

        logger.info("plan_updated", plan_id=str(plan.id), fields=sorted(update_dict))
        return plan

    async def deactivate_plan(self, plan_id: UUID) -> Plan:
        """
        Deactivate plan (prevent new subscriptions).

        Raises:
            NotFoundError: If plan not found
        """
        plan = await self.get_plan_or_raise(plan_id)

        plan.is_active = False
        await self.db.flush()
        await self.db.refresh(plan)

        logger.info("plan_deactivated", plan_id=str(plan.id))
        return plan

    async def list_plans(
        self,
        page: int = 1,
        page_size: int = 100,
        active_only: bool = True,
    ) -> tuple[list[Plan], int]:
        """
        List plans with pagination, in display order.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            active_only: Filter to active plans only

        Returns:
            Tuple of (plans, total_count)
        """
        query = select(Plan)

        if active_only:
            query = query.where(Plan.is_active == True)  # noqa: E712

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query)

        query = query.order_by(Plan.sort_order, Plan.base_price)
        query = query.offset((page - 1) * page_size).limit(page_size)

        result = await self.db.execute(query)
        plans = result.scalars().all()

        return list(plans), total or 0
