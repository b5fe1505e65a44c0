"""Plan API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rentalshop.api.deps import get_db, get_plan_service, get_pricing_calculator, parse_billing_interval
from rentalshop.models.subscription import BillingInterval
from rentalshop.schemas.error import ApiResponse
from rentalshop.schemas.plan import Plan, PlanCreate, PlanList, PlanUpdate
from rentalshop.schemas.pricing import PricingBreakdown, PricingComparison
from rentalshop.services.plan_service import PlanService
from rentalshop.services.pricing_service import PricingCalculator

router = APIRouter(prefix="/plans", tags=["Plans"])


@router.post("", response_model=ApiResponse[Plan], status_code=status.HTTP_201_CREATED)
async def create_plan(
    plan_data: PlanCreate,
    db: AsyncSession = Depends(get_db),
    service: PlanService = Depends(get_plan_service),
) -> ApiResponse[Plan]:
    """
    Create a new pricing plan.

    - **name**: Plan name (required)
    - **base_price**: Monthly list price (required)
    - **currency**: ISO 4217 currency code (default: USD)
    - **trial_days**: Number of trial days (default: 0)
    - **limits**: Per-resource limits, -1 for unlimited
    - **features**: Feature labels shown to merchants
    """
    plan = await service.create_plan(plan_data)
    await db.commit()
    return ApiResponse(data=Plan.model_validate(plan), message="Plan created")


@router.get("", response_model=ApiResponse[PlanList])
async def list_plans(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(100, ge=1, le=1000, description="Items per page"),
    active_only: bool = Query(True, description="Filter to active plans only"),
    service: PlanService = Depends(get_plan_service),
) -> ApiResponse[PlanList]:
    """List pricing plans in display order."""
    plans, total = await service.list_plans(page, page_size, active_only)
    return ApiResponse(
        data=PlanList(
            items=[Plan.model_validate(plan) for plan in plans],
            total=total,
            page=page,
            page_size=page_size,
        )
    )


@router.get("/compare", response_model=ApiResponse[PricingComparison])
async def compare_plans(
    plan_a: UUID = Query(..., description="First plan"),
    plan_b: UUID = Query(..., description="Second plan"),
    billing_interval: str = Query(BillingInterval.MONTH.value, description="Billing interval"),
    service: PlanService = Depends(get_plan_service),
    pricing: PricingCalculator = Depends(get_pricing_calculator),
) -> ApiResponse[PricingComparison]:
    """
    Compare two plans on the same billing interval.

    ``difference`` is plan B minus plan A.
    """
    interval = parse_billing_interval(billing_interval)
    first = await service.get_plan_or_raise(plan_a)
    second = await service.get_plan_or_raise(plan_b)
    return ApiResponse(data=pricing.get_pricing_comparison(first, second, interval))


@router.get("/{plan_id}", response_model=ApiResponse[Plan])
async def get_plan(
    plan_id: UUID,
    service: PlanService = Depends(get_plan_service),
) -> ApiResponse[Plan]:
    """Get plan by ID."""
    plan = await service.get_plan_or_raise(plan_id)
    return ApiResponse(data=Plan.model_validate(plan))


@router.patch("/{plan_id}", response_model=ApiResponse[Plan])
async def update_plan(
    plan_id: UUID,
    update_data: PlanUpdate,
    db: AsyncSession = Depends(get_db),
    service: PlanService = Depends(get_plan_service),
) -> ApiResponse[Plan]:
    """
    Update plan.

    All fields are optional. Existing subscriptions keep their amount until
    their next renewal or plan change.
    """
    plan = await service.update_plan(plan_id, update_data)
    await db.commit()
    return ApiResponse(data=Plan.model_validate(plan), message="Plan updated")


@router.delete("/{plan_id}", response_model=ApiResponse[Plan])
async def deactivate_plan(
    plan_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: PlanService = Depends(get_plan_service),
) -> ApiResponse[Plan]:
    """
    Deactivate plan.

    This prevents new subscriptions but doesn't affect existing subscriptions.
    """
    plan = await service.deactivate_plan(plan_id)
    await db.commit()
    return ApiResponse(data=Plan.model_validate(plan), message="Plan deactivated")


@router.get("/{plan_id}/pricing", response_model=ApiResponse[PricingBreakdown])
async def get_plan_pricing(
    plan_id: UUID,
    billing_interval: str = Query(BillingInterval.MONTH.value, description="Billing interval"),
    service: PlanService = Depends(get_plan_service),
    pricing: PricingCalculator = Depends(get_pricing_calculator),
) -> ApiResponse[PricingBreakdown]:
    """
    Price breakdown for one billing interval.

    Accepts interval aliases such as ``monthly``, ``quarterly`` or ``annual``.
    """
    interval = parse_billing_interval(billing_interval)
    plan = await service.get_plan_or_raise(plan_id)
    return ApiResponse(data=pricing.get_pricing_breakdown(plan, interval))


@router.get("/{plan_id}/pricing/options", response_model=ApiResponse[dict[BillingInterval, PricingBreakdown]])
async def get_plan_pricing_options(
    plan_id: UUID,
    service: PlanService = Depends(get_plan_service),
    pricing: PricingCalculator = Depends(get_pricing_calculator),
) -> ApiResponse[dict[BillingInterval, PricingBreakdown]]:
    """Price breakdowns for every billing interval."""
    plan = await service.get_plan_or_raise(plan_id)
    return ApiResponse(data=pricing.get_all_pricing_options(plan))
