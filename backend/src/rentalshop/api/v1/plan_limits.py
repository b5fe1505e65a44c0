"""Merchant plan limit endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends

from rentalshop.api.deps import get_plan_limits_service
from rentalshop.exceptions import ValidationError
from rentalshop.schemas.error import ApiResponse
from rentalshop.schemas.plan_limits import (
    EntityType,
    PlanLimitsInfo,
    PlanLimitsSummary,
    PlanLimitsValidationResult,
    UpgradeSuggestion,
)
from rentalshop.services.plan_limits_service import PlanLimitsService

router = APIRouter(prefix="/merchants", tags=["Plan Limits"])


@router.get("/{merchant_id}/plan-limits", response_model=ApiResponse[PlanLimitsInfo])
async def get_plan_limits(
    merchant_id: UUID,
    service: PlanLimitsService = Depends(get_plan_limits_service),
) -> ApiResponse[PlanLimitsInfo]:
    """Plan limits with live usage counts."""
    return ApiResponse(data=await service.get_plan_limits_info(merchant_id))


@router.get("/{merchant_id}/plan-limits/summary", response_model=ApiResponse[PlanLimitsSummary])
async def get_plan_limits_summary(
    merchant_id: UUID,
    service: PlanLimitsService = Depends(get_plan_limits_service),
) -> ApiResponse[PlanLimitsSummary]:
    """Usage percentage for every resource type."""
    return ApiResponse(data=await service.get_plan_limits_summary(merchant_id))


@router.get("/{merchant_id}/plan-limits/suggestions", response_model=ApiResponse[list[UpgradeSuggestion]])
async def get_upgrade_suggestions(
    merchant_id: UUID,
    service: PlanLimitsService = Depends(get_plan_limits_service),
) -> ApiResponse[list[UpgradeSuggestion]]:
    """Resource types close enough to their limit to suggest an upgrade."""
    return ApiResponse(data=await service.get_upgrade_suggestions(merchant_id))


@router.get("/{merchant_id}/plan-limits/{entity_type}", response_model=ApiResponse[PlanLimitsValidationResult])
async def check_plan_limit(
    merchant_id: UUID,
    entity_type: str,
    service: PlanLimitsService = Depends(get_plan_limits_service),
) -> ApiResponse[PlanLimitsValidationResult]:
    """
    Check whether the merchant may create one more entity.

    - **entity_type**: outlets, users, products, customers or orders
    """
    try:
        entity = EntityType(entity_type.lower())
    except ValueError as e:
        raise ValidationError(
            f"Unknown entity type: {entity_type}",
            details={"entity_type": entity_type, "allowed": [item.value for item in EntityType]},
        ) from e

    result = await service.validate_plan_limits(merchant_id, entity)
    return ApiResponse(data=result, message=result.message)
