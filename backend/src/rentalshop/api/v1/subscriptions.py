"""Subscription API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rentalshop.api.deps import get_db, get_subscription_manager, get_subscription_service
from rentalshop.exceptions import ValidationError
from rentalshop.models.subscription import SubscriptionStatus
from rentalshop.schemas.access import (
    AttentionAssessment,
    SubscriptionPeriod,
    SubscriptionValidationOptions,
    SubscriptionValidationResult,
)
from rentalshop.schemas.error import ApiResponse
from rentalshop.schemas.pricing import ProrationCalculation
from rentalshop.schemas.subscription import (
    PlanChangeResult,
    ProrationPreviewRequest,
    Subscription,
    SubscriptionCancel,
    SubscriptionCreate,
    SubscriptionList,
    SubscriptionPause,
    SubscriptionPlanChange,
    SubscriptionRenew,
    SubscriptionUpdate,
)
from rentalshop.services.subscription_manager import SubscriptionManager
from rentalshop.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


def _parse_status_filter(value: str | None) -> SubscriptionStatus | None:
    if value is None:
        return None
    try:
        return SubscriptionStatus.parse(value)
    except ValueError as e:
        raise ValidationError(str(e), details={"status": value}) from e


@router.post("", response_model=ApiResponse[Subscription], status_code=status.HTTP_201_CREATED)
async def create_subscription(
    subscription_data: SubscriptionCreate,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """
    Create a new subscription.

    - **merchant_id**: Merchant UUID (required)
    - **plan_id**: Plan UUID (required)
    - **billing_interval**: month, quarter, semiAnnual or year (aliases accepted)
    - **status**: trial or active (optional)
    - **trial_end**: Trial end date (optional, overrides plan trial_days)

    If the plan has trial_days or trial_end is provided, the subscription
    starts in TRIAL status. Otherwise, it starts ACTIVE.
    """
    subscription = await service.create_subscription(subscription_data)
    await db.commit()
    return ApiResponse(data=Subscription.model_validate(subscription), message="Subscription created")


@router.get("", response_model=ApiResponse[SubscriptionList])
async def list_subscriptions(
    merchant_id: UUID | None = Query(None, description="Filter by merchant ID"),
    status_filter: str | None = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(100, ge=1, le=1000, description="Items per page"),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[SubscriptionList]:
    """
    List subscriptions with pagination.

    - **merchant_id**: Filter by merchant (optional)
    - **status**: Filter by status (optional, aliases like ``canceled`` accepted)
    """
    subscriptions, total = await service.list_subscriptions(
        merchant_id, _parse_status_filter(status_filter), page, page_size
    )
    return ApiResponse(
        data=SubscriptionList(
            items=[Subscription.model_validate(subscription) for subscription in subscriptions],
            total=total,
            page=page,
            page_size=page_size,
        )
    )


@router.get("/{subscription_id}", response_model=ApiResponse[Subscription])
async def get_subscription(
    subscription_id: UUID,
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """Get subscription by ID."""
    subscription = await service.get_subscription_or_raise(subscription_id)
    return ApiResponse(data=Subscription.model_validate(subscription))


@router.patch("/{subscription_id}", response_model=ApiResponse[Subscription])
async def update_subscription(
    subscription_id: UUID,
    update_data: SubscriptionUpdate,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """
    Update subscription.

    Status changes must follow the lifecycle; a new billing interval reprices
    the subscription.
    """
    subscription = await service.update_subscription(subscription_id, update_data)
    await db.commit()
    return ApiResponse(data=Subscription.model_validate(subscription), message="Subscription updated")


@router.post("/{subscription_id}/cancel", response_model=ApiResponse[Subscription])
async def cancel_subscription(
    subscription_id: UUID,
    cancel_data: SubscriptionCancel | None = None,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """
    Cancel subscription.

    - **immediate**: If true, cancels immediately. If false, cancels at end of current period.
    - **reason**: Optional cancellation reason
    """
    subscription = await service.cancel_subscription(subscription_id, cancel_data)
    await db.commit()
    return ApiResponse(data=Subscription.model_validate(subscription), message="Subscription cancelled")


@router.post("/{subscription_id}/reactivate", response_model=ApiResponse[Subscription])
async def reactivate_subscription(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """
    Reactivate a subscription scheduled for cancellation.

    Only works if the subscription is scheduled to cancel at period end
    but hasn't been cancelled yet.
    """
    subscription = await service.reactivate_subscription(subscription_id)
    await db.commit()
    return ApiResponse(data=Subscription.model_validate(subscription), message="Subscription reactivated")


@router.post("/{subscription_id}/pause", response_model=ApiResponse[Subscription])
async def pause_subscription(
    subscription_id: UUID,
    pause_data: SubscriptionPause | None = None,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """
    Pause subscription.

    - **resumes_at**: Auto-resume date (optional, None for indefinite pause)
    """
    subscription = await service.pause_subscription(subscription_id, pause_data or SubscriptionPause())
    await db.commit()
    return ApiResponse(data=Subscription.model_validate(subscription), message="Subscription paused")


@router.post("/{subscription_id}/resume", response_model=ApiResponse[Subscription])
async def resume_subscription(
    subscription_id: UUID,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """
    Resume a paused subscription.

    The current period is extended by the time spent paused.
    """
    subscription = await service.resume_subscription(subscription_id)
    await db.commit()
    return ApiResponse(data=Subscription.model_validate(subscription), message="Subscription resumed")


@router.post("/{subscription_id}/change-plan", response_model=ApiResponse[PlanChangeResult])
async def change_subscription_plan(
    subscription_id: UUID,
    plan_change: SubscriptionPlanChange,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[PlanChangeResult]:
    """
    Change subscription plan immediately.

    - **new_plan_id**: Plan UUID to switch to (required)
    - **billing_interval**: Switch interval at the same time (optional)

    Upgrades are charged the prorated difference right away; downgrade credits
    are recorded but not applied.
    """
    result = await service.change_plan(subscription_id, plan_change)
    await db.commit()
    return ApiResponse(data=result, message="Plan changed")


@router.post("/{subscription_id}/proration-preview", response_model=ApiResponse[ProrationCalculation])
async def preview_proration(
    subscription_id: UUID,
    preview: ProrationPreviewRequest,
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[ProrationCalculation]:
    """Proration a plan change would produce, without applying it."""
    proration = await service.preview_plan_change(
        subscription_id, preview.new_plan_id, preview.change_date, preview.billing_interval
    )
    return ApiResponse(data=proration)


@router.post("/{subscription_id}/renew", response_model=ApiResponse[Subscription])
async def renew_subscription(
    subscription_id: UUID,
    renew_data: SubscriptionRenew | None = None,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> ApiResponse[Subscription]:
    """
    Renew subscription for one more billing interval.

    - **billing_interval**: Renew on a different interval (optional)
    """
    subscription = await service.renew_subscription(subscription_id, renew_data)
    await db.commit()
    return ApiResponse(data=Subscription.model_validate(subscription), message="Subscription renewed")


@router.get("/{subscription_id}/access", response_model=ApiResponse[SubscriptionValidationResult])
async def check_subscription_access(
    subscription_id: UUID,
    require_active: bool = Query(False, description="Reject trial and past-due subscriptions"),
    allow_trial: bool = Query(True, description="Accept subscriptions in trial"),
    allow_past_due: bool = Query(True, description="Accept past-due subscriptions inside the grace period"),
    service: SubscriptionService = Depends(get_subscription_service),
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> ApiResponse[SubscriptionValidationResult]:
    """
    Check whether the subscription grants access right now.

    A denied check is still a successful request; inspect ``is_valid``.
    """
    subscription = await service.get_subscription_or_raise(subscription_id)
    options = SubscriptionValidationOptions(
        require_active=require_active,
        allow_trial=allow_trial,
        allow_past_due=allow_past_due,
    )
    return ApiResponse(data=manager.validate_access(subscription, options))


@router.get("/{subscription_id}/attention", response_model=ApiResponse[AttentionAssessment])
async def get_subscription_attention(
    subscription_id: UUID,
    service: SubscriptionService = Depends(get_subscription_service),
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> ApiResponse[AttentionAssessment]:
    """Whether the subscription needs follow-up, and how urgently."""
    subscription = await service.get_subscription_or_raise(subscription_id)
    return ApiResponse(data=manager.needs_attention(subscription))


@router.get("/{subscription_id}/period", response_model=ApiResponse[SubscriptionPeriod])
async def get_subscription_period(
    subscription_id: UUID,
    service: SubscriptionService = Depends(get_subscription_service),
    manager: SubscriptionManager = Depends(get_subscription_manager),
) -> ApiResponse[SubscriptionPeriod]:
    """Current billing period with days remaining and next billing date."""
    subscription = await service.get_subscription_or_raise(subscription_id)
    return ApiResponse(data=manager.calculate_period(subscription))
