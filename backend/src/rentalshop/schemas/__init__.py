"""Pydantic schemas for API request/response validation."""

from rentalshop.schemas.access import (
    AttentionAssessment,
    AttentionUrgency,
    RenewalEligibility,
    SubscriptionOperation,
    SubscriptionPeriod,
    SubscriptionValidationOptions,
    SubscriptionValidationResult,
)
from rentalshop.schemas.error import ApiResponse, ErrorCode, ErrorDetail, ErrorResponse
from rentalshop.schemas.plan import Plan, PlanCreate, PlanLimits, PlanList, PlanUpdate
from rentalshop.schemas.plan_limits import (
    EntityCounts,
    EntityType,
    PlanLimitsInfo,
    PlanLimitsSummary,
    PlanLimitsValidationResult,
    PlanLimitUsage,
    UpgradeSuggestion,
)
from rentalshop.schemas.pricing import (
    PricingBreakdown,
    PricingComparison,
    PricingConfig,
    ProratedPlanChange,
    ProrationCalculation,
)
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

__all__ = [
    "ApiResponse",
    "AttentionAssessment",
    "AttentionUrgency",
    "EntityCounts",
    "EntityType",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "Plan",
    "PlanChangeResult",
    "PlanCreate",
    "PlanLimits",
    "PlanLimitsInfo",
    "PlanLimitsSummary",
    "PlanLimitsValidationResult",
    "PlanLimitUsage",
    "PlanList",
    "PlanUpdate",
    "PricingBreakdown",
    "PricingComparison",
    "PricingConfig",
    "ProratedPlanChange",
    "ProrationCalculation",
    "ProrationPreviewRequest",
    "RenewalEligibility",
    "Subscription",
    "SubscriptionCancel",
    "SubscriptionCreate",
    "SubscriptionList",
    "SubscriptionOperation",
    "SubscriptionPause",
    "SubscriptionPeriod",
    "SubscriptionPlanChange",
    "SubscriptionRenew",
    "SubscriptionUpdate",
    "SubscriptionValidationOptions",
    "SubscriptionValidationResult",
    "UpgradeSuggestion",
]
