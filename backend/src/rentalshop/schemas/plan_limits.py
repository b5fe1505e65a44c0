"""Pydantic schemas for plan limit checks."""
import enum
from uuid import UUID

from pydantic import BaseModel, Field


class EntityType(str, enum.Enum):
    """Resource types capped by plan limits."""

    OUTLETS = "outlets"
    USERS = "users"
    PRODUCTS = "products"
    CUSTOMERS = "customers"
    ORDERS = "orders"


class EntityCounts(BaseModel):
    """Live per-merchant resource counts."""

    outlets: int = 0
    users: int = 0
    products: int = 0
    customers: int = 0
    orders: int = 0

    def get(self, entity_type: EntityType) -> int:
        """Count for a resource type."""
        return getattr(self, entity_type.value)


class PlanLimitsValidationResult(BaseModel):
    """Outcome of checking one resource type against its limit."""

    entity_type: EntityType
    is_valid: bool
    current_count: int
    limit: int = Field(..., description="Plan limit; -1 means unlimited")
    is_unlimited: bool
    message: str | None = None


class PlanLimitsInfo(BaseModel):
    """Merchant plan, its limits and the live usage they apply to."""

    merchant_id: UUID
    plan_id: UUID
    plan_name: str
    limits: dict[EntityType, int]
    current_usage: EntityCounts
    is_unlimited: dict[EntityType, bool] = Field(
        ..., description="Per resource type; only the -1 sentinel counts as unlimited"
    )
    features: list[str] = Field(default_factory=list)


class PlanLimitUsage(BaseModel):
    """Usage line of a plan limits summary."""

    entity_type: EntityType
    current: int
    limit: int
    percentage: float = Field(..., description="Usage percentage; 0 for unlimited resources")
    is_unlimited: bool
    is_at_limit: bool


class PlanLimitsSummary(BaseModel):
    """Usage summary across every resource type."""

    merchant_id: UUID
    plan_name: str
    usage: list[PlanLimitUsage]


class UpgradeSuggestion(BaseModel):
    """Resource type close to its plan limit."""

    entity_type: EntityType
    current: int
    limit: int
    percentage: float
    message: str
