"""Pydantic schemas for Plan model."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rentalshop.schemas.pricing import Money
from rentalshop.utils.currency import validate_currency


class PlanLimits(BaseModel):
    """Per-resource limits; -1 is unlimited, 0 is a zero allowance."""

    outlets: int = Field(default=0, ge=-1)
    users: int = Field(default=0, ge=-1)
    products: int = Field(default=0, ge=-1)
    customers: int = Field(default=0, ge=-1)
    orders: int = Field(default=0, ge=-1)


class PlanBase(BaseModel):
    """Base plan schema with common fields."""

    name: str = Field(..., min_length=1, max_length=255, description="Plan name")
    description: str | None = Field(default=None, description="Marketing description")
    base_price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2, description="Monthly list price")
    currency: str = Field(default="USD", min_length=3, max_length=3, description="ISO 4217 currency code")
    trial_days: int = Field(default=0, ge=0, description="Number of trial days")
    limits: PlanLimits = Field(default_factory=PlanLimits, description="Per-resource limits")
    features: list[str] = Field(default_factory=list, description="Feature names included in the plan")
    is_active: bool = Field(default=True, description="Whether plan is available for new subscriptions")
    is_popular: bool = Field(default=False, description="Highlight the plan in pricing tables")
    sort_order: int = Field(default=0, description="Display order")

    @field_validator("currency")
    @classmethod
    def validate_currency_code(cls, v: str) -> str:
        """Normalize and check the currency code."""
        if not validate_currency(v):
            raise ValueError(f"Unsupported currency: {v}")
        return v.upper()


class PlanCreate(PlanBase):
    """Schema for creating a new plan.

    Examples:
        Basic plan with a 14 day trial:
            ```json
            {
                "name": "Basic",
                "base_price": 29.99,
                "currency": "USD",
                "trial_days": 14,
                "limits": {"outlets": 1, "users": 3, "products": 100, "customers": 500, "orders": 1000},
                "features": ["Web dashboard access"]
            }
            ```
    """


class PlanUpdate(BaseModel):
    """Schema for updating a plan; all fields optional."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    base_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    trial_days: int | None = Field(default=None, ge=0)
    limits: PlanLimits | None = None
    features: list[str] | None = None
    is_active: bool | None = None
    is_popular: bool | None = None
    sort_order: int | None = None


class Plan(BaseModel):
    """Schema for returning plan data."""

    id: UUID
    name: str
    description: str | None
    base_price: Money
    currency: str
    trial_days: int
    limits: dict[str, int]
    features: list[str]
    is_active: bool
    is_popular: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanList(BaseModel):
    """Schema for paginated plan list."""

    items: list[Plan]
    total: int
    page: int
    page_size: int
