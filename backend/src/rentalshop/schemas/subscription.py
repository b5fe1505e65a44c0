"""Pydantic schemas for Subscription model."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rentalshop.models.subscription import BillingInterval, SubscriptionStatus
from rentalshop.schemas.pricing import Money, ProrationCalculation


def _parse_interval(v: Any) -> Any:
    return BillingInterval.parse(v) if v is not None else v


def _parse_status(v: Any) -> Any:
    return SubscriptionStatus.parse(v) if v is not None else v


class SubscriptionCreate(BaseModel):
    """
    Schema for creating a new subscription.

    ``billing_interval`` accepts the canonical values and the aliases clients
    send (``monthly``, ``quarterly``, ``sixMonths``, ``yearly``, ...).
    """

    merchant_id: UUID = Field(..., description="Merchant the subscription belongs to")
    plan_id: UUID = Field(..., description="Plan to subscribe to")
    billing_interval: BillingInterval = Field(default=BillingInterval.MONTH, description="Renewal cadence")
    status: SubscriptionStatus | None = Field(
        default=None, description="Initial status (trial or active); derived from plan trial days when omitted"
    )
    start_date: datetime | None = Field(default=None, description="Period start (defaults to now)")
    trial_end: datetime | None = Field(default=None, description="Trial end date (overrides plan trial_days)")

    @field_validator("billing_interval", mode="before")
    @classmethod
    def normalize_interval(cls, v: Any) -> Any:
        """Reconcile billing interval aliases."""
        return _parse_interval(v)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        """Reconcile status spellings."""
        return _parse_status(v)

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, v: SubscriptionStatus | None) -> SubscriptionStatus | None:
        """New subscriptions start in trial or active."""
        if v is not None and v not in (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE):
            raise ValueError("subscriptions can only be created as trial or active")
        return v


class SubscriptionUpdate(BaseModel):
    """Schema for updating a subscription; interval and status use the same aliases as create."""

    billing_interval: BillingInterval | None = None
    status: SubscriptionStatus | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool | None = None

    @field_validator("billing_interval", mode="before")
    @classmethod
    def normalize_interval(cls, v: Any) -> Any:
        """Reconcile billing interval aliases."""
        return _parse_interval(v)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        """Reconcile status spellings."""
        return _parse_status(v)

    @model_validator(mode="after")
    def validate_period(self) -> "SubscriptionUpdate":
        """Period end must come after period start when both are given."""
        if self.current_period_start and self.current_period_end:
            if self.current_period_end <= self.current_period_start:
                raise ValueError("current_period_end must be after current_period_start")
        return self


class SubscriptionPlanChange(BaseModel):
    """Schema for changing plan mid-period."""

    new_plan_id: UUID = Field(..., description="New plan to switch to")
    billing_interval: BillingInterval | None = Field(default=None, description="Switch interval at the same time")
    change_date: datetime | None = Field(default=None, description="Effective date (defaults to now)")

    @field_validator("billing_interval", mode="before")
    @classmethod
    def normalize_interval(cls, v: Any) -> Any:
        """Reconcile billing interval aliases."""
        return _parse_interval(v)


class ProrationPreviewRequest(BaseModel):
    """Schema for previewing the proration of a plan change."""

    new_plan_id: UUID
    billing_interval: BillingInterval | None = Field(default=None, description="Preview an interval switch as well")
    change_date: datetime | None = None

    @field_validator("billing_interval", mode="before")
    @classmethod
    def normalize_interval(cls, v: Any) -> Any:
        """Reconcile billing interval aliases."""
        return _parse_interval(v)


class SubscriptionCancel(BaseModel):
    """Schema for cancelling a subscription."""

    immediate: bool = Field(default=False, description="Cancel now instead of at period end")
    reason: str | None = Field(default=None, max_length=500)


class SubscriptionPause(BaseModel):
    """Schema for pausing a subscription."""

    resumes_at: datetime | None = Field(default=None, description="Auto-resume date (None for indefinite)")


class SubscriptionRenew(BaseModel):
    """Schema for renewing a subscription."""

    billing_interval: BillingInterval | None = Field(default=None, description="Renew on a different interval")

    @field_validator("billing_interval", mode="before")
    @classmethod
    def normalize_interval(cls, v: Any) -> Any:
        """Reconcile billing interval aliases."""
        return _parse_interval(v)


class Subscription(BaseModel):
    """Schema for returning subscription data."""

    id: UUID
    merchant_id: UUID
    plan_id: UUID
    status: SubscriptionStatus
    billing_interval: BillingInterval
    amount: Money
    currency: str
    current_period_start: datetime
    current_period_end: datetime
    trial_start: datetime | None
    trial_end: datetime | None
    cancel_at_period_end: bool
    cancelled_at: datetime | None
    cancel_reason: str | None
    paused_at: datetime | None
    pause_resumes_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionList(BaseModel):
    """Schema for paginated subscription list."""

    items: list[Subscription]
    total: int
    page: int
    page_size: int


class PlanChangeResult(BaseModel):
    """Subscription after a plan change and the proration it produced."""

    subscription: Subscription
    proration: ProrationCalculation
    charge_applied: bool = Field(..., description="Whether a prorated charge was applied immediately")
