"""Pydantic schemas for subscription access, period and attention results."""
import enum
from datetime import datetime

from pydantic import BaseModel, Field

from rentalshop.models.subscription import SubscriptionStatus
from rentalshop.schemas.error import ErrorCode


class SubscriptionOperation(str, enum.Enum):
    """Operations gated by subscription status."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ADMIN = "admin"


class AttentionUrgency(str, enum.Enum):
    """How urgently a subscription needs follow-up."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SubscriptionValidationOptions(BaseModel):
    """Knobs for a single access check."""

    require_active: bool = Field(default=False, description="Reject trial and past-due subscriptions")
    allow_trial: bool = Field(default=True, description="Accept subscriptions still in trial")
    allow_past_due: bool = Field(default=True, description="Accept past-due subscriptions inside the grace period")
    check_expiry: bool = Field(default=True, description="Compare the period end against the current time")
    grace_period_days: int | None = Field(default=None, ge=0, description="Override the configured grace period")


class SubscriptionValidationResult(BaseModel):
    """Outcome of a subscription access check."""

    is_valid: bool
    status: SubscriptionStatus | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    status_code: int | None = None
    is_expired: bool = False
    in_grace_period: bool = False
    needs_status_update: bool = Field(
        default=False, description="Stored status lags behind the period dates and should be reconciled"
    )
    days_until_expiry: int | None = None


class SubscriptionPeriod(BaseModel):
    """Current billing period of a subscription."""

    start_date: datetime | None
    end_date: datetime | None
    days_remaining: int
    is_active: bool
    is_trial: bool
    next_billing_date: datetime | None


class RenewalEligibility(BaseModel):
    """Whether a subscription can be renewed right now."""

    can_renew: bool
    reason: str | None = None


class AttentionAssessment(BaseModel):
    """Attention classification for dashboards and follow-up lists."""

    needs_attention: bool
    urgency: AttentionUrgency
    reason: str
    days_remaining: int | None = None
