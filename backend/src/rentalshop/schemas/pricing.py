"""Pydantic schemas for pricing and proration results."""
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, Field, PlainSerializer, field_validator

from rentalshop.models.subscription import BillingInterval

# Decimal amounts are kept exact in Python and emitted as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def parse_interval_table(v: Any) -> Any:
    """Key a per-interval table by BillingInterval, accepting aliases."""
    if isinstance(v, dict):
        return {BillingInterval.parse(key): value for key, value in v.items()}
    return v


def _default_discounts() -> dict[BillingInterval, Decimal]:
    return {
        BillingInterval.MONTH: Decimal("0"),
        BillingInterval.QUARTER: Decimal("5"),
        BillingInterval.SEMI_ANNUAL: Decimal("10"),
        BillingInterval.YEAR: Decimal("20"),
    }


def _default_interval_months() -> dict[BillingInterval, int]:
    return {interval: interval.months for interval in BillingInterval}


class PricingConfig(BaseModel):
    """
    Discount table and rounding rules for the pricing calculator.

    Discounts are percentages (0-100) keyed by billing interval. Month counts
    must be positive integers.
    """

    discounts: dict[BillingInterval, Decimal] = Field(default_factory=_default_discounts)
    interval_months: dict[BillingInterval, int] = Field(default_factory=_default_interval_months)
    precision: int = Field(default=2, ge=0, le=6, description="Decimal places for rounded amounts")

    @field_validator("discounts", "interval_months", mode="before")
    @classmethod
    def parse_interval_keys(cls, v: Any) -> Any:
        """Accept interval aliases as keys (``quarterly``, ``yearly``, ...)."""
        return parse_interval_table(v)

    @field_validator("discounts")
    @classmethod
    def validate_discounts(cls, v: dict[BillingInterval, Decimal]) -> dict[BillingInterval, Decimal]:
        """Discounts must be percentages between 0 and 100."""
        for interval, pct in v.items():
            if pct < 0 or pct > 100:
                raise ValueError(f"discount for {interval.value} must be between 0 and 100, got {pct}")
        return v

    @field_validator("interval_months")
    @classmethod
    def validate_interval_months(cls, v: dict[BillingInterval, int]) -> dict[BillingInterval, int]:
        """Month counts must be positive."""
        for interval, months in v.items():
            if months < 1:
                raise ValueError(f"month count for {interval.value} must be a positive integer, got {months}")
        return v

    @classmethod
    def from_settings(cls) -> "PricingConfig":
        """Build the config from application settings."""
        from rentalshop.config import settings

        return cls(discounts=settings.pricing_discounts, precision=settings.price_precision)

    def get_discount(self, interval: BillingInterval) -> Decimal:
        """Discount percentage for an interval (0 when not configured)."""
        return Decimal(str(self.discounts.get(interval, 0)))

    def get_months(self, interval: BillingInterval) -> int:
        """Month count for an interval (falls back to the interval's calendar length)."""
        return self.interval_months.get(interval, interval.months)


class PricingBreakdown(BaseModel):
    """Derived price for one plan and billing interval."""

    base_price: Money = Field(..., description="Monthly list price of the plan")
    total_price: Money = Field(..., description="Base price multiplied by the interval month count")
    discount: Money = Field(..., description="Discount percentage applied")
    discount_amount: Money = Field(..., description="Amount removed by the discount")
    final_price: Money = Field(..., description="Price charged per billing interval")
    monthly_equivalent: Money = Field(..., description="Final price spread over the interval months")
    billing_interval: BillingInterval
    total_months: int
    currency: str = "USD"


class PricingComparison(BaseModel):
    """Side-by-side breakdown of two plans on the same interval."""

    plan_a: PricingBreakdown
    plan_b: PricingBreakdown
    difference: Money = Field(..., description="plan_b final price minus plan_a final price")
    savings: Money = Field(..., description="Absolute price difference")


class ProratedPlanChange(BaseModel):
    """Daily-rate estimate of a plan change for a number of remaining days."""

    days_remaining: int
    current_plan_daily_rate: Money
    new_plan_daily_rate: Money
    current_plan_refund: Money
    new_plan_charge: Money
    net_amount: Money


class ProrationCalculation(BaseModel):
    """Prorated charge or credit for a mid-period plan change."""

    is_upgrade: bool
    is_downgrade: bool
    current_plan_price: Money
    new_plan_price: Money
    days_remaining: int
    days_in_period: int
    prorated_amount: Money = Field(..., description="Signed adjustment; negative for downgrades")
    credit_amount: Money
    charge_amount: Money
    reason: str

