"""Pricing calculator for plan prices per billing interval."""
from decimal import Decimal
from typing import Any

import structlog

from rentalshop.metrics import pricing_quotes_total
from rentalshop.models.subscription import BillingInterval
from rentalshop.schemas.pricing import (
    PricingBreakdown,
    PricingComparison,
    PricingConfig,
    ProratedPlanChange,
    parse_interval_table,
)
from rentalshop.utils.currency import round_amount, to_decimal

logger = structlog.get_logger(__name__)

# Day count used to turn a monthly price into a daily rate
DAYS_PER_MONTH = 30

INTERVAL_LABELS = {
    BillingInterval.MONTH: "Monthly",
    BillingInterval.QUARTER: "Quarterly",
    BillingInterval.SEMI_ANNUAL: "Six Months",
    BillingInterval.YEAR: "Yearly",
}


class PricingCalculator:
    """
    Computes interval prices, discounts and monthly equivalents for plans.

    One instance per configuration; nothing is shared between instances, so
    tenants with different discount tables get separate calculators.

    Plans are read through ``base_price`` and ``currency`` attributes (or keys),
    which covers ORM rows, API schemas and plain dicts.
    """

    def __init__(self, config: PricingConfig | None = None):
        """Initialize the calculator with a pricing config (defaults to the built-in discount table)."""
        self._config = config.model_copy(deep=True) if config else PricingConfig()

    def get_config(self) -> PricingConfig:
        """Return a copy of the active configuration."""
        return self._config.model_copy(deep=True)

    def update_config(self, config: PricingConfig | dict[str, Any]) -> PricingConfig:
        """
        Replace or merge the configuration.

        Args:
            config: Full config, or a partial dict merged over the current values.
                Partial discount/interval tables merge per interval.

        Returns:
            The new active configuration

        Raises:
            pydantic.ValidationError: If the merged config is invalid
        """
        if isinstance(config, PricingConfig):
            merged = config.model_copy(deep=True)
        else:
            current = self._config.model_dump()
            updates = dict(config)
            if "discounts" in updates:
                current["discounts"] = {
                    **current["discounts"],
                    **parse_interval_table(updates.pop("discounts")),
                }
            if "interval_months" in updates:
                current["interval_months"] = {
                    **current["interval_months"],
                    **parse_interval_table(updates.pop("interval_months")),
                }
            current.update(updates)
            merged = PricingConfig.model_validate(current)

        self._config = merged
        logger.info(
            "pricing_config_updated",
            discounts={interval.value: str(pct) for interval, pct in merged.discounts.items()},
            precision=merged.precision,
        )
        return self.get_config()

    def calculate_subscription_price(self, plan: Any, billing_interval: BillingInterval | str) -> Decimal:
        """
        Price charged per billing interval after discount.

        Args:
            plan: Plan exposing ``base_price``
            billing_interval: Billing interval or one of its aliases

        Returns:
            Final price rounded to the configured precision
        """
        return self.get_pricing_breakdown(plan, billing_interval).final_price

    def get_pricing_breakdown(self, plan: Any, billing_interval: BillingInterval | str) -> PricingBreakdown:
        """
        Full price breakdown for a plan and billing interval.

        ``total = base_price * months``, the interval discount is applied to the
        total and ``monthly_equivalent = final / months``. A zero, negative or
        non-numeric base price yields an all-zero breakdown.

        Args:
            plan: Plan exposing ``base_price`` (and optionally ``currency``)
            billing_interval: Billing interval or one of its aliases

        Returns:
            PricingBreakdown with amounts rounded half-up to the configured precision

        Raises:
            ValueError: If the billing interval is unknown
        """
        interval = BillingInterval.parse(billing_interval)
        months = self._config.get_months(interval)
        discount = self._config.get_discount(interval)
        precision = self._config.precision
        base_price = to_decimal(_plan_value(plan, "base_price"))
        currency = _plan_value(plan, "currency") or "USD"

        pricing_quotes_total.labels(billing_interval=interval.value).inc()

        if base_price <= 0:
            zero = round_amount(Decimal("0"), precision)
            return PricingBreakdown(
                base_price=zero,
                total_price=zero,
                discount=discount,
                discount_amount=zero,
                final_price=zero,
                monthly_equivalent=zero,
                billing_interval=interval,
                total_months=months,
                currency=currency,
            )

        total_price = round_amount(base_price * months, precision)
        final_price = round_amount(total_price * (Decimal("100") - discount) / Decimal("100"), precision)
        discount_amount = total_price - final_price
        monthly_equivalent = round_amount(final_price / months, precision)

        return PricingBreakdown(
            base_price=round_amount(base_price, precision),
            total_price=total_price,
            discount=discount,
            discount_amount=discount_amount,
            final_price=final_price,
            monthly_equivalent=monthly_equivalent,
            billing_interval=interval,
            total_months=months,
            currency=currency,
        )

    def get_all_pricing_options(self, plan: Any) -> dict[BillingInterval, PricingBreakdown]:
        """Breakdown for every billing interval, in interval order."""
        return {interval: self.get_pricing_breakdown(plan, interval) for interval in BillingInterval}

    def get_pricing_comparison(
        self, plan_a: Any, plan_b: Any, billing_interval: BillingInterval | str
    ) -> PricingComparison:
        """
        Compare two plans on the same billing interval.

        ``difference`` is plan B minus plan A; ``savings`` is its absolute value.
        """
        breakdown_a = self.get_pricing_breakdown(plan_a, billing_interval)
        breakdown_b = self.get_pricing_breakdown(plan_b, billing_interval)
        difference = breakdown_b.final_price - breakdown_a.final_price

        return PricingComparison(
            plan_a=breakdown_a,
            plan_b=breakdown_b,
            difference=difference,
            savings=abs(difference),
        )

    def calculate_prorated_amount(
        self,
        current_plan: Any,
        new_plan: Any,
        billing_interval: BillingInterval | str,
        days_remaining: int,
    ) -> ProratedPlanChange:
        """
        Estimate a plan change from daily rates over 30-day months.

        Negative ``days_remaining`` is treated as zero.
        """
        interval = BillingInterval.parse(billing_interval)
        months = self._config.get_months(interval)
        precision = self._config.precision
        days = max(int(days_remaining), 0)
        period_days = Decimal(months * DAYS_PER_MONTH)

        current_rate = max(to_decimal(_plan_value(current_plan, "base_price")), Decimal("0")) * months / period_days
        new_rate = max(to_decimal(_plan_value(new_plan, "base_price")), Decimal("0")) * months / period_days
        refund = round_amount(current_rate * days, precision)
        charge = round_amount(new_rate * days, precision)

        return ProratedPlanChange(
            days_remaining=days,
            current_plan_daily_rate=round_amount(current_rate, precision),
            new_plan_daily_rate=round_amount(new_rate, precision),
            current_plan_refund=refund,
            new_plan_charge=charge,
            net_amount=charge - refund,
        )


def _plan_value(plan: Any, field: str) -> Any:
    if isinstance(plan, dict):
        return plan.get(field)
    return getattr(plan, field, None)


def calculate_discounted_price(price: Decimal | float | int, discount_percentage: Decimal | float | int) -> Decimal:
    """
    Apply a percentage discount, never going below zero.

    Example:
        >>> calculate_discounted_price(Decimal("100"), 20)
        Decimal('80')
    """
    amount = to_decimal(price)
    pct = to_decimal(discount_percentage)
    return max(Decimal("0"), amount - amount * pct / Decimal("100"))


def calculate_savings(original_price: Decimal | float | int, discounted_price: Decimal | float | int) -> Decimal:
    """Amount saved by a discount; zero when the discounted price is higher."""
    return max(Decimal("0"), to_decimal(original_price) - to_decimal(discounted_price))


def format_billing_interval(billing_interval: BillingInterval | str) -> str:
    """Display label for a billing interval; unknown values are returned unchanged."""
    try:
        return INTERVAL_LABELS[BillingInterval.parse(billing_interval)]
    except ValueError:
        return str(billing_interval)


def format_discount(discount_percentage: Decimal | float | int) -> str:
    """Display label for a discount percentage."""
    pct = to_decimal(discount_percentage)
    if pct == 0:
        return "No discount"
    return f"{pct.normalize():f}% off"
