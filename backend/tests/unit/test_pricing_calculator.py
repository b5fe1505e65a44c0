"""
Unit tests for interval pricing.

Covers discount application, rounding, monthly equivalents, alias parsing
and per-instance configuration.
"""
from decimal import ROUND_HALF_UP, Decimal

import pydantic
import pytest

from rentalshop.models.subscription import BillingInterval
from rentalshop.schemas.pricing import PricingConfig
from rentalshop.services.pricing_service import (
    PricingCalculator,
    calculate_discounted_price,
    calculate_savings,
    format_billing_interval,
    format_discount,
)

BASIC = {"base_price": Decimal("29.99"), "currency": "USD"}


def test_quarterly_price_applies_five_percent_discount():
    """
    Given: A 29.99/month plan
    When: Priced quarterly
    Then: 29.99 x 3 = 89.97 less 5% is 85.47, with 4.50 discount
    """
    breakdown = PricingCalculator().get_pricing_breakdown(BASIC, BillingInterval.QUARTER)

    assert breakdown.total_price == Decimal("89.97")
    assert breakdown.final_price == Decimal("85.47")
    assert breakdown.discount == Decimal("5")
    assert breakdown.discount_amount == Decimal("4.50")
    assert breakdown.monthly_equivalent == Decimal("28.49")
    assert breakdown.total_months == 3
    assert breakdown.currency == "USD"


@pytest.mark.parametrize(
    "interval,final_price,monthly",
    [
        (BillingInterval.MONTH, "29.99", "29.99"),
        (BillingInterval.SEMI_ANNUAL, "161.95", "26.99"),
        (BillingInterval.YEAR, "287.90", "23.99"),
    ],
)
def test_default_discount_table(interval, final_price, monthly):
    """Month 0%, semi-annual 10% and year 20% off the multiplied total."""
    breakdown = PricingCalculator().get_pricing_breakdown(BASIC, interval)

    assert breakdown.final_price == Decimal(final_price)
    assert breakdown.monthly_equivalent == Decimal(monthly)
    assert breakdown.discount_amount == breakdown.total_price - breakdown.final_price


@pytest.mark.parametrize("alias", ["quarterly", "QUARTER", "quarter"])
def test_interval_aliases_price_the_same(alias):
    calculator = PricingCalculator()
    assert calculator.calculate_subscription_price(BASIC, alias) == Decimal("85.47")


@pytest.mark.parametrize("alias", ["yearly", "annual", "year"])
def test_yearly_aliases(alias):
    assert PricingCalculator().calculate_subscription_price(BASIC, alias) == Decimal("287.90")


def test_unknown_interval_raises():
    with pytest.raises(ValueError):
        PricingCalculator().get_pricing_breakdown(BASIC, "fortnight")


@pytest.mark.parametrize("base_price", [0, -10, "not-a-number", None])
def test_non_positive_base_price_yields_zero_breakdown(base_price):
    """
    Given: A plan with zero, negative or unreadable base price
    When: Priced yearly
    Then: Every amount is zero and the discount is still reported
    """
    breakdown = PricingCalculator().get_pricing_breakdown({"base_price": base_price}, BillingInterval.YEAR)

    assert breakdown.final_price == Decimal("0")
    assert breakdown.total_price == Decimal("0")
    assert breakdown.monthly_equivalent == Decimal("0")
    assert breakdown.discount == Decimal("20")


def test_float_base_price_is_exact():
    """29.99 given as a float must not pick up binary noise."""
    assert PricingCalculator().calculate_subscription_price({"base_price": 29.99}, "quarter") == Decimal("85.47")


def test_all_pricing_options_cover_every_interval():
    options = PricingCalculator().get_all_pricing_options(BASIC)

    assert list(options) == list(BillingInterval)
    assert options[BillingInterval.MONTH].final_price == Decimal("29.99")


def test_monthly_equivalent_never_exceeds_base_price():
    calculator = PricingCalculator()
    for interval in BillingInterval:
        breakdown = calculator.get_pricing_breakdown({"base_price": Decimal("49.50")}, interval)
        assert breakdown.monthly_equivalent <= Decimal("49.50")


def test_pricing_comparison_difference_is_b_minus_a():
    premium = {"base_price": Decimal("99.00")}
    comparison = PricingCalculator().get_pricing_comparison(premium, BASIC, "month")

    assert comparison.difference == Decimal("-69.01")
    assert comparison.savings == Decimal("69.01")


def test_update_config_merges_partial_discounts():
    """
    Given: A calculator with the default table
    When: Only the yearly discount is changed (via an alias key)
    Then: Other intervals keep their discount
    """
    calculator = PricingCalculator()
    config = calculator.update_config({"discounts": {"annual": 25}})

    assert config.get_discount(BillingInterval.YEAR) == Decimal("25")
    assert config.get_discount(BillingInterval.QUARTER) == Decimal("5")
    assert calculator.calculate_subscription_price(BASIC, "year") == Decimal("269.91")


def test_calculators_do_not_share_configuration():
    first = PricingCalculator()
    second = PricingCalculator()
    first.update_config({"discounts": {"quarter": 50}})

    assert second.get_config().get_discount(BillingInterval.QUARTER) == Decimal("5")


def test_get_config_returns_a_copy():
    calculator = PricingCalculator()
    config = calculator.get_config()
    config.discounts[BillingInterval.MONTH] = Decimal("99")

    assert calculator.get_config().get_discount(BillingInterval.MONTH) == Decimal("0")


@pytest.mark.parametrize("discounts", [{"month": -1}, {"year": 101}])
def test_discount_out_of_range_is_rejected(discounts):
    with pytest.raises(pydantic.ValidationError):
        PricingConfig(discounts=discounts)


def test_prorated_amount_uses_thirty_day_months():
    change = PricingCalculator().calculate_prorated_amount(
        {"base_price": Decimal("30.00")}, {"base_price": Decimal("60.00")}, "month", 15
    )

    assert change.current_plan_daily_rate == Decimal("1.00")
    assert change.new_plan_daily_rate == Decimal("2.00")
    assert change.current_plan_refund == Decimal("15.00")
    assert change.new_plan_charge == Decimal("30.00")
    assert change.net_amount == Decimal("15.00")


def test_prorated_amount_clamps_negative_days():
    change = PricingCalculator().calculate_prorated_amount(BASIC, BASIC, "month", -5)
    assert change.days_remaining == 0
    assert change.net_amount == Decimal("0")


def test_discount_helpers():
    assert calculate_discounted_price(Decimal("100"), 20) == Decimal("80")
    assert calculate_discounted_price(Decimal("100"), 150) == Decimal("0")
    assert calculate_savings(Decimal("100"), Decimal("80")) == Decimal("20")
    assert calculate_savings(Decimal("80"), Decimal("100")) == Decimal("0")


@pytest.mark.parametrize("price", [Decimal("0.99"), Decimal("29.99"), Decimal("750000")])
def test_discounted_price_bounds(price):
    assert calculate_discounted_price(price, 0) == price
    assert calculate_discounted_price(price, 100) == Decimal("0")


@pytest.mark.parametrize(
    "base_price,interval,expected",
    [
        ("29.99", BillingInterval.MONTH, "29.99"),
        ("10.00", BillingInterval.QUARTER, "28.50"),
        ("0.99", BillingInterval.QUARTER, "2.82"),
        ("19.99", BillingInterval.SEMI_ANNUAL, "107.95"),
        ("33.33", BillingInterval.SEMI_ANNUAL, "179.98"),
        ("99.00", BillingInterval.YEAR, "950.40"),
        ("14.45", BillingInterval.YEAR, "138.72"),
    ],
)
def test_final_price_is_discounted_multiple_of_base(base_price, interval, expected):
    """
    Given: A base price and an interval
    When: The breakdown is computed
    Then: final = base x months x (1 - discount), rounded half-up to cents
    """
    calculator = PricingCalculator()
    plan = {"base_price": Decimal(base_price), "currency": "USD"}
    config = calculator.get_config()
    months = config.get_months(interval)
    discount = config.get_discount(interval)

    breakdown = calculator.get_pricing_breakdown(plan, interval)

    exact = Decimal(base_price) * months * (Decimal("100") - discount) / Decimal("100")
    assert breakdown.final_price == exact.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    assert breakdown.final_price == Decimal(expected)


def test_format_helpers():
    assert format_billing_interval("semiAnnual") == "Six Months"
    assert format_billing_interval("quarterly") == "Quarterly"
    assert format_billing_interval("weekly") == "weekly"
    assert format_discount(0) == "No discount"
    assert format_discount(Decimal("5")) == "5% off"
