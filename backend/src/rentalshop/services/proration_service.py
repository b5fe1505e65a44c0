"""Proration calculator for mid-period plan changes."""
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import structlog

from rentalshop.metrics import proration_calculations_total
from rentalshop.schemas.pricing import ProrationCalculation
from rentalshop.utils.currency import format_amount_for_currency, round_amount, to_decimal
from rentalshop.utils.time import to_naive_utc, utcnow

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86400


def should_apply_proration(current_price: Decimal | float | int, new_price: Decimal | float | int) -> bool:
    """
    Whether a plan change is charged immediately.

    Only upgrades are charged. Downgrade credits are computed but left for the
    billing policy to settle.
    """
    return to_decimal(new_price) > to_decimal(current_price)


class ProrationCalculator:
    """Computes days-remaining based charges and credits for plan changes."""

    def __init__(self, precision: int = 2):
        """Initialize the calculator with the rounding precision for amounts."""
        self.precision = precision

    def calculate_proration(
        self,
        current_subscription: Any,
        new_plan_price: Decimal | float | int,
        change_date: datetime | None = None,
    ) -> ProrationCalculation:
        """
        Calculate the prorated adjustment for switching to a new plan price.

        ``days_in_period`` is the period length rounded up to whole days.
        ``days_elapsed`` is the whole days between period start and the change
        date, clamped to ``[0, days_in_period]``, so a change date outside the
        period still yields a value. The signed adjustment is
        ``(new - current) * days_remaining / days_in_period``.

        The result depends only on the inputs: pass the same ``change_date`` to
        get the same calculation back.

        Args:
            current_subscription: Object exposing ``amount``,
                ``current_period_start`` and ``current_period_end``
            new_plan_price: Price of the new plan for the same interval
            change_date: Effective date of the change (defaults to now)

        Returns:
            ProrationCalculation with charge for upgrades and credit for downgrades
        """
        current_price = max(to_decimal(_value(current_subscription, "amount")), Decimal("0"))
        new_price = max(to_decimal(new_plan_price), Decimal("0"))

        is_upgrade = new_price > current_price
        is_downgrade = new_price < current_price

        days_in_period, days_remaining = _period_days(current_subscription, change_date)

        if days_in_period > 0:
            prorated_amount = round_amount(
                (new_price - current_price) * days_remaining / days_in_period, self.precision
            )
        else:
            prorated_amount = round_amount(Decimal("0"), self.precision)

        zero = round_amount(Decimal("0"), self.precision)
        charge_amount = prorated_amount if is_upgrade and prorated_amount > 0 else zero
        credit_amount = -prorated_amount if is_downgrade and prorated_amount < 0 else zero

        if is_upgrade:
            reason = f"Upgrade with {days_remaining} of {days_in_period} days remaining"
            direction = "upgrade"
        elif is_downgrade:
            reason = f"Downgrade with {days_remaining} of {days_in_period} days remaining"
            direction = "downgrade"
        else:
            reason = "Same price, no proration needed"
            direction = "none"

        proration_calculations_total.labels(direction=direction).inc()
        logger.debug(
            "proration_calculated",
            direction=direction,
            days_remaining=days_remaining,
            days_in_period=days_in_period,
            prorated_amount=str(prorated_amount),
        )

        return ProrationCalculation(
            is_upgrade=is_upgrade,
            is_downgrade=is_downgrade,
            current_plan_price=round_amount(current_price, self.precision),
            new_plan_price=round_amount(new_price, self.precision),
            days_remaining=days_remaining,
            days_in_period=days_in_period,
            prorated_amount=prorated_amount,
            credit_amount=credit_amount,
            charge_amount=charge_amount,
            reason=reason,
        )

    def calculate_interval_switch(
        self,
        current_subscription: Any,
        new_interval_price: Decimal | float | int,
        change_date: datetime | None = None,
    ) -> ProrationCalculation:
        """
        Settle an immediate switch to a different billing interval.

        The new interval starts a fresh period on the change date, so the full
        new price is due less a credit for the unused part of the current
        period. The unused credit is rounded before it is netted off:
        ``new - round(current * days_remaining / days_in_period)``.

        Args:
            current_subscription: Object exposing ``amount``,
                ``current_period_start`` and ``current_period_end``
            new_interval_price: Price of a full period on the new interval
            change_date: Effective date of the switch (defaults to now)

        Returns:
            ProrationCalculation whose charge or credit is the net amount due
        """
        current_price = max(to_decimal(_value(current_subscription, "amount")), Decimal("0"))
        new_price = max(to_decimal(new_interval_price), Decimal("0"))
        days_in_period, days_remaining = _period_days(current_subscription, change_date)

        if days_in_period > 0:
            unused_credit = round_amount(current_price * days_remaining / days_in_period, self.precision)
        else:
            unused_credit = round_amount(Decimal("0"), self.precision)
        prorated_amount = round_amount(new_price - unused_credit, self.precision)

        zero = round_amount(Decimal("0"), self.precision)
        is_upgrade = prorated_amount > 0
        is_downgrade = prorated_amount < 0
        direction = "upgrade" if is_upgrade else "downgrade" if is_downgrade else "none"
        reason = (
            f"Billing interval switch crediting {unused_credit} for {days_remaining} "
            f"of {days_in_period} unused days"
        )

        proration_calculations_total.labels(direction=direction).inc()
        logger.debug(
            "interval_switch_calculated",
            direction=direction,
            unused_credit=str(unused_credit),
            prorated_amount=str(prorated_amount),
        )

        return ProrationCalculation(
            is_upgrade=is_upgrade,
            is_downgrade=is_downgrade,
            current_plan_price=round_amount(current_price, self.precision),
            new_plan_price=round_amount(new_price, self.precision),
            days_remaining=days_remaining,
            days_in_period=days_in_period,
            prorated_amount=prorated_amount,
            credit_amount=-prorated_amount if is_downgrade else zero,
            charge_amount=prorated_amount if is_upgrade else zero,
            reason=reason,
        )

    def no_proration(
        self, current_price: Decimal | float | int, new_price: Decimal | float | int, reason: str
    ) -> ProrationCalculation:
        """A plan change that settles nothing, such as one made during a free trial."""
        current = max(to_decimal(current_price), Decimal("0"))
        new = max(to_decimal(new_price), Decimal("0"))
        zero = round_amount(Decimal("0"), self.precision)
        proration_calculations_total.labels(direction="none").inc()
        return ProrationCalculation(
            is_upgrade=new > current,
            is_downgrade=new < current,
            current_plan_price=round_amount(current, self.precision),
            new_plan_price=round_amount(new, self.precision),
            days_remaining=0,
            days_in_period=0,
            prorated_amount=zero,
            credit_amount=zero,
            charge_amount=zero,
            reason=reason,
        )

    def should_apply_proration(self, current_price: Decimal | float | int, new_price: Decimal | float | int) -> bool:
        """See :func:`should_apply_proration`."""
        return should_apply_proration(current_price, new_price)

    def format_proration(self, proration: ProrationCalculation, currency: str = "USD") -> str:
        """Human-readable summary of a proration result."""
        if proration.charge_amount > 0:
            return f"Charge {format_amount_for_currency(proration.charge_amount, currency)} ({proration.reason})"
        if proration.credit_amount > 0:
            return f"Credit {format_amount_for_currency(proration.credit_amount, currency)} ({proration.reason})"
        return "No proration needed"


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def _period_days(current_subscription: Any, change_date: datetime | None) -> tuple[int, int]:
    """(days_in_period, days_remaining) with elapsed days clamped to the period."""
    period_start = _value(current_subscription, "current_period_start")
    period_end = _value(current_subscription, "current_period_end")
    if period_start is None or period_end is None:
        return 0, 0

    period_start = to_naive_utc(period_start)
    period_end = to_naive_utc(period_end)
    days_in_period = max(_ceil_days(period_end - period_start), 0)
    if days_in_period == 0:
        return 0, 0

    effective_date = to_naive_utc(change_date) if change_date else utcnow()
    days_elapsed = math.floor((effective_date - period_start).total_seconds() / SECONDS_PER_DAY)
    days_elapsed = min(max(days_elapsed, 0), days_in_period)
    return days_in_period, days_in_period - days_elapsed


def _value(obj: Any, field: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(field)
    return getattr(obj, field, None)
