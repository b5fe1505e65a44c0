"""Subscription state machine: access checks, permissions, periods and attention flags.

The manager never changes a subscription itself. Payment events, renewal jobs
and admin actions drive transitions; the manager validates them against the
transition table and classifies the current state.
"""
import calendar
import math
from datetime import datetime, timedelta
from typing import Any, Iterable

import structlog

from rentalshop.exceptions import InvalidStateTransitionError, SubscriptionAccessError
from rentalshop.metrics import subscription_access_denied_total
from rentalshop.models.subscription import BillingInterval, SubscriptionStatus
from rentalshop.schemas.access import (
    AttentionAssessment,
    AttentionUrgency,
    RenewalEligibility,
    SubscriptionOperation,
    SubscriptionPeriod,
    SubscriptionValidationOptions,
    SubscriptionValidationResult,
)
from rentalshop.schemas.error import ErrorCode, get_status_code
from rentalshop.utils.time import to_naive_utc, utcnow

logger = structlog.get_logger(__name__)

S = SubscriptionStatus
Op = SubscriptionOperation

OPERATION_PERMISSIONS: dict[SubscriptionOperation, frozenset[SubscriptionStatus]] = {
    Op.READ: frozenset({S.TRIAL, S.ACTIVE, S.PAST_DUE, S.PAUSED, S.CANCELLED, S.EXPIRED}),
    Op.CREATE: frozenset({S.TRIAL, S.ACTIVE}),
    Op.UPDATE: frozenset({S.TRIAL, S.ACTIVE}),
    Op.DELETE: frozenset({S.ACTIVE}),
    Op.ADMIN: frozenset({S.ACTIVE}),
}

# Nothing transitions back to trial; expired is terminal
STATUS_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    S.TRIAL: frozenset({S.ACTIVE, S.PAST_DUE, S.CANCELLED, S.EXPIRED}),
    S.ACTIVE: frozenset({S.PAST_DUE, S.CANCELLED, S.PAUSED, S.EXPIRED}),
    S.PAST_DUE: frozenset({S.ACTIVE, S.CANCELLED, S.EXPIRED}),
    S.PAUSED: frozenset({S.ACTIVE, S.CANCELLED, S.EXPIRED}),
    S.CANCELLED: frozenset({S.EXPIRED}),
    S.EXPIRED: frozenset(),
}

STATUS_PRIORITY: dict[SubscriptionStatus, int] = {
    S.ACTIVE: 1,
    S.TRIAL: 2,
    S.PAST_DUE: 3,
    S.PAUSED: 4,
    S.EXPIRED: 5,
    S.CANCELLED: 6,
}

STATUS_MESSAGES: dict[SubscriptionStatus, str] = {
    S.TRIAL: "Your trial is active.",
    S.ACTIVE: "Your subscription is active.",
    S.PAST_DUE: "Payment is past due. Please update your payment method.",
    S.PAUSED: "Your subscription is paused. Some features may be limited.",
    S.CANCELLED: "Your subscription has been cancelled. Please choose a new plan.",
    S.EXPIRED: "Your subscription has expired. Please renew to continue.",
}


class SubscriptionManager:
    """
    Validates and classifies subscriptions.

    Subscriptions are read through attributes (or dict keys): ``status``,
    ``current_period_start``, ``current_period_end``, ``trial_end``,
    ``billing_interval`` and ``cancel_at_period_end``.

    Args:
        grace_period_days: Days of access kept after a paid period lapses
        trial_ending_days: Trial days left at which a trial needs attention
        expiring_soon_days: Period days left at which an active subscription needs attention
    """

    def __init__(self, grace_period_days: int = 7, trial_ending_days: int = 3, expiring_soon_days: int = 7):
        self.grace_period_days = grace_period_days
        self.trial_ending_days = trial_ending_days
        self.expiring_soon_days = expiring_soon_days

    @classmethod
    def from_settings(cls) -> "SubscriptionManager":
        """Build a manager from application settings."""
        from rentalshop.config import settings

        return cls(
            grace_period_days=settings.grace_period_days,
            trial_ending_days=settings.trial_ending_days,
            expiring_soon_days=settings.expiring_soon_days,
        )

    # Permissions and transitions

    def can_perform_operation(
        self, status: SubscriptionStatus | str, operation: SubscriptionOperation | str
    ) -> bool:
        """Look up whether a status permits an operation."""
        return SubscriptionStatus.parse(status) in OPERATION_PERMISSIONS[SubscriptionOperation(operation)]

    def get_allowed_operations(self, status: SubscriptionStatus | str) -> list[SubscriptionOperation]:
        """Operations permitted for a status, in declaration order."""
        parsed = SubscriptionStatus.parse(status)
        return [op for op in SubscriptionOperation if parsed in OPERATION_PERMISSIONS[op]]

    def can_transition(self, from_status: SubscriptionStatus | str, to_status: SubscriptionStatus | str) -> bool:
        """Whether the lifecycle allows moving between two statuses."""
        return SubscriptionStatus.parse(to_status) in STATUS_TRANSITIONS[SubscriptionStatus.parse(from_status)]

    def assert_transition(self, from_status: SubscriptionStatus | str, to_status: SubscriptionStatus | str) -> None:
        """
        Guard a status change.

        Raises:
            InvalidStateTransitionError: If the transition is not in the lifecycle table
        """
        source = SubscriptionStatus.parse(from_status)
        target = SubscriptionStatus.parse(to_status)
        if target not in STATUS_TRANSITIONS[source]:
            raise InvalidStateTransitionError(
                f"Cannot change subscription status from {source.value} to {target.value}",
                details={
                    "from_status": source.value,
                    "to_status": target.value,
                    "allowed": sorted(s.value for s in STATUS_TRANSITIONS[source]),
                },
            )

    def get_error_message(self, status: SubscriptionStatus | str) -> str:
        """User-facing message for a status."""
        try:
            return STATUS_MESSAGES[SubscriptionStatus.parse(status)]
        except ValueError:
            return "Subscription status error. Please contact support."

    # Expiry and grace

    def get_expiry_date(self, subscription: Any) -> datetime | None:
        """Trial end while in trial (when set), otherwise the current period end."""
        status = SubscriptionStatus.parse(_value(subscription, "status"))
        trial_end = _value(subscription, "trial_end")
        if status == S.TRIAL and trial_end is not None:
            return to_naive_utc(trial_end)
        period_end = _value(subscription, "current_period_end")
        return to_naive_utc(period_end) if period_end is not None else None

    def is_expired(self, subscription: Any, now: datetime | None = None) -> bool:
        """True once ``now`` is past the expiry date."""
        expiry = self.get_expiry_date(subscription)
        if expiry is None:
            return False
        return _now(now) > expiry

    def is_grace_period_exceeded(
        self, subscription: Any, grace_period_days: int | None = None, now: datetime | None = None
    ) -> bool:
        """True once ``now`` is past the expiry date plus the grace window."""
        expiry = self.get_expiry_date(subscription)
        if expiry is None:
            return False
        grace = self.grace_period_days if grace_period_days is None else grace_period_days
        return _now(now) > expiry + timedelta(days=grace)

    def validate_access(
        self,
        subscription: Any | None,
        options: SubscriptionValidationOptions | None = None,
        now: datetime | None = None,
    ) -> SubscriptionValidationResult:
        """
        Decide whether a subscription grants access right now.

        Cancelled, paused and expired statuses deny access. An ended trial is
        denied with no grace. A lapsed paid period (active or past due) keeps
        access until the grace window closes; in that window the result is valid
        with ``in_grace_period`` set, and ``needs_status_update`` flags that the
        stored status lags behind the dates.

        Args:
            subscription: Subscription record, or None when the merchant has none
            options: Per-check overrides
            now: Reference time (defaults to the current UTC time)

        Returns:
            SubscriptionValidationResult
        """
        options = options or SubscriptionValidationOptions()
        current = _now(now)

        if subscription is None:
            return self._deny(None, ErrorCode.NO_SUBSCRIPTION, "No active subscription found. Please subscribe to a plan.")

        status = SubscriptionStatus.parse(_value(subscription, "status"))
        expiry = self.get_expiry_date(subscription)
        days_until_expiry = _days_between(current, expiry) if expiry else None

        if status == S.CANCELLED:
            return self._deny(status, ErrorCode.SUBSCRIPTION_CANCELLED, STATUS_MESSAGES[status])
        if status == S.PAUSED:
            return self._deny(status, ErrorCode.SUBSCRIPTION_PAUSED, STATUS_MESSAGES[status])
        if status == S.EXPIRED:
            return self._deny(status, ErrorCode.SUBSCRIPTION_EXPIRED, STATUS_MESSAGES[status], is_expired=True)

        expired = options.check_expiry and self.is_expired(subscription, now=current)

        if status == S.TRIAL:
            if options.require_active or not options.allow_trial:
                return self._deny(status, ErrorCode.NO_SUBSCRIPTION, "A paid subscription is required for this action.")
            if expired:
                return self._deny(
                    status,
                    ErrorCode.TRIAL_EXPIRED,
                    "Your trial has ended. Please choose a plan to continue.",
                    is_expired=True,
                    needs_status_update=True,
                )
            return SubscriptionValidationResult(is_valid=True, status=status, days_until_expiry=days_until_expiry)

        if status == S.PAST_DUE and (options.require_active or not options.allow_past_due):
            return self._deny(status, ErrorCode.SUBSCRIPTION_EXPIRED, STATUS_MESSAGES[status])

        if expired:
            if self.is_grace_period_exceeded(subscription, options.grace_period_days, now=current):
                return self._deny(
                    status,
                    ErrorCode.SUBSCRIPTION_EXPIRED,
                    "Subscription has expired. Please renew to continue.",
                    is_expired=True,
                    needs_status_update=True,
                )
            return SubscriptionValidationResult(
                is_valid=True,
                status=status,
                is_expired=True,
                in_grace_period=True,
                needs_status_update=status != S.PAST_DUE,
                days_until_expiry=days_until_expiry,
            )

        return SubscriptionValidationResult(is_valid=True, status=status, days_until_expiry=days_until_expiry)

    def assert_access(
        self,
        subscription: Any | None,
        options: SubscriptionValidationOptions | None = None,
        now: datetime | None = None,
    ) -> SubscriptionValidationResult:
        """
        Throwing variant of :meth:`validate_access`.

        Raises:
            SubscriptionAccessError: If access is denied
        """
        result = self.validate_access(subscription, options, now)
        if not result.is_valid:
            raise SubscriptionAccessError(
                result.error,
                code=result.error_code,
                details={
                    "status": result.status.value if result.status else None,
                    "is_expired": result.is_expired,
                    "needs_status_update": result.needs_status_update,
                },
            )
        return result

    def _deny(
        self,
        status: SubscriptionStatus | None,
        code: ErrorCode,
        message: str,
        is_expired: bool = False,
        needs_status_update: bool = False,
    ) -> SubscriptionValidationResult:
        subscription_access_denied_total.labels(error_code=code.value).inc()
        logger.info(
            "subscription_access_denied",
            status=status.value if status else None,
            error_code=code.value,
        )
        return SubscriptionValidationResult(
            is_valid=False,
            status=status,
            error=message,
            error_code=code,
            status_code=get_status_code(code),
            is_expired=is_expired,
            needs_status_update=needs_status_update,
        )

    # Periods and renewal

    def calculate_period(self, subscription: Any, now: datetime | None = None) -> SubscriptionPeriod:
        """Describe the current billing period relative to ``now``."""
        current = _now(now)
        status = SubscriptionStatus.parse(_value(subscription, "status"))
        period_start = _value(subscription, "current_period_start")
        start = to_naive_utc(period_start) if period_start is not None else None
        end = self.get_expiry_date(subscription)
        expired = end is None or current > end
        billable = status in (S.TRIAL, S.ACTIVE, S.PAST_DUE) and not _value(subscription, "cancel_at_period_end")

        return SubscriptionPeriod(
            start_date=start,
            end_date=end,
            days_remaining=max(_days_between(current, end), 0) if end is not None else 0,
            is_active=status in (S.TRIAL, S.ACTIVE) and not expired,
            is_trial=status == S.TRIAL,
            next_billing_date=end if billable else None,
        )

    def calculate_next_billing_date(
        self, period_end: datetime, billing_interval: BillingInterval | str
    ) -> datetime:
        """Add the interval's calendar months to a period end (clamped to month end)."""
        return add_months(period_end, BillingInterval.parse(billing_interval).months)

    def validate_for_renewal(self, subscription: Any, now: datetime | None = None) -> RenewalEligibility:
        """
        Whether a subscription can be renewed.

        A lapsed period is renewable until the grace window closes; a live
        period only once it has ended. Expired, cancelled, paused and
        scheduled-for-cancellation subscriptions are not renewable.
        """
        current = _now(now)
        status = SubscriptionStatus.parse(_value(subscription, "status"))

        if status == S.CANCELLED:
            return RenewalEligibility(can_renew=False, reason="Cannot renew a cancelled subscription")
        if status == S.EXPIRED:
            return RenewalEligibility(can_renew=False, reason="Subscription has expired; start a new subscription")
        if status == S.PAUSED:
            return RenewalEligibility(can_renew=False, reason="Resume the subscription before renewing")
        if _value(subscription, "cancel_at_period_end"):
            return RenewalEligibility(can_renew=False, reason="Subscription is scheduled for cancellation")
        if self.is_grace_period_exceeded(subscription, now=current):
            return RenewalEligibility(can_renew=False, reason="Grace period exceeded")
        if status in (S.ACTIVE, S.TRIAL) and not self.is_expired(subscription, now=current):
            return RenewalEligibility(can_renew=False, reason="Subscription is still active")
        return RenewalEligibility(can_renew=True)

    # Classification

    def get_status_priority(self, status: SubscriptionStatus | str) -> int:
        """Sort key for statuses; lower is healthier."""
        return STATUS_PRIORITY.get(SubscriptionStatus.parse(status), 99)

    def sort_by_status(self, subscriptions: Iterable[Any]) -> list[Any]:
        """Stable sort by status priority."""
        return sorted(subscriptions, key=lambda sub: self.get_status_priority(_value(sub, "status")))

    def needs_attention(self, subscription: Any, now: datetime | None = None) -> AttentionAssessment:
        """
        Classify how urgently a subscription needs follow-up.

        critical: expired, cancelled, or lapsed beyond the grace window;
        high: past due, or lapsed but still in grace;
        medium: paused, or a trial ending within ``trial_ending_days``;
        low: an active period ending within ``expiring_soon_days``.
        """
        current = _now(now)
        status = SubscriptionStatus.parse(_value(subscription, "status"))
        expiry = self.get_expiry_date(subscription)
        days_remaining = _days_between(current, expiry) if expiry else None

        if status in (S.EXPIRED, S.CANCELLED):
            return AttentionAssessment(
                needs_attention=True,
                urgency=AttentionUrgency.CRITICAL,
                reason=f"Subscription is {status.value}",
                days_remaining=days_remaining,
            )
        if status != S.PAUSED and self.is_expired(subscription, now=current):
            if status == S.TRIAL or self.is_grace_period_exceeded(subscription, now=current):
                return AttentionAssessment(
                    needs_attention=True,
                    urgency=AttentionUrgency.CRITICAL,
                    reason="Trial has ended" if status == S.TRIAL else "Grace period exceeded",
                    days_remaining=days_remaining,
                )
            return AttentionAssessment(
                needs_attention=True,
                urgency=AttentionUrgency.HIGH,
                reason="Billing period ended, in grace period",
                days_remaining=days_remaining,
            )
        if status == S.PAST_DUE:
            return AttentionAssessment(
                needs_attention=True,
                urgency=AttentionUrgency.HIGH,
                reason="Payment is past due",
                days_remaining=days_remaining,
            )
        if status == S.PAUSED:
            return AttentionAssessment(
                needs_attention=True,
                urgency=AttentionUrgency.MEDIUM,
                reason="Subscription is paused",
                days_remaining=days_remaining,
            )
        if status == S.TRIAL and days_remaining is not None and days_remaining <= self.trial_ending_days:
            return AttentionAssessment(
                needs_attention=True,
                urgency=AttentionUrgency.MEDIUM,
                reason=f"Trial ends in {days_remaining} days",
                days_remaining=days_remaining,
            )
        if status == S.ACTIVE and days_remaining is not None and days_remaining <= self.expiring_soon_days:
            return AttentionAssessment(
                needs_attention=True,
                urgency=AttentionUrgency.LOW,
                reason=f"Subscription renews or expires in {days_remaining} days",
                days_remaining=days_remaining,
            )
        return AttentionAssessment(
            needs_attention=False,
            urgency=AttentionUrgency.LOW,
            reason="No action needed",
            days_remaining=days_remaining,
        )


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the target month's length.

    Example:
        >>> add_months(datetime(2024, 1, 31), 1)
        datetime.datetime(2024, 2, 29, 0, 0)
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _days_between(start: datetime, end: datetime) -> int:
    return math.ceil((end - start).total_seconds() / 86400)


def _now(now: datetime | None) -> datetime:
    return to_naive_utc(now) if now else utcnow()


def _value(obj: Any, field: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(field)
    return getattr(obj, field, None)
