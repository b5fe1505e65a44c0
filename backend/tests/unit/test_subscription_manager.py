"""
Unit tests for the subscription state machine.

Covers operation permissions, the transition table, access checks with grace
periods, period calculation, renewal eligibility and attention flags.
"""
from datetime import datetime, timedelta

import pytest

from rentalshop.exceptions import InvalidStateTransitionError, SubscriptionAccessError
from rentalshop.models.subscription import BillingInterval, SubscriptionStatus
from rentalshop.schemas.access import AttentionUrgency, SubscriptionOperation, SubscriptionValidationOptions
from rentalshop.schemas.error import ErrorCode
from rentalshop.services.subscription_manager import STATUS_TRANSITIONS, SubscriptionManager, add_months
from tests.utils.factories import SubscriptionFactory

NOW = datetime(2026, 6, 15, 12, 0)


@pytest.fixture
def manager() -> SubscriptionManager:
    return SubscriptionManager(grace_period_days=7, trial_ending_days=3, expiring_soon_days=7)


def _subscription(status: SubscriptionStatus, ends_in_days: float, **overrides) -> dict:
    end = NOW + timedelta(days=ends_in_days)
    data = {
        "status": status,
        "current_period_start": end - timedelta(days=30),
        "current_period_end": end,
    }
    if status == SubscriptionStatus.TRIAL:
        data["trial_end"] = end
    data.update(overrides)
    return SubscriptionFactory.create(data)


# Permissions and transitions


@pytest.mark.parametrize(
    "status,operation,allowed",
    [
        (SubscriptionStatus.ACTIVE, SubscriptionOperation.ADMIN, True),
        (SubscriptionStatus.TRIAL, SubscriptionOperation.CREATE, True),
        (SubscriptionStatus.TRIAL, SubscriptionOperation.DELETE, False),
        (SubscriptionStatus.PAST_DUE, SubscriptionOperation.READ, True),
        (SubscriptionStatus.PAST_DUE, SubscriptionOperation.UPDATE, False),
        (SubscriptionStatus.PAUSED, SubscriptionOperation.CREATE, False),
        (SubscriptionStatus.EXPIRED, SubscriptionOperation.READ, True),
        (SubscriptionStatus.CANCELLED, SubscriptionOperation.UPDATE, False),
    ],
)
def test_operation_permissions(manager, status, operation, allowed):
    assert manager.can_perform_operation(status, operation) is allowed


def test_every_status_can_read(manager):
    for status in SubscriptionStatus:
        assert SubscriptionOperation.READ in manager.get_allowed_operations(status)


def test_permission_lookup_accepts_status_aliases(manager):
    assert manager.can_perform_operation("canceled", "read") is True
    assert manager.can_perform_operation("trialing", "update") is True


def test_nothing_returns_to_trial(manager):
    for status in SubscriptionStatus:
        assert not manager.can_transition(status, SubscriptionStatus.TRIAL)


def test_expired_is_terminal(manager):
    assert STATUS_TRANSITIONS[SubscriptionStatus.EXPIRED] == frozenset()
    for status in SubscriptionStatus:
        assert not manager.can_transition(SubscriptionStatus.EXPIRED, status)


def test_assert_transition_raises_with_allowed_targets(manager):
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        manager.assert_transition(SubscriptionStatus.CANCELLED, SubscriptionStatus.ACTIVE)

    assert exc_info.value.code == ErrorCode.INVALID_STATE_TRANSITION
    assert exc_info.value.status_code == 409
    assert exc_info.value.details["allowed"] == ["expired"]


def test_valid_transitions(manager):
    assert manager.can_transition("trial", "active")
    assert manager.can_transition("active", "paused")
    assert manager.can_transition("paused", "active")
    assert manager.can_transition("past_due", "active")
    assert not manager.can_transition("trial", "paused")


# Access checks


def test_missing_subscription_is_denied(manager):
    result = manager.validate_access(None, now=NOW)

    assert result.is_valid is False
    assert result.error_code == ErrorCode.NO_SUBSCRIPTION
    assert result.status_code == 403


def test_active_subscription_is_valid(manager):
    result = manager.validate_access(_subscription(SubscriptionStatus.ACTIVE, 10), now=NOW)

    assert result.is_valid is True
    assert result.days_until_expiry == 10


@pytest.mark.parametrize(
    "status,code",
    [
        (SubscriptionStatus.CANCELLED, ErrorCode.SUBSCRIPTION_CANCELLED),
        (SubscriptionStatus.PAUSED, ErrorCode.SUBSCRIPTION_PAUSED),
        (SubscriptionStatus.EXPIRED, ErrorCode.SUBSCRIPTION_EXPIRED),
    ],
)
def test_inactive_statuses_are_denied(manager, status, code):
    result = manager.validate_access(_subscription(status, 10), now=NOW)

    assert result.is_valid is False
    assert result.error_code == code
    assert result.status_code == 402


def test_lapsed_active_subscription_in_grace_is_valid(manager):
    """
    Given: An active subscription whose period ended 3 days ago
    When: Access is checked with a 7-day grace period
    Then: Access is granted in grace and the stored status needs reconciling
    """
    result = manager.validate_access(_subscription(SubscriptionStatus.ACTIVE, -3), now=NOW)

    assert result.is_valid is True
    assert result.in_grace_period is True
    assert result.is_expired is True
    assert result.needs_status_update is True


def test_past_due_in_grace_is_valid_without_status_update(manager):
    result = manager.validate_access(_subscription(SubscriptionStatus.PAST_DUE, -3), now=NOW)

    assert result.is_valid is True
    assert result.in_grace_period is True
    assert result.needs_status_update is False


def test_lapsed_beyond_grace_is_denied(manager):
    result = manager.validate_access(_subscription(SubscriptionStatus.ACTIVE, -8), now=NOW)

    assert result.is_valid is False
    assert result.error_code == ErrorCode.SUBSCRIPTION_EXPIRED
    assert result.needs_status_update is True


def test_grace_override_per_check(manager):
    options = SubscriptionValidationOptions(grace_period_days=10)
    result = manager.validate_access(_subscription(SubscriptionStatus.ACTIVE, -8), options, now=NOW)

    assert result.is_valid is True
    assert result.in_grace_period is True


def test_ended_trial_gets_no_grace(manager):
    result = manager.validate_access(_subscription(SubscriptionStatus.TRIAL, -1), now=NOW)

    assert result.is_valid is False
    assert result.error_code == ErrorCode.TRIAL_EXPIRED


def test_require_active_rejects_trial_and_past_due(manager):
    options = SubscriptionValidationOptions(require_active=True)

    assert not manager.validate_access(_subscription(SubscriptionStatus.TRIAL, 5), options, now=NOW).is_valid
    assert not manager.validate_access(_subscription(SubscriptionStatus.PAST_DUE, 5), options, now=NOW).is_valid
    assert manager.validate_access(_subscription(SubscriptionStatus.ACTIVE, 5), options, now=NOW).is_valid


def test_skip_expiry_check(manager):
    options = SubscriptionValidationOptions(check_expiry=False)
    result = manager.validate_access(_subscription(SubscriptionStatus.ACTIVE, -30), options, now=NOW)

    assert result.is_valid is True
    assert result.in_grace_period is False


def test_assert_access_raises_typed_error(manager):
    with pytest.raises(SubscriptionAccessError) as exc_info:
        manager.assert_access(_subscription(SubscriptionStatus.PAUSED, 5), now=NOW)

    assert exc_info.value.code == ErrorCode.SUBSCRIPTION_PAUSED
    assert exc_info.value.details["status"] == "paused"


# Periods and renewal


def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert add_months(datetime(2025, 1, 31), 1) == datetime(2025, 2, 28)
    assert add_months(datetime(2025, 11, 30), 3) == datetime(2026, 2, 28)
    assert add_months(datetime(2025, 8, 31), 6) == datetime(2026, 2, 28)


def test_next_billing_date_uses_interval_months(manager):
    end = datetime(2026, 1, 15)
    assert manager.calculate_next_billing_date(end, BillingInterval.QUARTER) == datetime(2026, 4, 15)
    assert manager.calculate_next_billing_date(end, "yearly") == datetime(2027, 1, 15)


def test_calculate_period_for_active_subscription(manager):
    period = manager.calculate_period(_subscription(SubscriptionStatus.ACTIVE, 10), now=NOW)

    assert period.days_remaining == 10
    assert period.is_active is True
    assert period.is_trial is False
    assert period.next_billing_date == period.end_date


def test_calculate_period_for_scheduled_cancellation(manager):
    subscription = _subscription(SubscriptionStatus.ACTIVE, 10, cancel_at_period_end=True)
    period = manager.calculate_period(subscription, now=NOW)

    assert period.next_billing_date is None


def test_calculate_period_after_expiry(manager):
    period = manager.calculate_period(_subscription(SubscriptionStatus.ACTIVE, -2), now=NOW)

    assert period.days_remaining == 0
    assert period.is_active is False


def test_calculate_period_tolerates_missing_dates(manager):
    end = NOW + timedelta(days=10)
    without_start = manager.calculate_period({"status": "active", "current_period_end": end}, now=NOW)

    assert without_start.start_date is None
    assert without_start.end_date == end
    assert without_start.days_remaining == 10

    empty = manager.calculate_period({"status": "active"}, now=NOW)

    assert empty.end_date is None
    assert empty.days_remaining == 0
    assert empty.is_active is False
    assert empty.next_billing_date is None


@pytest.mark.parametrize(
    "offset,expired",
    [
        (timedelta(0), False),
        (timedelta(seconds=1), True),
        (timedelta(days=7), True),
    ],
)
def test_is_expired_boundary(manager, offset, expired):
    subscription = _subscription(SubscriptionStatus.ACTIVE, 0)

    assert manager.is_expired(subscription, now=NOW + offset) is expired


@pytest.mark.parametrize(
    "offset,exceeded",
    [
        (timedelta(0), False),
        (timedelta(seconds=1), False),
        (timedelta(days=7), False),
        (timedelta(days=7, seconds=1), True),
    ],
)
def test_grace_period_boundary(manager, offset, exceeded):
    subscription = _subscription(SubscriptionStatus.ACTIVE, 0)

    assert manager.is_grace_period_exceeded(subscription, now=NOW + offset) is exceeded


@pytest.mark.parametrize(
    "status,ends_in_days,overrides,can_renew",
    [
        (SubscriptionStatus.ACTIVE, -2, {}, True),
        (SubscriptionStatus.PAST_DUE, -2, {}, True),
        (SubscriptionStatus.ACTIVE, 10, {}, False),
        (SubscriptionStatus.ACTIVE, -10, {}, False),
        (SubscriptionStatus.ACTIVE, -2, {"cancel_at_period_end": True}, False),
        (SubscriptionStatus.CANCELLED, -2, {}, False),
        (SubscriptionStatus.EXPIRED, -2, {}, False),
        (SubscriptionStatus.PAUSED, 5, {}, False),
    ],
)
def test_renewal_eligibility(manager, status, ends_in_days, overrides, can_renew):
    eligibility = manager.validate_for_renewal(_subscription(status, ends_in_days, **overrides), now=NOW)

    assert eligibility.can_renew is can_renew
    if not can_renew:
        assert eligibility.reason


# Classification


def test_sort_by_status_priority(manager):
    subscriptions = [
        {"status": SubscriptionStatus.CANCELLED},
        {"status": SubscriptionStatus.TRIAL},
        {"status": SubscriptionStatus.ACTIVE},
        {"status": SubscriptionStatus.PAST_DUE},
    ]
    ordered = [sub["status"] for sub in manager.sort_by_status(subscriptions)]

    assert ordered == [
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.TRIAL,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELLED,
    ]


@pytest.mark.parametrize(
    "status,ends_in_days,urgency,needs_attention",
    [
        (SubscriptionStatus.EXPIRED, -20, AttentionUrgency.CRITICAL, True),
        (SubscriptionStatus.ACTIVE, -10, AttentionUrgency.CRITICAL, True),
        (SubscriptionStatus.TRIAL, -1, AttentionUrgency.CRITICAL, True),
        (SubscriptionStatus.ACTIVE, -2, AttentionUrgency.HIGH, True),
        (SubscriptionStatus.PAST_DUE, 5, AttentionUrgency.HIGH, True),
        (SubscriptionStatus.PAUSED, 5, AttentionUrgency.MEDIUM, True),
        (SubscriptionStatus.TRIAL, 2, AttentionUrgency.MEDIUM, True),
        (SubscriptionStatus.ACTIVE, 5, AttentionUrgency.LOW, True),
        (SubscriptionStatus.ACTIVE, 20, AttentionUrgency.LOW, False),
        (SubscriptionStatus.TRIAL, 10, AttentionUrgency.LOW, False),
    ],
)
def test_needs_attention(manager, status, ends_in_days, urgency, needs_attention):
    assessment = manager.needs_attention(_subscription(status, ends_in_days), now=NOW)

    assert assessment.urgency == urgency
    assert assessment.needs_attention is needs_attention
