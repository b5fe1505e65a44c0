"""Subscription service for business logic."""
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rentalshop.config import settings
from rentalshop.exceptions import BusinessRuleError, NotFoundError, ValidationError
from rentalshop.metrics import (
    subscription_transitions_total,
    subscriptions_created_total,
    subscriptions_renewed_total,
)
from rentalshop.models.merchant import Merchant
from rentalshop.models.plan import Plan
from rentalshop.models.subscription import BillingInterval, Subscription, SubscriptionHistory, SubscriptionStatus
from rentalshop.schemas.access import SubscriptionOperation
from rentalshop.schemas.error import ErrorCode
from rentalshop.schemas.pricing import PricingConfig, ProrationCalculation
from rentalshop.schemas.subscription import (
    PlanChangeResult,
    Subscription as SubscriptionSchema,
    SubscriptionCancel,
    SubscriptionCreate,
    SubscriptionPause,
    SubscriptionPlanChange,
    SubscriptionRenew,
    SubscriptionUpdate,
)
from rentalshop.services.pricing_service import PricingCalculator
from rentalshop.services.proration_service import ProrationCalculator, should_apply_proration
from rentalshop.services.subscription_manager import SubscriptionManager, add_months
from rentalshop.utils.currency import currencies_match
from rentalshop.utils.time import to_naive_utc, utcnow

logger = structlog.get_logger(__name__)


class SubscriptionService:
    """
    Service layer for subscription lifecycle operations.

    Every status change is checked against the manager's transition table and
    recorded in the subscription history.
    """

    def __init__(
        self,
        db: AsyncSession,
        pricing_calculator: PricingCalculator | None = None,
        manager: SubscriptionManager | None = None,
        proration_calculator: ProrationCalculator | None = None,
    ):
        """Initialize subscription service with database session and calculators."""
        self.db = db
        self.pricing = pricing_calculator or PricingCalculator(PricingConfig.from_settings())
        self.manager = manager or SubscriptionManager.from_settings()
        self.proration = proration_calculator or ProrationCalculator(self.pricing.get_config().precision)

    async def create_subscription(self, subscription_data: SubscriptionCreate) -> Subscription:
        """
        Create a new subscription.

        The subscription starts in trial when requested, when a trial end is
        given, or when the plan has trial days; otherwise it starts active with
        a full billing interval.

        Args:
            subscription_data: Subscription creation data

        Returns:
            Created subscription

        Raises:
            NotFoundError: If merchant or plan not found
            BusinessRuleError: If the merchant already has a subscription or the plan is inactive
            ValidationError: If the trial would end before it starts
        """
        merchant = await self.db.scalar(select(Merchant).where(Merchant.id == subscription_data.merchant_id))
        if not merchant:
            raise NotFoundError(
                f"Merchant {subscription_data.merchant_id} not found", code=ErrorCode.MERCHANT_NOT_FOUND
            )

        existing = await self.get_subscription_by_merchant(subscription_data.merchant_id)
        if existing:
            raise BusinessRuleError(
                f"Merchant {subscription_data.merchant_id} already has a subscription",
                code=ErrorCode.DUPLICATE_ENTRY,
                details={"subscription_id": str(existing.id)},
            )

        plan = await self._get_active_plan(subscription_data.plan_id)

        interval = subscription_data.billing_interval
        amount = self.pricing.calculate_subscription_price(plan, interval)
        start = to_naive_utc(subscription_data.start_date) if subscription_data.start_date else utcnow()

        wants_trial = subscription_data.status == SubscriptionStatus.TRIAL or (
            subscription_data.status is None and (subscription_data.trial_end is not None or plan.trial_days > 0)
        )

        trial_start = None
        trial_end = None
        if wants_trial:
            trial_days = plan.trial_days or settings.default_trial_days
            trial_start = start
            trial_end = (
                to_naive_utc(subscription_data.trial_end)
                if subscription_data.trial_end
                else start + timedelta(days=trial_days)
            )
            if trial_end <= start:
                raise ValidationError("trial_end must be after the subscription start")
            status = SubscriptionStatus.TRIAL
            period_end = trial_end
        else:
            status = SubscriptionStatus.ACTIVE
            period_end = add_months(start, interval.months)

        subscription = Subscription(
            merchant_id=subscription_data.merchant_id,
            plan_id=plan.id,
            status=status,
            billing_interval=interval,
            amount=amount,
            currency=plan.currency,
            current_period_start=start,
            current_period_end=period_end,
            trial_start=trial_start,
            trial_end=trial_end,
        )

        self.db.add(subscription)
        await self.db.flush()

        await self._create_history(subscription.id, "subscription_created", None, status.value)
        await self.db.refresh(subscription)

        subscriptions_created_total.labels(billing_interval=interval.value, status=status.value).inc()
        logger.info(
            "subscription_created",
            subscription_id=str(subscription.id),
            merchant_id=str(subscription.merchant_id),
            plan_id=str(plan.id),
            status=status.value,
            billing_interval=interval.value,
            amount=str(amount),
        )
        return subscription

    async def get_subscription(self, subscription_id: UUID) -> Subscription | None:
        """
        Get subscription by ID.

        Args:
            subscription_id: Subscription UUID

        Returns:
            Subscription or None if not found
        """
        result = await self.db.execute(select(Subscription).where(Subscription.id == subscription_id))
        return result.scalar_one_or_none()

    async def get_subscription_or_raise(self, subscription_id: UUID) -> Subscription:
        """
        Get subscription by ID.

        Raises:
            NotFoundError: If subscription not found
        """
        subscription = await self.get_subscription(subscription_id)
        if not subscription:
            raise NotFoundError(
                f"Subscription {subscription_id} not found", code=ErrorCode.SUBSCRIPTION_NOT_FOUND
            )
        return subscription

    async def get_subscription_by_merchant(self, merchant_id: UUID) -> Subscription | None:
        """Get the subscription of a merchant, if any."""
        result = await self.db.execute(select(Subscription).where(Subscription.merchant_id == merchant_id))
        return result.scalar_one_or_none()

    async def get_subscription_with_plan(self, subscription_id: UUID) -> Subscription:
        """
        Get subscription with eager-loaded plan.

        Raises:
            NotFoundError: If subscription not found
        """
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.id == subscription_id)
            .options(selectinload(Subscription.plan))
        )
        subscription = result.scalar_one_or_none()
        if not subscription:
            raise NotFoundError(
                f"Subscription {subscription_id} not found", code=ErrorCode.SUBSCRIPTION_NOT_FOUND
            )
        return subscription

    async def list_subscriptions(
        self,
        merchant_id: UUID | None = None,
        status: SubscriptionStatus | None = None,
        page: int = 1,
        page_size: int = 100,
    ) -> tuple[list[Subscription], int]:
        """
        List subscriptions with pagination.

        Args:
            merchant_id: Filter by merchant (optional)
            status: Filter by status (optional)
            page: Page number (1-indexed)
            page_size: Items per page

        Returns:
            Tuple of (subscriptions, total_count)
        """
        query = select(Subscription)

        if merchant_id:
            query = query.where(Subscription.merchant_id == merchant_id)
        if status:
            query = query.where(Subscription.status == status)

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query)

        query = query.order_by(Subscription.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)

        result = await self.db.execute(query)
        subscriptions = result.scalars().all()

        return list(subscriptions), total or 0

    async def update_subscription(self, subscription_id: UUID, update_data: SubscriptionUpdate) -> Subscription:
        """
        Update subscription fields.

        A status change must follow the lifecycle table. A new billing interval
        reprices the subscription at the current plan price.

        Raises:
            NotFoundError: If subscription not found
            InvalidStateTransitionError: If the status change is not allowed
            ValidationError: If the resulting period end is not after its start
        """
        subscription = await self.get_subscription_with_plan(subscription_id)

        if update_data.status is not None and update_data.status != subscription.status:
            await self._transition(subscription, update_data.status, "status_changed")

        if update_data.billing_interval is not None and update_data.billing_interval != subscription.billing_interval:
            old_interval = subscription.billing_interval
            subscription.billing_interval = update_data.billing_interval
            subscription.amount = self.pricing.calculate_subscription_price(
                subscription.plan, update_data.billing_interval
            )
            await self._create_history(
                subscription_id, "billing_interval_changed", old_interval.value, update_data.billing_interval.value
            )

        period_start = update_data.current_period_start or subscription.current_period_start
        period_end = update_data.current_period_end or subscription.current_period_end
        if update_data.current_period_start or update_data.current_period_end:
            period_start = to_naive_utc(period_start)
            period_end = to_naive_utc(period_end)
            if period_end <= period_start:
                raise ValidationError("current_period_end must be after current_period_start")
            subscription.current_period_start = period_start
            subscription.current_period_end = period_end

        if update_data.cancel_at_period_end is not None:
            if update_data.cancel_at_period_end and not subscription.cancel_at_period_end:
                await self._schedule_cancellation(subscription, None)
            elif not update_data.cancel_at_period_end and subscription.cancel_at_period_end:
                await self._clear_cancellation(subscription)

        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription

    async def cancel_subscription(
        self, subscription_id: UUID, cancel_data: SubscriptionCancel | None = None
    ) -> Subscription:
        """
        Cancel subscription now or at the end of the current period.

        Args:
            subscription_id: Subscription UUID
            cancel_data: Cancellation options (defaults to cancel at period end)

        Returns:
            Updated subscription

        Raises:
            NotFoundError: If subscription not found
            InvalidStateTransitionError: If the subscription can no longer be cancelled
        """
        cancel_data = cancel_data or SubscriptionCancel()
        subscription = await self.get_subscription_or_raise(subscription_id)
        self.manager.assert_transition(subscription.status, SubscriptionStatus.CANCELLED)

        if cancel_data.immediate:
            subscription.cancelled_at = utcnow()
            subscription.cancel_at_period_end = False
            subscription.cancel_reason = cancel_data.reason
            await self._transition(subscription, SubscriptionStatus.CANCELLED, "status_changed", cancel_data.reason)
        else:
            await self._schedule_cancellation(subscription, cancel_data.reason)

        await self.db.flush()
        await self.db.refresh(subscription)

        logger.info(
            "subscription_cancelled",
            subscription_id=str(subscription_id),
            immediate=cancel_data.immediate,
            reason=cancel_data.reason,
        )
        return subscription

    async def reactivate_subscription(self, subscription_id: UUID) -> Subscription:
        """
        Undo a scheduled cancellation (before period end).

        Raises:
            NotFoundError: If subscription not found
            BusinessRuleError: If already cancelled or not scheduled for cancellation
        """
        subscription = await self.get_subscription_or_raise(subscription_id)

        if subscription.status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
            raise BusinessRuleError(f"Cannot reactivate a {subscription.status.value} subscription")

        if not subscription.cancel_at_period_end:
            raise BusinessRuleError("Subscription is not scheduled for cancellation")

        await self._clear_cancellation(subscription)

        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription

    async def pause_subscription(self, subscription_id: UUID, pause_data: SubscriptionPause) -> Subscription:
        """
        Pause subscription.

        Raises:
            NotFoundError: If subscription not found
            InvalidStateTransitionError: If the subscription is not active
            ValidationError: If the resume date is in the past
        """
        subscription = await self.get_subscription_or_raise(subscription_id)
        now = utcnow()

        resumes_at = to_naive_utc(pause_data.resumes_at) if pause_data.resumes_at else None
        if resumes_at is not None and resumes_at <= now:
            raise ValidationError("resumes_at must be in the future")

        await self._transition(subscription, SubscriptionStatus.PAUSED, "status_changed")
        subscription.paused_at = now
        subscription.pause_resumes_at = resumes_at

        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription

    async def resume_subscription(self, subscription_id: UUID, now: datetime | None = None) -> Subscription:
        """
        Resume a paused subscription and extend its period by the pause length.

        Raises:
            NotFoundError: If subscription not found
            BusinessRuleError: If the subscription is not paused
        """
        subscription = await self.get_subscription_or_raise(subscription_id)

        if subscription.status != SubscriptionStatus.PAUSED:
            raise BusinessRuleError("Subscription is not paused")

        await self._resume(subscription, to_naive_utc(now) if now else utcnow())

        await self.db.flush()
        await self.db.refresh(subscription)
        return subscription

    async def preview_plan_change(
        self,
        subscription_id: UUID,
        new_plan_id: UUID,
        change_date: datetime | None = None,
        billing_interval: BillingInterval | None = None,
    ) -> ProrationCalculation:
        """
        Proration a plan change would produce, without applying it.

        Raises:
            NotFoundError: If subscription or plan not found
        """
        subscription = await self.get_subscription_or_raise(subscription_id)
        new_plan = await self._get_active_plan(new_plan_id)
        interval = billing_interval or subscription.billing_interval
        new_price = self.pricing.calculate_subscription_price(new_plan, interval)
        return self._prorate_change(subscription, new_price, interval, change_date)

    async def change_plan(self, subscription_id: UUID, plan_change: SubscriptionPlanChange) -> PlanChangeResult:
        """
        Switch plan immediately with proration.

        Upgrades are charged the prorated difference right away. Downgrades
        compute a credit that is recorded in history but not settled; the
        billing policy decides when to apply it.

        Switching billing interval restarts the period on the change date. The
        full price of the new interval is due, less a credit for the unused
        part of the old period.

        Changes made during a free trial reprice the subscription without any
        proration, and the trial period is kept.

        Args:
            subscription_id: Subscription UUID
            plan_change: Plan change request

        Returns:
            PlanChangeResult with the updated subscription and its proration

        Raises:
            NotFoundError: If subscription or plan not found
            BusinessRuleError: If the status does not allow updates, nothing would change or the currency differs
        """
        subscription = await self.get_subscription_or_raise(subscription_id)

        if not self.manager.can_perform_operation(subscription.status, SubscriptionOperation.UPDATE):
            raise BusinessRuleError(
                f"Cannot change plan for a {subscription.status.value} subscription",
                details={"status": subscription.status.value},
            )

        new_plan = await self._get_active_plan(plan_change.new_plan_id)
        interval = plan_change.billing_interval or subscription.billing_interval
        if new_plan.id == subscription.plan_id and interval == subscription.billing_interval:
            raise BusinessRuleError("Subscription is already on this plan and billing interval")
        if not currencies_match(subscription.currency, new_plan.currency):
            raise BusinessRuleError(
                "Cannot change to a plan billed in a different currency",
                details={"current_currency": subscription.currency, "new_currency": new_plan.currency},
            )

        change_date = to_naive_utc(plan_change.change_date) if plan_change.change_date else utcnow()
        in_trial = subscription.status == SubscriptionStatus.TRIAL
        interval_changed = interval != subscription.billing_interval
        new_price = self.pricing.calculate_subscription_price(new_plan, interval)
        proration = self._prorate_change(subscription, new_price, interval, change_date)
        if in_trial:
            charge_applied = False
        elif interval_changed:
            charge_applied = proration.charge_amount > 0
        else:
            charge_applied = should_apply_proration(subscription.amount, new_price) and (
                proration.charge_amount > 0
            )

        old_plan_id = subscription.plan_id
        subscription.plan_id = new_plan.id
        subscription.amount = new_price
        subscription.currency = new_plan.currency
        if interval_changed:
            await self._create_history(
                subscription_id, "billing_interval_changed", subscription.billing_interval.value, interval.value
            )
            subscription.billing_interval = interval
            if not in_trial:
                old_end = subscription.current_period_end
                subscription.current_period_start = change_date
                subscription.current_period_end = self.manager.calculate_next_billing_date(change_date, interval)
                await self._create_history(
                    subscription_id,
                    "period_restarted",
                    old_end.isoformat(),
                    subscription.current_period_end.isoformat(),
                    proration.reason,
                )

        if old_plan_id != new_plan.id:
            await self._create_history(
                subscription_id, "plan_changed", str(old_plan_id), str(new_plan.id), proration.reason
            )
        if charge_applied:
            await self._create_history(
                subscription_id, "proration_charged", None, str(proration.charge_amount), proration.reason
            )
        elif proration.credit_amount > 0:
            await self._create_history(
                subscription_id, "proration_credit_pending", None, str(proration.credit_amount), proration.reason
            )

        await self.db.flush()
        await self.db.refresh(subscription)

        logger.info(
            "subscription_plan_changed",
            subscription_id=str(subscription_id),
            old_plan_id=str(old_plan_id),
            new_plan_id=str(new_plan.id),
            billing_interval=interval.value,
            charge_amount=str(proration.charge_amount),
            credit_amount=str(proration.credit_amount),
            charge_applied=charge_applied,
        )

        return PlanChangeResult(
            subscription=SubscriptionSchema.model_validate(subscription),
            proration=proration,
            charge_applied=charge_applied,
        )

    def _prorate_change(
        self,
        subscription: Subscription,
        new_price: Decimal,
        interval: BillingInterval,
        change_date: datetime | None,
    ) -> ProrationCalculation:
        if subscription.status == SubscriptionStatus.TRIAL:
            return self.proration.no_proration(subscription.amount, new_price, "Plan changed during trial")
        if interval != subscription.billing_interval:
            return self.proration.calculate_interval_switch(subscription, new_price, change_date)
        return self.proration.calculate_proration(subscription, new_price, change_date)

    async def renew_subscription(
        self, subscription_id: UUID, renew_data: SubscriptionRenew | None = None, now: datetime | None = None
    ) -> Subscription:
        """
        Extend the subscription by one billing interval from its current expiry.

        Trials and past-due subscriptions become active. The amount is
        recalculated from the current plan price.

        Raises:
            NotFoundError: If subscription not found
            BusinessRuleError: If the subscription is not eligible for renewal
        """
        renew_data = renew_data or SubscriptionRenew()
        current = to_naive_utc(now) if now else utcnow()
        subscription = await self.get_subscription_with_plan(subscription_id)

        eligibility = self.manager.validate_for_renewal(subscription, now=current)
        if not eligibility.can_renew:
            raise BusinessRuleError(eligibility.reason, details={"status": subscription.status.value})

        interval = renew_data.billing_interval or subscription.billing_interval
        new_start = self.manager.get_expiry_date(subscription)
        new_end = self.manager.calculate_next_billing_date(new_start, interval)

        if subscription.status != SubscriptionStatus.ACTIVE:
            await self._transition(subscription, SubscriptionStatus.ACTIVE, "status_changed", "renewed")

        old_end = subscription.current_period_end
        subscription.billing_interval = interval
        subscription.amount = self.pricing.calculate_subscription_price(subscription.plan, interval)
        subscription.currency = subscription.plan.currency
        subscription.current_period_start = new_start
        subscription.current_period_end = new_end

        await self._create_history(subscription_id, "renewed", old_end.isoformat(), new_end.isoformat())

        await self.db.flush()
        await self.db.refresh(subscription)

        subscriptions_renewed_total.labels(billing_interval=interval.value).inc()
        logger.info(
            "subscription_renewed",
            subscription_id=str(subscription_id),
            billing_interval=interval.value,
            period_end=new_end.isoformat(),
            amount=str(subscription.amount),
        )
        return subscription

    async def process_lapsed_subscriptions(self, now: datetime | None = None) -> dict[str, int]:
        """
        Reconcile stored statuses with period dates.

        - paused subscriptions past their resume date are resumed
        - scheduled cancellations whose period ended become cancelled
        - ended trials become expired
        - lapsed paid periods become past due, then expired after the grace window
        - cancelled subscriptions past the grace window become expired

        Returns:
            Counts per outcome
        """
        current = to_naive_utc(now) if now else utcnow()
        counts = {"resumed": 0, "cancelled": 0, "past_due": 0, "expired": 0}

        result = await self.db.execute(
            select(Subscription).where(Subscription.status != SubscriptionStatus.EXPIRED)
        )
        subscriptions = result.scalars().all()

        for subscription in subscriptions:
            status = subscription.status

            if status == SubscriptionStatus.PAUSED:
                if subscription.pause_resumes_at and subscription.pause_resumes_at <= current:
                    await self._resume(subscription, current)
                    counts["resumed"] += 1
                continue

            if not self.manager.is_expired(subscription, now=current):
                continue

            grace_exceeded = self.manager.is_grace_period_exceeded(subscription, now=current)

            if status == SubscriptionStatus.CANCELLED:
                if grace_exceeded:
                    await self._transition(subscription, SubscriptionStatus.EXPIRED, "status_changed", "grace_period_exceeded")
                    counts["expired"] += 1
            elif subscription.cancel_at_period_end:
                subscription.cancelled_at = subscription.cancelled_at or current
                await self._transition(subscription, SubscriptionStatus.CANCELLED, "status_changed", "period_ended")
                counts["cancelled"] += 1
            elif status == SubscriptionStatus.TRIAL:
                await self._transition(subscription, SubscriptionStatus.EXPIRED, "status_changed", "trial_ended")
                counts["expired"] += 1
            elif grace_exceeded:
                await self._transition(subscription, SubscriptionStatus.EXPIRED, "status_changed", "grace_period_exceeded")
                counts["expired"] += 1
            elif status == SubscriptionStatus.ACTIVE:
                await self._transition(subscription, SubscriptionStatus.PAST_DUE, "status_changed", "period_ended")
                counts["past_due"] += 1

        await self.db.flush()
        return counts

    async def _get_active_plan(self, plan_id: UUID) -> Plan:
        plan = await self.db.scalar(select(Plan).where(Plan.id == plan_id))
        if not plan:
            raise NotFoundError(f"Plan {plan_id} not found", code=ErrorCode.PLAN_NOT_FOUND)
        if not plan.is_active:
            raise BusinessRuleError(f"Plan {plan_id} is inactive")
        return plan

    async def _transition(
        self,
        subscription: Subscription,
        new_status: SubscriptionStatus,
        event_type: str,
        reason: str | None = None,
    ) -> None:
        """Apply a validated status change and record it."""
        old_status = subscription.status
        self.manager.assert_transition(old_status, new_status)
        subscription.status = new_status

        await self._create_history(subscription.id, event_type, old_status.value, new_status.value, reason)
        subscription_transitions_total.labels(from_status=old_status.value, to_status=new_status.value).inc()
        logger.info(
            "subscription_status_changed",
            subscription_id=str(subscription.id),
            from_status=old_status.value,
            to_status=new_status.value,
            reason=reason,
        )

    async def _resume(self, subscription: Subscription, now: datetime) -> None:
        await self._transition(subscription, SubscriptionStatus.ACTIVE, "status_changed", "resumed")

        # Extend billing period by pause duration (calculate before clearing pause fields)
        if subscription.paused_at:
            if subscription.pause_resumes_at and subscription.pause_resumes_at > subscription.paused_at:
                pause_duration = min(subscription.pause_resumes_at, now) - subscription.paused_at
            else:
                pause_duration = now - subscription.paused_at
            subscription.current_period_end = subscription.current_period_end + pause_duration

        subscription.paused_at = None
        subscription.pause_resumes_at = None

    async def _schedule_cancellation(self, subscription: Subscription, reason: str | None) -> None:
        subscription.cancel_at_period_end = True
        subscription.cancelled_at = utcnow()
        subscription.cancel_reason = reason
        await self._create_history(
            subscription.id, "cancellation_scheduled", None, subscription.current_period_end.isoformat(), reason
        )

    async def _clear_cancellation(self, subscription: Subscription) -> None:
        subscription.cancel_at_period_end = False
        subscription.cancelled_at = None
        subscription.cancel_reason = None
        await self._create_history(subscription.id, "cancellation_removed", None, None)

    async def _create_history(
        self,
        subscription_id: UUID,
        event_type: str,
        old_value: str | None,
        new_value: str | None,
        reason: str | None = None,
    ) -> None:
        """Create subscription history record."""
        history = SubscriptionHistory(
            subscription_id=subscription_id,
            event_type=event_type,
            old_value=old_value,
            new_value=new_value,
            reason=reason,
        )
        self.db.add(history)
        await self.db.flush()
