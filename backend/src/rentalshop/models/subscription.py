"""Subscription model for merchant subscriptions to plans."""
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship

from rentalshop.models.base import Base
from rentalshop.utils.time import utcnow


class SubscriptionStatus(enum.Enum):
    """Subscription lifecycle status."""

    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    PAUSED = "paused"
    EXPIRED = "expired"

    @classmethod
    def parse(cls, value: "str | SubscriptionStatus") -> "SubscriptionStatus":
        """
        Parse a status value, accepting the spellings older clients send.

        Raises:
            ValueError: If the value is not a known status
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        normalized = _STATUS_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown subscription status: {value}") from None


_STATUS_ALIASES = {
    "trialing": "trial",
    "canceled": "cancelled",
    "pastdue": "past_due",
    "past-due": "past_due",
}


class BillingInterval(enum.Enum):
    """Subscription renewal cadence."""

    MONTH = "month"
    QUARTER = "quarter"
    SEMI_ANNUAL = "semiAnnual"
    YEAR = "year"

    @property
    def months(self) -> int:
        """Number of calendar months covered by one billing period."""
        return _INTERVAL_MONTHS[self]

    @classmethod
    def parse(cls, value: "str | BillingInterval") -> "BillingInterval":
        """
        Parse a billing interval, reconciling the names used by create and update payloads.

        Accepts canonical values (``month``, ``quarter``, ``semiAnnual``, ``year``) and
        aliases such as ``monthly``, ``quarterly``, ``sixMonths`` or ``annual``.

        Raises:
            ValueError: If the value is not a known interval
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().replace("-", "").replace("_", "").replace(" ", "").lower()
        try:
            return _INTERVAL_ALIASES[key]
        except KeyError:
            raise ValueError(f"Unknown billing interval: {value}") from None


_INTERVAL_MONTHS = {
    BillingInterval.MONTH: 1,
    BillingInterval.QUARTER: 3,
    BillingInterval.SEMI_ANNUAL: 6,
    BillingInterval.YEAR: 12,
}

_INTERVAL_ALIASES = {
    "month": BillingInterval.MONTH,
    "monthly": BillingInterval.MONTH,
    "quarter": BillingInterval.QUARTER,
    "quarterly": BillingInterval.QUARTER,
    "semiannual": BillingInterval.SEMI_ANNUAL,
    "semiannually": BillingInterval.SEMI_ANNUAL,
    "sixmonths": BillingInterval.SEMI_ANNUAL,
    "halfyear": BillingInterval.SEMI_ANNUAL,
    "year": BillingInterval.YEAR,
    "yearly": BillingInterval.YEAR,
    "annual": BillingInterval.YEAR,
    "annually": BillingInterval.YEAR,
}


class Subscription(Base):
    """
    Merchant subscription to a pricing plan.

    Handles billing periods, trial periods, cancellations, and pausing.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("current_period_end > current_period_start", name="ck_subscriptions_period_order"),
    )

    merchant_id = Column(
        Uuid(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    plan_id = Column(Uuid(as_uuid=True), ForeignKey("plans.id"), nullable=False, index=True)
    status = Column(SQLEnum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    billing_interval = Column(SQLEnum(BillingInterval), nullable=False, default=BillingInterval.MONTH)
    amount = Column(Numeric(12, 2), nullable=False)  # Price charged per billing interval
    currency = Column(String(3), nullable=False, default="USD")
    current_period_start = Column(DateTime, nullable=False, default=utcnow)
    current_period_end = Column(DateTime, nullable=False, index=True)
    trial_start = Column(DateTime, nullable=True)
    trial_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    pause_resumes_at = Column(DateTime, nullable=True)  # Auto-resume date for paused subscriptions

    # Relationships
    merchant = relationship("Merchant", back_populates="subscription")
    plan = relationship("Plan", back_populates="subscriptions")
    history = relationship("SubscriptionHistory", back_populates="subscription", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Subscription(id={self.id}, merchant_id={self.merchant_id}, status={self.status.value})>"


class SubscriptionHistory(Base):
    """
    Audit trail for subscription changes.

    Tracks status changes, plan changes, renewals and cancellations.
    """

    __tablename__ = "subscription_history"

    subscription_id = Column(
        Uuid(as_uuid=True), ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type = Column(String, nullable=False)  # status_changed, plan_changed, renewed, ...
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    reason = Column(String, nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="history")

    def __repr__(self) -> str:
        """String representation."""
        return f"<SubscriptionHistory(subscription_id={self.subscription_id}, event={self.event_type})>"
