"""SQLAlchemy ORM models for the rental-shop billing engine."""
# Import all models here to ensure they are registered with Alembic

from rentalshop.models.base import Base
from rentalshop.models.merchant import Customer, Merchant, Order, Outlet, Product, User, UserRole
from rentalshop.models.plan import UNLIMITED, Plan
from rentalshop.models.subscription import (
    BillingInterval,
    Subscription,
    SubscriptionHistory,
    SubscriptionStatus,
)

__all__ = [
    "Base",
    "Merchant",
    "Outlet",
    "User",
    "UserRole",
    "Product",
    "Customer",
    "Order",
    "Plan",
    "UNLIMITED",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionHistory",
    "BillingInterval",
]
