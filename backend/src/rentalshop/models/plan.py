"""Plan model for pricing plans and their resource limits."""
from sqlalchemy import Boolean, Column, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import relationship

from rentalshop.models.base import Base

# Limit value meaning "no cap" for a resource type
UNLIMITED = -1


class Plan(Base):
    """
    Pricing plan for merchant subscriptions.

    The base price is the monthly list price; interval prices are derived by the
    pricing calculator. Limits map resource types to a maximum count, with
    ``UNLIMITED`` as the only value that disables a cap.
    """

    __tablename__ = "plans"

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    trial_days = Column(Integer, nullable=False, default=0)
    limits = Column(JSON, nullable=False, default=dict)  # {outlets, users, products, customers, orders}
    features = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_popular = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="plan")

    def get_limit(self, entity_type: str) -> int:
        """Limit for a resource type; a missing entry is a zero allowance, not unlimited."""
        value = (self.limits or {}).get(entity_type)
        return int(value) if value is not None else 0

    def __repr__(self) -> str:
        """String representation."""
        return f"<Plan(id={self.id}, name={self.name}, base_price={self.base_price})>"
