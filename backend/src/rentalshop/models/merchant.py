"""Merchant-owned records counted against plan limits."""
import enum

from sqlalchemy import Boolean, Column, Enum as SQLEnum, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from rentalshop.models.base import Base


class UserRole(enum.Enum):
    """Platform user roles."""

    ADMIN = "ADMIN"  # Platform administrator, never counted against merchant limits
    MERCHANT = "MERCHANT"
    OUTLET_ADMIN = "OUTLET_ADMIN"
    OUTLET_STAFF = "OUTLET_STAFF"


class Merchant(Base):
    """
    Rental business tenant.

    Owns outlets, users, products and customers; orders belong to outlets.
    """

    __tablename__ = "merchants"

    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    currency = Column(String(3), nullable=False, default="USD")
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    outlets = relationship("Outlet", back_populates="merchant", cascade="all, delete-orphan")
    users = relationship("User", back_populates="merchant", cascade="all, delete-orphan")
    products = relationship("Product", back_populates="merchant", cascade="all, delete-orphan")
    customers = relationship("Customer", back_populates="merchant", cascade="all, delete-orphan")
    subscription = relationship("Subscription", back_populates="merchant", uselist=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Merchant(id={self.id}, name={self.name})>"


class Outlet(Base):
    """Physical or virtual shop location of a merchant."""

    __tablename__ = "outlets"

    merchant_id = Column(Uuid(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)

    merchant = relationship("Merchant", back_populates="outlets")
    orders = relationship("Order", back_populates="outlet", cascade="all, delete-orphan")


class User(Base):
    """Staff account belonging to a merchant."""

    __tablename__ = "users"

    merchant_id = Column(Uuid(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=True, index=True)
    email = Column(String, nullable=False, unique=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.OUTLET_STAFF)

    merchant = relationship("Merchant", back_populates="users")


class Product(Base):
    """Rentable product in a merchant catalogue."""

    __tablename__ = "products"

    merchant_id = Column(Uuid(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    rent_price = Column(Numeric(12, 2), nullable=False, default=0)

    merchant = relationship("Merchant", back_populates="products")


class Customer(Base):
    """Customer of a merchant."""

    __tablename__ = "customers"

    merchant_id = Column(Uuid(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)

    merchant = relationship("Merchant", back_populates="customers")


class Order(Base):
    """Rental order placed at an outlet; counted per merchant through the outlet."""

    __tablename__ = "orders"

    outlet_id = Column(Uuid(as_uuid=True), ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False, index=True)
    order_number = Column(String, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    outlet = relationship("Outlet", back_populates="orders")
