"""SQLAlchemy ORM models for the print-shop backend.

All models use SQLite-compatible types:
- Integer autoincrement primary keys (supplier ids double as ranking tie-breakers)
- JSON for structured settings (no JSONB)
- DateTime for timestamps (naive UTC, no TIMESTAMPTZ)
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from printshop.infra.database import Base


def utc_now() -> datetime:
    """Naive UTC timestamp, set client-side so values stay loaded after flush."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Users (customers, staff, suppliers, couriers)
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user. Suppliers are users with role=supplier."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255))
    email = Column(String(320), index=True)
    phone = Column(String(20))
    company_name = Column(String(255))
    role = Column(String(20), nullable=False, default="customer")  # admin, employee, customer, supplier, courier
    status = Column(String(20), nullable=False, default="pending_approval", index=True)
    supplier_number = Column(Integer, nullable=True)
    # Running deal-rating aggregates (customers)
    total_rating_points = Column(Integer, default=0)
    rated_deals_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)


# ---------------------------------------------------------------------------
# Product catalog
# ---------------------------------------------------------------------------


class Category(Base):
    """Product category (business cards, flyers, banners, ...)."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)


class BaseProduct(Base):
    """A printable product, independent of size and quantity."""

    __tablename__ = "base_products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True)

    category = relationship("Category")
    sizes = relationship("ProductSize", back_populates="product")


class ProductSize(Base):
    """A size variant of a base product."""

    __tablename__ = "product_sizes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("base_products.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)

    product = relationship("BaseProduct", back_populates="sizes")
    quantities = relationship("SizeQuantity", back_populates="size")


class SizeQuantity(Base):
    """Product unit: one size at one quantity tier. The atomic priced unit."""

    __tablename__ = "size_quantities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    size_id = Column(Integer, ForeignKey("product_sizes.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)

    size = relationship("ProductSize", back_populates="quantities")


# ---------------------------------------------------------------------------
# Supplier domain
# ---------------------------------------------------------------------------


class SupplierPrice(Base):
    """What one supplier charges for one product unit. Upserted, never duplicated."""

    __tablename__ = "supplier_prices"
    __table_args__ = (
        UniqueConstraint("supplier_id", "size_quantity_id", name="uq_supplier_price_unit"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    supplier_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    size_quantity_id = Column(Integer, ForeignKey("size_quantities.id"), nullable=False, index=True)
    price_per_unit = Column(Float, nullable=False)
    delivery_days = Column(Integer, default=3)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)


class SupplierJob(Base):
    """One historical fulfillment by a supplier. Feeds supplier scoring.

    Once delivered, only the rating and courier confirmation may change.
    """

    __tablename__ = "supplier_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    supplier_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    # Traceability only; jobs are not owned by quotes
    quote_id = Column(Integer, ForeignKey("quotes.id"), nullable=True, index=True)
    quote_item_id = Column(Integer, ForeignKey("quote_items.id"), nullable=True)
    size_quantity_id = Column(Integer, ForeignKey("size_quantities.id"), nullable=True, index=True)
    quantity = Column(Integer, default=1)
    price_per_unit = Column(Float)
    status = Column(String(20), nullable=False, default="pending", index=True)
    promised_delivery_days = Column(Integer, nullable=True)
    supplier_marked_ready = Column(Boolean, default=False)
    supplier_ready_at = Column(DateTime, nullable=True)
    courier_confirmed_ready = Column(Boolean, nullable=True)
    supplier_rating = Column(Float, nullable=True)  # 1-10, set after the fact
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class Quote(Base):
    """Versioned priced proposal. Revisions form a parent/child chain."""

    __tablename__ = "quotes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), nullable=False, default="draft", index=True)
    version = Column(Integer, nullable=False, default=1)
    parent_quote_id = Column(Integer, ForeignKey("quotes.id"), nullable=True, index=True)
    total_supplier_cost = Column(Float, default=0.0)
    final_value = Column(Float, default=0.0)
    rejection_reason = Column(Text, nullable=True)
    deal_rating = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    items = relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="QuoteItem.id",
    )


class QuoteItem(Base):
    """One product unit and quantity within a quote."""

    __tablename__ = "quote_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(Integer, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    size_quantity_id = Column(Integer, ForeignKey("size_quantities.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    supplier_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    supplier_cost = Column(Float, nullable=True)
    customer_price = Column(Float, default=0.0)
    delivery_days = Column(Integer, nullable=True)
    is_manual_price = Column(Boolean, default=False)
    is_upsell = Column(Boolean, default=False)
    # Courier tracking
    picked_up = Column(Boolean, default=False)
    picked_up_at = Column(DateTime, nullable=True)
    delivered = Column(Boolean, default=False)
    delivered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    quote = relationship("Quote", back_populates="items")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SystemSetting(Base):
    """Key/value configuration record (scoring weights, etc.)."""

    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(JSON, nullable=False)
    description = Column(Text, nullable=True)
    updated_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
