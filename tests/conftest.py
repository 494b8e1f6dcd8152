"""Shared test infrastructure for the print-shop test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- make_user / make_supplier / make_customer: factories for User rows
- make_category / make_product_unit: factories for Category and BaseProduct + ProductSize + SizeQuantity
- make_price: factory for SupplierPrice rows
- make_job: factory for SupplierJob rows with controllable timings
- make_quote: factory for Quote + QuoteItem rows
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from printshop.infra.database import Base

import printshop.domain.models  # noqa: F401

from printshop.domain.models import (
    BaseProduct,
    Category,
    ProductSize,
    Quote,
    QuoteItem,
    SizeQuantity,
    SupplierJob,
    SupplierPrice,
    User,
)

# Fixed creation time so delivery durations are exact
JOB_EPOCH = datetime(2025, 1, 6, 9, 0, 0)


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that inserts a User.

    Usage:
        admin = await make_user(role="admin")
    """
    counter = {"n": 0}

    async def _factory(role: str = "customer", status: str = "active", name: str | None = None, **kwargs) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=f"{role}{counter['n']}@example.com",
            role=role,
            status=status,
            total_rating_points=0,
            rated_deals_count=0,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _factory


@pytest.fixture
def make_supplier(make_user):
    async def _factory(name: str | None = None, status: str = "active", **kwargs) -> User:
        return await make_user(role="supplier", status=status, name=name, company_name=name, **kwargs)

    return _factory


@pytest.fixture
def make_customer(make_user):
    async def _factory(name: str | None = None, **kwargs) -> User:
        return await make_user(role="customer", name=name, **kwargs)

    return _factory


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@pytest.fixture
def make_category(db_session):
    async def _factory(name: str = "Cards") -> Category:
        category = Category(name=name)
        db_session.add(category)
        await db_session.commit()
        return category

    return _factory


@pytest.fixture
def make_product_unit(db_session):
    """Factory that inserts a priced unit with its category, product and size.

    Reusing a ``category`` groups several units under one category.
    """

    async def _factory(
        product_name: str = "Business Cards",
        size_name: str = "85x55mm",
        quantity: int = 500,
        category: Category | None = None,
        category_name: str = "Cards",
    ) -> SizeQuantity:
        if category is None:
            category = Category(name=category_name)
            db_session.add(category)
            await db_session.flush()
        product = BaseProduct(name=product_name, category_id=category.id, is_active=True)
        db_session.add(product)
        await db_session.flush()
        size = ProductSize(product_id=product.id, name=size_name)
        db_session.add(size)
        await db_session.flush()
        unit = SizeQuantity(size_id=size.id, quantity=quantity, is_active=True)
        db_session.add(unit)
        await db_session.commit()
        return unit

    return _factory


@pytest.fixture
def make_price(db_session):
    async def _factory(
        supplier: User,
        unit: SizeQuantity,
        price: float,
        delivery_days: int = 3,
        is_active: bool = True,
    ) -> SupplierPrice:
        row = SupplierPrice(
            supplier_id=supplier.id,
            size_quantity_id=unit.id,
            price_per_unit=price,
            delivery_days=delivery_days,
            is_active=is_active,
        )
        db_session.add(row)
        await db_session.commit()
        return row

    return _factory


# ---------------------------------------------------------------------------
# Supplier jobs
# ---------------------------------------------------------------------------

@pytest.fixture
def make_job(db_session):
    """Factory that inserts a SupplierJob.

    ``actual_days`` sets ``supplier_ready_at`` that many days after creation.
    """

    async def _factory(
        supplier: User,
        unit: SizeQuantity | None = None,
        status: str = "delivered",
        promised_days: int | None = None,
        actual_days: float | None = None,
        marked_ready: bool | None = None,
        courier_confirmed: bool | None = None,
        rating: float | None = None,
    ) -> SupplierJob:
        ready_at = JOB_EPOCH + timedelta(days=actual_days) if actual_days is not None else None
        job = SupplierJob(
            supplier_id=supplier.id,
            size_quantity_id=unit.id if unit else None,
            quantity=1,
            status=status,
            promised_delivery_days=promised_days,
            supplier_marked_ready=marked_ready if marked_ready is not None else ready_at is not None,
            supplier_ready_at=ready_at,
            courier_confirmed_ready=courier_confirmed,
            supplier_rating=rating,
            created_at=JOB_EPOCH,
        )
        db_session.add(job)
        await db_session.commit()
        return job

    return _factory


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

@pytest.fixture
def make_quote(db_session):
    """Factory that inserts a Quote with items.

    ``items`` is a list of ``(unit, quantity)`` or dicts of QuoteItem columns.
    """

    async def _factory(
        customer: User,
        items: list | None = None,
        status: str = "draft",
        version: int = 1,
        parent: Quote | None = None,
        **kwargs,
    ) -> Quote:
        kwargs.setdefault("total_supplier_cost", 0.0)
        kwargs.setdefault("final_value", 0.0)
        quote = Quote(
            customer_id=customer.id,
            status=status,
            version=version,
            parent_quote_id=parent.id if parent else None,
            **kwargs,
        )
        rows = []
        for entry in items or []:
            if isinstance(entry, dict):
                rows.append(QuoteItem(**entry))
            else:
                unit, qty = entry
                rows.append(QuoteItem(size_quantity_id=unit.id, quantity=qty, customer_price=0.0))
        quote.items = rows
        db_session.add(quote)
        await db_session.commit()
        return quote

    return _factory
