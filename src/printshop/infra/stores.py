"""Per-entity data-access stores.

Each store wraps an ``AsyncSession`` and exposes the narrow set of reads the
pricing core consumes. Reads degrade gracefully: when the database is
unreachable they log a warning and return an empty collection or neutral
default so the UI can render an empty state. Writes go through
``write_transaction`` which commits on success, rolls back on any failure,
and converts connectivity failures into ``StorageUnavailableError``.
"""

import functools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.domain.enums import UserRole, UserStatus
from printshop.domain.errors import StorageUnavailableError
from printshop.domain.models import (
    BaseProduct,
    Category,
    ProductSize,
    Quote,
    QuoteItem,
    SizeQuantity,
    SupplierJob,
    SupplierPrice,
    SystemSetting,
    User,
    utc_now,
)

logger = logging.getLogger(__name__)

# Driver-level failures that mean "the store is not there", not "bad query"
STORAGE_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError)


def degrade_read(default_factory):
    """Decorator: return ``default_factory()`` when the store is unreachable."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except STORAGE_UNAVAILABLE_ERRORS as e:
                logger.warning("%s: storage unavailable, serving default (%s)", fn.__qualname__, e)
                try:
                    await self.db.rollback()
                except STORAGE_UNAVAILABLE_ERRORS:
                    pass  # Connection already gone
                return default_factory()

        return wrapper

    return decorator


@asynccontextmanager
async def write_transaction(db: AsyncSession, operation: str):
    """Commit the enclosed writes atomically or not at all."""
    try:
        yield
        await db.commit()
    except STORAGE_UNAVAILABLE_ERRORS as e:
        logger.error("%s failed, storage unavailable: %s", operation, e)
        try:
            await db.rollback()
        except STORAGE_UNAVAILABLE_ERRORS:
            pass
        raise StorageUnavailableError(operation) from e
    except Exception:
        await db.rollback()
        raise


class _Store:
    def __init__(self, db: AsyncSession):
        self.db = db


# ---------------------------------------------------------------------------
# Users / suppliers
# ---------------------------------------------------------------------------


class SupplierStore(_Store):
    """Supplier and user lookups."""

    @degrade_read(list)
    async def get_active_suppliers(self) -> list[User]:
        result = await self.db.execute(
            select(User)
            .where(
                User.role == UserRole.SUPPLIER.value,
                User.status == UserStatus.ACTIVE.value,
            )
            .order_by(User.id)
        )
        return list(result.scalars().all())

    @degrade_read(lambda: None)
    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    @degrade_read(dict)
    async def get_users_by_ids(self, user_ids: Iterable[int]) -> dict[int, User]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {u.id: u for u in result.scalars().all()}


# ---------------------------------------------------------------------------
# Supplier prices
# ---------------------------------------------------------------------------


def _eligible_price_query():
    """Active price rows of active suppliers."""
    return (
        select(SupplierPrice)
        .join(User, SupplierPrice.supplier_id == User.id)
        .where(
            SupplierPrice.is_active.is_(True),
            User.role == UserRole.SUPPLIER.value,
            User.status == UserStatus.ACTIVE.value,
        )
    )


class PriceStore(_Store):
    """Supplier price rows per product unit."""

    @degrade_read(list)
    async def get_supplier_prices_for_unit(self, size_quantity_id: int) -> list[SupplierPrice]:
        result = await self.db.execute(
            _eligible_price_query()
            .where(SupplierPrice.size_quantity_id == size_quantity_id)
            .order_by(SupplierPrice.price_per_unit, SupplierPrice.supplier_id)
        )
        return list(result.scalars().all())

    @degrade_read(dict)
    async def get_prices_for_units(self, size_quantity_ids: Iterable[int]) -> dict[int, list[SupplierPrice]]:
        """Map each unit id to its eligible price rows (one parameterised IN query)."""
        ids = sorted(set(size_quantity_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            _eligible_price_query()
            .where(SupplierPrice.size_quantity_id.in_(ids))
            .order_by(SupplierPrice.size_quantity_id, SupplierPrice.supplier_id)
        )
        by_unit: dict[int, list[SupplierPrice]] = {}
        for row in result.scalars().all():
            by_unit.setdefault(row.size_quantity_id, []).append(row)
        return by_unit

    @degrade_read(lambda: 0.0)
    async def average_price(self, size_quantity_id: Optional[int] = None) -> float:
        query = (
            select(func.avg(SupplierPrice.price_per_unit))
            .join(User, SupplierPrice.supplier_id == User.id)
            .where(
                SupplierPrice.is_active.is_(True),
                User.role == UserRole.SUPPLIER.value,
                User.status == UserStatus.ACTIVE.value,
            )
        )
        if size_quantity_id is not None:
            query = query.where(SupplierPrice.size_quantity_id == size_quantity_id)
        value = (await self.db.execute(query)).scalar()
        return float(value) if value is not None else 0.0

    @degrade_read(lambda: 0.0)
    async def supplier_price(self, supplier_id: int, size_quantity_id: Optional[int] = None) -> float:
        """The supplier's price for a unit, or their average over all units."""
        if size_quantity_id is not None:
            query = select(SupplierPrice.price_per_unit).where(
                SupplierPrice.supplier_id == supplier_id,
                SupplierPrice.size_quantity_id == size_quantity_id,
                SupplierPrice.is_active.is_(True),
            )
        else:
            query = select(func.avg(SupplierPrice.price_per_unit)).where(
                SupplierPrice.supplier_id == supplier_id,
                SupplierPrice.is_active.is_(True),
            )
        value = (await self.db.execute(query)).scalar()
        return float(value) if value is not None else 0.0

    async def upsert_supplier_price(
        self,
        supplier_id: int,
        size_quantity_id: int,
        price_per_unit: float,
        delivery_days: Optional[int] = None,
    ) -> SupplierPrice:
        """Insert or update the single row for (supplier, unit). Caller commits."""
        result = await self.db.execute(
            select(SupplierPrice).where(
                SupplierPrice.supplier_id == supplier_id,
                SupplierPrice.size_quantity_id == size_quantity_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = SupplierPrice(
                supplier_id=supplier_id,
                size_quantity_id=size_quantity_id,
                price_per_unit=price_per_unit,
                delivery_days=delivery_days if delivery_days is not None else 3,
                is_active=True,
            )
            self.db.add(row)
        else:
            row.price_per_unit = price_per_unit
            if delivery_days is not None:
                row.delivery_days = delivery_days
            row.is_active = True
        await self.db.flush()
        return row


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass
class UnitInfo:
    """Display and category data for one product unit."""

    size_quantity_id: int
    product_name: str
    size_name: str
    quantity: int
    category_id: Optional[int]
    category_name: str


class ProductStore(_Store):
    """Product-unit catalog lookups."""

    @degrade_read(dict)
    async def get_unit_info(self, size_quantity_ids: Iterable[int]) -> dict[int, UnitInfo]:
        ids = sorted(set(size_quantity_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            select(
                SizeQuantity.id,
                SizeQuantity.quantity,
                ProductSize.name,
                BaseProduct.name,
                BaseProduct.category_id,
                Category.name,
            )
            .join(ProductSize, SizeQuantity.size_id == ProductSize.id)
            .join(BaseProduct, ProductSize.product_id == BaseProduct.id)
            .outerjoin(Category, BaseProduct.category_id == Category.id)
            .where(SizeQuantity.id.in_(ids))
        )
        info: dict[int, UnitInfo] = {}
        for sq_id, qty, size_name, product_name, category_id, category_name in result.all():
            info[sq_id] = UnitInfo(
                size_quantity_id=sq_id,
                product_name=product_name,
                size_name=size_name,
                quantity=qty,
                category_id=category_id,
                category_name=category_name or "General",
            )
        return info


# ---------------------------------------------------------------------------
# Supplier jobs
# ---------------------------------------------------------------------------


class JobStore(_Store):
    """Historical fulfillment records."""

    @degrade_read(list)
    async def get_supplier_jobs(
        self,
        supplier_id: int,
        statuses: Optional[Iterable[str]] = None,
        size_quantity_id: Optional[int] = None,
    ) -> list[SupplierJob]:
        query = select(SupplierJob).where(SupplierJob.supplier_id == supplier_id)
        if statuses is not None:
            query = query.where(SupplierJob.status.in_(list(statuses)))
        if size_quantity_id is not None:
            query = query.where(SupplierJob.size_quantity_id == size_quantity_id)
        result = await self.db.execute(query.order_by(SupplierJob.id))
        return list(result.scalars().all())

    @degrade_read(lambda: 0)
    async def count_jobs_in_category(self, supplier_id: int, category_id: int) -> int:
        result = await self.db.execute(
            select(func.count(SupplierJob.id))
            .join(SizeQuantity, SupplierJob.size_quantity_id == SizeQuantity.id)
            .join(ProductSize, SizeQuantity.size_id == ProductSize.id)
            .join(BaseProduct, ProductSize.product_id == BaseProduct.id)
            .where(
                SupplierJob.supplier_id == supplier_id,
                BaseProduct.category_id == category_id,
            )
        )
        return int(result.scalar() or 0)

    @degrade_read(lambda: None)
    async def get_job(self, job_id: int) -> Optional[SupplierJob]:
        return await self.db.get(SupplierJob, job_id)

    async def lock_job(self, job_id: int) -> Optional[SupplierJob]:
        result = await self.db.execute(
            select(SupplierJob)
            .where(SupplierJob.id == job_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class QuoteStore(_Store):
    """Quote and quote-item access."""

    @degrade_read(lambda: None)
    async def get_quote_by_id(self, quote_id: int) -> Optional[Quote]:
        return await self.db.get(Quote, quote_id)

    async def lock_quote(self, quote_id: int) -> Optional[Quote]:
        """Load a quote for update inside the caller's transaction.

        Renders SELECT ... FOR UPDATE where the backend supports it. SQLite
        takes no lock on a read, so a write that depends on what was read
        here must go through ``compare_and_set``.
        """
        result = await self.db.execute(
            select(Quote)
            .where(Quote.id == quote_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_set(self, quote_id: int, expected: dict, **values) -> bool:
        """Write ``values`` only if the row still holds every ``expected`` column value.

        Returns False when another transaction changed the row first. The
        loaded ``Quote`` in this session is synchronised with the new values.
        ``updated_at`` is set explicitly so no attribute is left expired.
        """
        values.setdefault("updated_at", utc_now())
        conditions = [Quote.id == quote_id]
        for name, value in expected.items():
            column = getattr(Quote, name)
            conditions.append(column.is_(None) if value is None else column == value)
        result = await self.db.execute(
            update(Quote)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    async def get_items(self, quote_id: int) -> list[QuoteItem]:
        result = await self.db.execute(
            select(QuoteItem)
            .where(QuoteItem.quote_id == quote_id)
            .order_by(QuoteItem.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @degrade_read(lambda: None)
    async def get_item(self, quote_item_id: int) -> Optional[QuoteItem]:
        return await self.db.get(QuoteItem, quote_item_id)

    @degrade_read(list)
    async def get_children(self, parent_ids: Iterable[int]) -> list[Quote]:
        ids = sorted(set(parent_ids))
        if not ids:
            return []
        result = await self.db.execute(
            select(Quote).where(Quote.parent_quote_id.in_(ids)).order_by(Quote.version, Quote.id)
        )
        return list(result.scalars().all())

    async def accumulate_customer_rating(self, customer_id: int, points: int, count_delta: int) -> None:
        """Atomically add to a customer's running rating totals."""
        await self.db.execute(
            update(User)
            .where(User.id == customer_id)
            .values(
                total_rating_points=func.coalesce(User.total_rating_points, 0) + points,
                rated_deals_count=func.coalesce(User.rated_deals_count, 0) + count_delta,
            )
            .execution_options(synchronize_session=False)
        )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class SettingsStore(_Store):
    """System settings key/value records."""

    @degrade_read(lambda: None)
    async def get_setting(self, key: str) -> Optional[dict]:
        result = await self.db.execute(select(SystemSetting.value).where(SystemSetting.key == key))
        return result.scalar_one_or_none()

    async def set_setting(
        self,
        key: str,
        value: dict,
        updated_by: Optional[int] = None,
        description: Optional[str] = None,
    ) -> None:
        """Insert or replace a setting. Caller commits."""
        result = await self.db.execute(select(SystemSetting).where(SystemSetting.key == key))
        row = result.scalar_one_or_none()
        if row is None:
            self.db.add(
                SystemSetting(key=key, value=value, description=description, updated_by=updated_by)
            )
        else:
            row.value = value
            row.updated_by = updated_by
        await self.db.flush()
