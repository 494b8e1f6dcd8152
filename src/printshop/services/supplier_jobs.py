"""Supplier jobs and price lists.

Jobs are the history the metric aggregator scores suppliers on. A
delivered job is frozen: its status can no longer move, though the courier
confirmation and the supplier rating may still be recorded.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from printshop.domain.enums import SupplierJobStatus, UserRole, UserStatus
from printshop.domain.errors import JobLockedError, RatingOutOfRangeError, ValidationError
from printshop.domain.models import SupplierJob, SupplierPrice, User, utc_now
from printshop.infra.stores import JobStore, PriceStore, SupplierStore, write_transaction

logger = logging.getLogger(__name__)


def _parse_job_status(status) -> SupplierJobStatus:
    try:
        return SupplierJobStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown job status: {status}")


class SupplierJobService:
    """Job lifecycle, supplier prices and supplier lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.jobs = JobStore(db)
        self.prices = PriceStore(db)
        self.suppliers = SupplierStore(db)

    async def _get_supplier(self, supplier_id: int) -> Optional[User]:
        user = await self.suppliers.get_user_by_id(supplier_id)
        if user is None or user.role != UserRole.SUPPLIER.value:
            return None
        return user

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(
        self,
        supplier_id: int,
        size_quantity_id: Optional[int] = None,
        quantity: int = 1,
        price_per_unit: Optional[float] = None,
        promised_delivery_days: Optional[int] = None,
        customer_id: Optional[int] = None,
        quote_id: Optional[int] = None,
        quote_item_id: Optional[int] = None,
    ) -> Optional[SupplierJob]:
        """Open a pending job for an assigned supplier. ``None`` if the supplier is unknown."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if promised_delivery_days is not None and promised_delivery_days < 0:
            raise ValidationError("Promised delivery days cannot be negative")

        if await self._get_supplier(supplier_id) is None:
            return None

        async with write_transaction(self.db, "create_job"):
            job = SupplierJob(
                supplier_id=supplier_id,
                customer_id=customer_id,
                quote_id=quote_id,
                quote_item_id=quote_item_id,
                size_quantity_id=size_quantity_id,
                quantity=quantity,
                price_per_unit=price_per_unit,
                status=SupplierJobStatus.PENDING.value,
                promised_delivery_days=promised_delivery_days,
                supplier_marked_ready=False,
            )
            self.db.add(job)

        logger.info("Job %s created for supplier %s (quote %s)", job.id, supplier_id, quote_id)
        return job

    async def update_job_status(self, job_id: int, status) -> Optional[SupplierJob]:
        target = _parse_job_status(status)
        async with write_transaction(self.db, "update_job_status"):
            job = await self.jobs.lock_job(job_id)
            if job is None:
                return None
            if job.status == SupplierJobStatus.DELIVERED.value:
                raise JobLockedError(job_id)
            previous = job.status
            job.status = target.value

        logger.info("Job %s status %s -> %s", job_id, previous, target.value)
        return job

    async def mark_job_ready(self, job_id: int) -> Optional[SupplierJob]:
        """Supplier reports the job finished; the ready time feeds promise keeping."""
        async with write_transaction(self.db, "mark_job_ready"):
            job = await self.jobs.lock_job(job_id)
            if job is None:
                return None
            if job.status == SupplierJobStatus.DELIVERED.value:
                raise JobLockedError(job_id)
            job.supplier_marked_ready = True
            job.supplier_ready_at = utc_now()
            job.status = SupplierJobStatus.READY.value

        logger.info("Job %s marked ready by supplier %s", job_id, job.supplier_id)
        return job

    async def confirm_job_ready(self, job_id: int, confirmed: bool = True) -> Optional[SupplierJob]:
        """Courier's independent check of a supplier's ready claim."""
        async with write_transaction(self.db, "confirm_job_ready"):
            job = await self.jobs.lock_job(job_id)
            if job is None:
                return None
            job.courier_confirmed_ready = confirmed

        logger.info("Job %s courier confirmation: %s", job_id, confirmed)
        return job

    async def rate_job(self, job_id: int, rating: float) -> Optional[SupplierJob]:
        if rating is None or not 1 <= rating <= 10:
            raise RatingOutOfRangeError(rating)
        async with write_transaction(self.db, "rate_job"):
            job = await self.jobs.lock_job(job_id)
            if job is None:
                return None
            job.supplier_rating = float(rating)

        logger.info("Job %s rated %s", job_id, rating)
        return job

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def upsert_supplier_price(
        self,
        supplier_id: int,
        size_quantity_id: int,
        price_per_unit: float,
        delivery_days: Optional[int] = None,
    ) -> Optional[SupplierPrice]:
        if price_per_unit < 0:
            raise ValidationError("Price cannot be negative")
        if delivery_days is not None and delivery_days < 0:
            raise ValidationError("Delivery days cannot be negative")

        if await self._get_supplier(supplier_id) is None:
            return None

        async with write_transaction(self.db, "upsert_supplier_price"):
            row = await self.prices.upsert_supplier_price(
                supplier_id, size_quantity_id, price_per_unit, delivery_days,
            )

        logger.info("Supplier %s price for unit %s set to %.2f", supplier_id, size_quantity_id, price_per_unit)
        return row

    async def get_supplier_prices_for_unit(self, size_quantity_id: int) -> list[SupplierPrice]:
        return await self.prices.get_supplier_prices_for_unit(size_quantity_id)

    # ------------------------------------------------------------------
    # Suppliers
    # ------------------------------------------------------------------

    async def get_active_suppliers(self) -> list[User]:
        return await self.suppliers.get_active_suppliers()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        return await self.suppliers.get_user_by_id(user_id)

    async def deactivate_supplier(self, supplier_id: int) -> Optional[User]:
        """Soft deactivation; history and prices stay for audit."""
        supplier = await self._get_supplier(supplier_id)
        if supplier is None:
            return None
        async with write_transaction(self.db, "deactivate_supplier"):
            supplier.status = UserStatus.DEACTIVATED.value

        logger.info("Supplier %s deactivated", supplier_id)
        return supplier
