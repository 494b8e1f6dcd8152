"""Supplier price-list routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.app.routes.auth import require_role
from printshop.app.routes.common import STAFF_ROLES, not_found, to_http_exception
from printshop.domain.enums import UserRole
from printshop.domain.errors import PrintShopError
from printshop.domain.models import User
from printshop.domain.schemas import SupplierPriceResponse, SupplierPriceUpsert
from printshop.infra.database import get_db
from printshop.services.supplier_jobs import SupplierJobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/suppliers", tags=["suppliers"])


@router.put("/{supplier_id}/prices", response_model=SupplierPriceResponse)
async def upsert_supplier_price(
    supplier_id: int,
    body: SupplierPriceUpsert,
    user: User = Depends(require_role(*STAFF_ROLES, "supplier")),
    db: AsyncSession = Depends(get_db),
):
    """Create or update the supplier's price for one product unit."""
    if user.role == UserRole.SUPPLIER.value and user.id != supplier_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your price list")
    try:
        row = await SupplierJobService(db).upsert_supplier_price(
            supplier_id, body.size_quantity_id, body.price_per_unit, body.delivery_days,
        )
    except PrintShopError as e:
        raise to_http_exception(e)
    if row is None:
        raise not_found("Supplier")
    return row


@router.get("/units/{size_quantity_id}/prices", response_model=list[SupplierPriceResponse])
async def get_unit_prices(
    size_quantity_id: int,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Active prices of active suppliers for one unit, cheapest first."""
    return await SupplierJobService(db).get_supplier_prices_for_unit(size_quantity_id)


@router.post("/{supplier_id}/deactivate")
async def deactivate_supplier(
    supplier_id: int,
    user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    try:
        supplier = await SupplierJobService(db).deactivate_supplier(supplier_id)
    except PrintShopError as e:
        raise to_http_exception(e)
    if supplier is None:
        raise not_found("Supplier")
    logger.info("Admin %s deactivated supplier %s", user.id, supplier_id)
    return {"id": supplier.id, "status": supplier.status}
