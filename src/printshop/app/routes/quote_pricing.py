"""Quote pricing routes: commit supplier selections and keep totals in step."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.app.config import get_settings
from printshop.app.routes.auth import require_role
from printshop.app.routes.common import STAFF_ROLES, build_scoring_strategy, not_found, to_http_exception
from printshop.domain.errors import PrintShopError
from printshop.domain.models import User
from printshop.domain.schemas import AutoPopulateRequest, ItemPricingUpdate, SelectSupplierRequest
from printshop.infra.database import get_db
from printshop.services.recommendations import RecommendationGenerator
from printshop.services.selection import SelectionCommitter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["quote-pricing"])


def _committer(db: AsyncSession, generator: RecommendationGenerator | None = None) -> SelectionCommitter:
    return SelectionCommitter(db, default_markup=get_settings().default_markup_percentage, generator=generator)


@router.post("/quotes/{quote_id}/select-supplier")
async def select_supplier(
    quote_id: int,
    body: SelectSupplierRequest,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Assign one supplier to a set of the quote's items and recompute totals."""
    try:
        result = await _committer(db).select_supplier_for_items(
            quote_id, body.supplier_id, body.items, body.markup_percentage,
        )
    except PrintShopError as e:
        raise to_http_exception(e)
    if not result["success"]:
        raise not_found("Quote")
    logger.info("User %s selected supplier %s on quote %s", user.id, body.supplier_id, quote_id)
    return result


@router.post("/quotes/{quote_id}/recalculate")
async def recalculate_totals(
    quote_id: int,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    try:
        totals = await _committer(db).recalculate_quote_totals(quote_id)
    except PrintShopError as e:
        raise to_http_exception(e)
    if totals is None:
        raise not_found("Quote")
    return {"quote_id": quote_id, "totals": totals}


@router.patch("/quote-items/{quote_item_id}/pricing")
async def update_item_pricing(
    quote_item_id: int,
    body: ItemPricingUpdate,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Manually override an item's price, or re-derive it from a markup."""
    try:
        result = await _committer(db).update_item_pricing(
            quote_item_id,
            supplier_cost=body.supplier_cost,
            customer_price=body.customer_price,
            markup_percentage=body.markup_percentage,
        )
    except PrintShopError as e:
        raise to_http_exception(e)
    if result is None:
        raise not_found("Quote item")
    return result


@router.post("/quotes/{quote_id}/auto-populate")
async def auto_populate(
    quote_id: int,
    body: AutoPopulateRequest | None = None,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Assign the top-ranked supplier to every unpriced item."""
    settings = get_settings()
    generator = RecommendationGenerator(
        db, strategy=await build_scoring_strategy(db), top_n=settings.recommendation_top_n,
    )
    markup = body.markup_percentage if body else None
    try:
        result = await _committer(db, generator).auto_populate(quote_id, markup)
    except PrintShopError as e:
        raise to_http_exception(e)
    if not result["success"]:
        raise not_found("Quote")
    return result
