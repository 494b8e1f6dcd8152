"""Supplier recommendation routes.

Employees price a quote by asking for ranked suppliers per line item; the
breakdown of every score is returned for transparency.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.app.config import get_settings
from printshop.app.routes.auth import require_role
from printshop.app.routes.common import STAFF_ROLES, build_scoring_strategy, not_found
from printshop.domain.models import User
from printshop.domain.schemas import RecommendationRequest
from printshop.infra.database import get_db
from printshop.services.recommendations import RecommendationGenerator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["recommendations"])


@router.post("/recommendations")
async def generate_recommendations(
    body: RecommendationRequest,
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Ranked suppliers for each requested item, in request order."""
    if not body.items:
        raise HTTPException(status_code=400, detail="At least one item is required")

    generator = RecommendationGenerator(
        db,
        strategy=await build_scoring_strategy(db),
        top_n=get_settings().recommendation_top_n,
    )
    results = await generator.generate_recommendations(body.items)
    logger.info(
        "Recommendations for %d items (%s model) requested by user %s",
        len(results), generator.strategy.name, user.id,
    )
    return {
        "model": generator.strategy.name,
        "items": [r.to_dict() for r in results],
        "items_without_suppliers": [r.index for r in results if not r.has_suppliers],
    }


@router.get("/suppliers/{supplier_id}/score")
async def get_supplier_score(
    supplier_id: int,
    size_quantity_id: int | None = Query(None),
    category_id: int | None = Query(None),
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Full score breakdown for one supplier, optionally for one unit or category."""
    generator = RecommendationGenerator(db, strategy=await build_scoring_strategy(db))
    result = await generator.score_supplier(supplier_id, size_quantity_id, category_id)
    if result is None:
        raise not_found("Supplier")
    return result
