"""Scoring settings routes (admin)."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.app.routes.auth import require_role
from printshop.app.routes.common import STAFF_ROLES, to_http_exception
from printshop.domain.errors import PrintShopError
from printshop.domain.models import User
from printshop.domain.schemas import ScoringWeights
from printshop.infra.database import get_db
from printshop.services.scoring_settings import ScoringSettingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/scoring-weights")
async def get_scoring_weights(
    user: User = Depends(require_role(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    weights = await ScoringSettingsService(db).get_scoring_weights()
    return weights.model_dump(by_alias=True)


@router.put("/scoring-weights")
async def set_scoring_weights(
    body: ScoringWeights,
    user: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    """Replace the weights; they must each be 0-100 and sum to 100."""
    try:
        weights = await ScoringSettingsService(db).set_scoring_weights(body, updated_by=user.id)
    except PrintShopError as e:
        raise to_http_exception(e)
    logger.info("Scoring weights updated by admin %s", user.id)
    return weights.model_dump(by_alias=True)
