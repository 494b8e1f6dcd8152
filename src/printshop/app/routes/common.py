"""Shared route helpers: domain-error mapping and scoring strategy wiring."""

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.app.config import get_settings
from printshop.domain.enums import ScoringModel
from printshop.domain.errors import (
    ConcurrentUpdateError,
    JobLockedError,
    PrintShopError,
    StorageUnavailableError,
)
from printshop.services.quote_state_machine import InvalidTransitionError
from printshop.services.scoring import ScoringStrategy, get_scoring_strategy
from printshop.services.scoring_settings import ScoringSettingsService

STAFF_ROLES = ("admin", "employee")


def to_http_exception(exc: Exception) -> HTTPException:
    """Map a domain exception to the HTTP status the API reports."""
    if isinstance(exc, StorageUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message)
    if isinstance(exc, (InvalidTransitionError, JobLockedError, ConcurrentUpdateError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PrintShopError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


async def build_scoring_strategy(db: AsyncSession) -> ScoringStrategy:
    """Strategy selected by configuration; the weighted one reads stored weights."""
    settings = get_settings()
    weights = None
    if settings.scoring_model == ScoringModel.WEIGHTED.value:
        weights = await ScoringSettingsService(db).get_scoring_weights()
    return get_scoring_strategy(settings.scoring_model, weights, settings.multi_item_bonus_cap)
