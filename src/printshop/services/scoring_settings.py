"""Admin-configurable weights of the weighted scoring model."""

import logging
import math
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from printshop.domain.errors import WeightsValidationError
from printshop.domain.schemas import ScoringWeights
from printshop.infra.stores import SettingsStore, write_transaction

logger = logging.getLogger(__name__)

WEIGHTS_KEY = "supplier_recommendation_weights"
WEIGHTS_TOTAL = 100


def validate_weights(weights: ScoringWeights) -> ScoringWeights:
    """Each weight in [0, 100] and all four summing to exactly 100."""
    values = {
        "price": weights.price,
        "rating": weights.rating,
        "deliveryTime": weights.delivery_time,
        "reliability": weights.reliability,
    }
    out_of_range = [name for name, v in values.items() if not 0 <= v <= WEIGHTS_TOTAL]
    if out_of_range:
        raise WeightsValidationError(
            f"Weights must be between 0 and {WEIGHTS_TOTAL}: {', '.join(out_of_range)}"
        )
    total = sum(values.values())
    if not math.isclose(total, WEIGHTS_TOTAL, abs_tol=1e-9):
        raise WeightsValidationError(f"Weights must sum to {WEIGHTS_TOTAL} (got {total:g})")
    return weights


class ScoringSettingsService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = SettingsStore(db)

    async def get_scoring_weights(self) -> ScoringWeights:
        """Stored weights, or the defaults when unset, unreadable or invalid."""
        raw = await self.settings.get_setting(WEIGHTS_KEY)
        if raw is None:
            return ScoringWeights()
        try:
            return validate_weights(ScoringWeights.model_validate(raw))
        except (PydanticValidationError, WeightsValidationError) as e:
            logger.warning("Stored scoring weights are invalid, using defaults: %s", e)
            return ScoringWeights()

    async def set_scoring_weights(self, weights, updated_by: Optional[int] = None) -> ScoringWeights:
        if not isinstance(weights, ScoringWeights):
            try:
                weights = ScoringWeights.model_validate(weights)
            except PydanticValidationError as e:
                raise WeightsValidationError(f"Malformed weights: {e.error_count()} errors") from e
        validate_weights(weights)

        async with write_transaction(self.db, "set_scoring_weights"):
            await self.settings.set_setting(
                WEIGHTS_KEY,
                weights.model_dump(by_alias=True),
                updated_by=updated_by,
                description="Supplier recommendation weights (weighted model)",
            )

        logger.info("Scoring weights updated by %s: %s", updated_by, weights.model_dump(by_alias=True))
        return weights
