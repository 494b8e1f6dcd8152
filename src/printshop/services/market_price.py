"""Market Price Oracle: reference price per product unit."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from printshop.infra.stores import PriceStore

logger = logging.getLogger(__name__)


class MarketPriceOracle:
    """Average supplier price for a unit, cached per unit for one request.

    A result of ``0.0`` means "no baseline"; the scoring engine then skips
    the price term.
    """

    def __init__(self, db: AsyncSession):
        self.prices = PriceStore(db)
        self._cache: dict[Optional[int], float] = {}

    async def average_price(self, size_quantity_id: Optional[int] = None) -> float:
        if size_quantity_id in self._cache:
            return self._cache[size_quantity_id]
        value = await self.prices.average_price(size_quantity_id)
        self._cache[size_quantity_id] = value
        if value == 0.0:
            logger.debug("No market baseline for unit %s", size_quantity_id)
        return value

    async def supplier_price(self, supplier_id: int, size_quantity_id: Optional[int] = None) -> float:
        return await self.prices.supplier_price(supplier_id, size_quantity_id)
