"""Recommendation Generator - ranks suppliers for every line item of a quote.

For a batch of line items the generator loads every eligible supplier price
in one query, works out how many of the batch items each supplier can
fulfil, scores each (item, supplier) pair with the configured scoring
strategy, adds the multi-item bonus, and returns the top N suppliers per
item with their full breakdown.

Ranking is a deterministic total order: total score descending, supplier id
ascending. Items without any eligible supplier stay in the output with an
empty list.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from printshop.domain.enums import UserRole
from printshop.domain.schemas import RecommendationItemIn
from printshop.infra.stores import PriceStore, ProductStore, SupplierStore, UnitInfo
from printshop.services.market_price import MarketPriceOracle
from printshop.services.metric_aggregator import MetricAggregator, SupplierMetrics
from printshop.services.scoring import (
    BoundedScoringModel,
    ScoringCandidate,
    ScoringContext,
    ScoringStrategy,
)

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 5

# Fewer completed jobs than this flags the supplier as new in the UI
NEW_SUPPLIER_JOB_THRESHOLD = 5

# Totals are compared at this precision so float noise cannot reorder ties
SCORE_PRECISION = 6


@dataclass
class SupplierRecommendation:
    rank: int
    supplier_id: int
    supplier_name: Optional[str]
    company_name: Optional[str]
    price_per_unit: float
    total_price: float
    delivery_days: Optional[int]
    score: float
    multi_item_bonus: float
    fulfillable_items: int
    is_new_supplier: bool
    breakdown: dict = field(default_factory=dict)
    metrics: dict = field(default_factory=dict)


@dataclass
class ItemRecommendation:
    index: int
    size_quantity_id: int
    quantity: int
    quote_item_id: Optional[int] = None
    product_name: Optional[str] = None
    size_name: Optional[str] = None
    category_name: Optional[str] = None
    unit_found: bool = False
    has_suppliers: bool = False
    suppliers: list[SupplierRecommendation] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class RecommendationGenerator:
    """Score and rank suppliers for a batch of line items."""

    def __init__(
        self,
        db: AsyncSession,
        strategy: Optional[ScoringStrategy] = None,
        top_n: int = DEFAULT_TOP_N,
    ):
        self.db = db
        self.strategy = strategy or BoundedScoringModel()
        self.top_n = top_n
        self.prices = PriceStore(db)
        self.products = ProductStore(db)
        self.suppliers = SupplierStore(db)
        self.aggregator = MetricAggregator(db)
        self.oracle = MarketPriceOracle(db)
        self._metrics_cache: dict[tuple[int, Optional[int]], SupplierMetrics] = {}

    async def generate_recommendations(self, items: Iterable) -> list[ItemRecommendation]:
        """Return one ``ItemRecommendation`` per input item, in input order.

        Metric and market-price lookups run one after another on the
        request's session; the sort key alone fixes the final order.
        """
        batch = [
            item if isinstance(item, RecommendationItemIn) else RecommendationItemIn.model_validate(item)
            for item in items
        ]
        if not batch:
            return []

        unit_ids = [item.size_quantity_id for item in batch]
        units = await self.products.get_unit_info(unit_ids)
        prices_by_unit = await self.prices.get_prices_for_units(unit_ids)

        # Fulfillment breadth: distinct batch items each supplier can price
        breadth: dict[int, int] = {}
        for item in batch:
            for row in prices_by_unit.get(item.size_quantity_id, []):
                breadth[row.supplier_id] = breadth.get(row.supplier_id, 0) + 1

        users = await self.suppliers.get_users_by_ids(breadth.keys())

        results = []
        for index, item in enumerate(batch):
            unit = units.get(item.size_quantity_id)
            rec = ItemRecommendation(
                index=index,
                size_quantity_id=item.size_quantity_id,
                quantity=item.quantity,
                quote_item_id=item.quote_item_id,
                unit_found=unit is not None,
            )
            if unit is not None:
                rec.product_name = unit.product_name
                rec.size_name = unit.size_name
                rec.category_name = unit.category_name

            rows = prices_by_unit.get(item.size_quantity_id, [])
            if rows:
                rec.suppliers = await self._rank_item(item, unit, rows, breadth, users)
            rec.has_suppliers = bool(rec.suppliers)
            if not rec.has_suppliers:
                logger.info("No eligible suppliers for unit %s (item %d)", item.size_quantity_id, index)
            results.append(rec)

        logger.info(
            "Generated recommendations for %d items (%d suppliers considered, model=%s)",
            len(batch), len(breadth), self.strategy.name,
        )
        return results

    async def _rank_item(
        self,
        item: RecommendationItemIn,
        unit: Optional[UnitInfo],
        rows: list,
        breadth: dict[int, int],
        users: dict,
    ) -> list[SupplierRecommendation]:
        category_id = unit.category_id if unit else None
        market_price = await self.oracle.average_price(item.size_quantity_id)

        candidates = []
        for row in rows:
            metrics = await self._metrics_for(row.supplier_id, category_id)
            candidates.append(
                ScoringCandidate(
                    supplier_id=row.supplier_id,
                    price_per_unit=row.price_per_unit,
                    delivery_days=row.delivery_days,
                    metrics=metrics,
                )
            )
        context = ScoringContext.for_candidates(market_price, candidates)

        scored = []
        for candidate in candidates:
            breakdown = self.strategy.score(candidate, context)
            breakdown = self.strategy.apply_multi_item_bonus(
                breakdown, breadth.get(candidate.supplier_id, 1) - 1,
            )
            scored.append((candidate, breakdown))

        scored.sort(key=lambda pair: (-round(pair[1].total, SCORE_PRECISION), pair[0].supplier_id))

        ranked = []
        for rank, (candidate, breakdown) in enumerate(scored[: self.top_n], start=1):
            user = users.get(candidate.supplier_id)
            ranked.append(
                SupplierRecommendation(
                    rank=rank,
                    supplier_id=candidate.supplier_id,
                    supplier_name=user.name if user else None,
                    company_name=user.company_name if user else None,
                    price_per_unit=candidate.price_per_unit,
                    total_price=candidate.price_per_unit * item.quantity,
                    delivery_days=candidate.delivery_days,
                    score=round(breakdown.total, 2),
                    multi_item_bonus=round(breakdown.multi_item_bonus, 2),
                    fulfillable_items=breadth.get(candidate.supplier_id, 1),
                    is_new_supplier=candidate.metrics.completed_jobs < NEW_SUPPLIER_JOB_THRESHOLD,
                    breakdown=breakdown.to_dict(),
                    metrics=candidate.metrics.to_dict(),
                )
            )
        return ranked

    async def _metrics_for(self, supplier_id: int, category_id: Optional[int]) -> SupplierMetrics:
        key = (supplier_id, category_id)
        if key not in self._metrics_cache:
            self._metrics_cache[key] = await self.aggregator.collect(supplier_id, category_id)
        return self._metrics_cache[key]

    async def score_supplier(
        self,
        supplier_id: int,
        size_quantity_id: Optional[int] = None,
        category_id: Optional[int] = None,
    ) -> Optional[dict]:
        """Full score breakdown for one supplier, or ``None`` if unknown."""
        user = await self.suppliers.get_user_by_id(supplier_id)
        if user is None or user.role != UserRole.SUPPLIER.value:
            return None

        if category_id is None and size_quantity_id is not None:
            unit = (await self.products.get_unit_info([size_quantity_id])).get(size_quantity_id)
            category_id = unit.category_id if unit else None

        metrics = await self._metrics_for(supplier_id, category_id)
        supplier_price = await self.oracle.supplier_price(supplier_id, size_quantity_id)
        market_price = await self.oracle.average_price(size_quantity_id)
        candidate = ScoringCandidate(
            supplier_id=supplier_id,
            price_per_unit=supplier_price,
            delivery_days=None,
            metrics=metrics,
        )
        breakdown = self.strategy.score(candidate, ScoringContext.for_candidates(market_price, [candidate]))
        return {
            "supplier_id": supplier_id,
            "supplier_name": user.name,
            "company_name": user.company_name,
            "size_quantity_id": size_quantity_id,
            "category_id": category_id,
            "supplier_price": supplier_price,
            "market_price": market_price,
            "score": round(breakdown.total, 2),
            "breakdown": breakdown.to_dict(),
            "metrics": metrics.to_dict(),
        }
