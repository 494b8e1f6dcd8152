"""Deterministic Supplier Scoring Engine.

Pure-function module, NO database access.

Two interchangeable strategies share one interface:

    - BoundedScoringModel (canonical): experience base score plus bounded
      bonus/penalty terms for price, promise keeping, courier confirmation,
      early finish, category expertise, load, consistency, cancellations.
    - WeightedScoringModel (legacy): price, rating, delivery time and
      reliability normalised to 0-100 and combined with admin weights.

Every term of the bounded model is clamped to its documented range; the
total is the plain sum of terms and is never clamped.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from typing import Optional

from printshop.domain.enums import ScoringModel
from printshop.domain.schemas import ScoringWeights
from printshop.services.metric_aggregator import SupplierMetrics

# ── Bounded model constants ──────────────────────────────────────────────────

# (completed jobs lower bound, base score), checked top-down
BASE_SCORE_STEPS = ((10, 100.0), (5, 90.0), (1, 80.0), (0, 70.0))

PRICE_FACTOR = 0.5
PROMISE_PIVOT = 80.0
PROMISE_FACTOR = 0.4
COURIER_PIVOT = 80.0
COURIER_FACTOR = 0.3
OPEN_JOBS_PER_PENALTY = 3
CANCEL_PCT_PER_PENALTY = 5

# Inclusive [min, max] of every bounded term
TERM_RANGES: dict[str, tuple[float, float]] = {
    "base": (70.0, 100.0),
    "price": (-10.0, 10.0),
    "promise_keeping": (-8.0, 8.0),
    "courier_confirm": (-6.0, 6.0),
    "early_finish": (0.0, 3.0),
    "category_expert": (0.0, 2.0),
    "current_load": (-3.0, 0.0),
    "consistency": (0.0, 2.0),
    "cancellations": (-2.0, 0.0),
}

DEFAULT_MULTI_ITEM_BONUS_CAP = 5

# ── Weighted model constants ─────────────────────────────────────────────────

# Normalised score when every candidate has the same value
NEUTRAL = 50.0
# Percent uplift per additional fulfillable item, and its ceiling
MULTI_ITEM_UPLIFT_PCT = 2
MULTI_ITEM_UPLIFT_MAX_PCT = 10


# ── Types ────────────────────────────────────────────────────────────────────


@dataclass
class ScoringCandidate:
    """One supplier offering one product unit."""

    supplier_id: int
    price_per_unit: float
    delivery_days: Optional[int]
    metrics: SupplierMetrics


@dataclass
class ScoringContext:
    """Per-item inputs shared by all candidates of that item."""

    market_price: float = 0.0
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_delivery: Optional[float] = None
    max_delivery: Optional[float] = None

    @classmethod
    def for_candidates(cls, market_price: float, candidates: list[ScoringCandidate]) -> "ScoringContext":
        prices = [c.price_per_unit for c in candidates if c.price_per_unit is not None]
        days = [c.delivery_days for c in candidates if c.delivery_days is not None]
        return cls(
            market_price=market_price,
            min_price=min(prices) if prices else None,
            max_price=max(prices) if prices else None,
            min_delivery=min(days) if days else None,
            max_delivery=max(days) if days else None,
        )


@dataclass
class ScoreBreakdown:
    """Per-term scores and their total, for UI transparency and audit."""

    model: str
    terms: dict[str, float] = field(default_factory=dict)
    subtotal: float = 0.0
    multi_item_bonus: float = 0.0
    total: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


# ── Helpers ──────────────────────────────────────────────────────────────────


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _bounded(name: str, value: float) -> float:
    low, high = TERM_RANGES[name]
    return clamp(value, low, high)


# ── Bounded terms ────────────────────────────────────────────────────────────


def base_score(completed_jobs: int) -> float:
    """Experience step function: 0 → 70, 1-4 → 80, 5-9 → 90, ≥10 → 100."""
    for threshold, score in BASE_SCORE_STEPS:
        if completed_jobs >= threshold:
            return score
    return BASE_SCORE_STEPS[-1][1]


def price_term(market_price: float, supplier_price: float) -> float:
    """Positive when cheaper than market. Zero when either price is unknown."""
    if not market_price or not supplier_price:
        return 0.0
    return _bounded("price", (market_price - supplier_price) / market_price * 100 * PRICE_FACTOR)


def promise_keeping_term(promise_keeping_pct: float) -> float:
    return _bounded("promise_keeping", (promise_keeping_pct - PROMISE_PIVOT) * PROMISE_FACTOR)


def courier_confirm_term(courier_confirm_pct: float) -> float:
    return _bounded("courier_confirm", (courier_confirm_pct - COURIER_PIVOT) * COURIER_FACTOR)


def early_finish_term(early_finish_avg_days: float) -> float:
    return _bounded("early_finish", early_finish_avg_days)


def category_expert_term(jobs_in_category: int) -> float:
    if jobs_in_category >= 10:
        return 2.0
    if jobs_in_category >= 5:
        return 1.0
    return 0.0


def current_load_term(open_jobs: int) -> float:
    return _bounded("current_load", -math.floor(open_jobs / OPEN_JOBS_PER_PENALTY))


def consistency_term(coefficient_of_variation: Optional[float]) -> float:
    """+2 below cv 0.2, +1 below 0.3; unknown variation earns nothing."""
    if coefficient_of_variation is None:
        return 0.0
    if coefficient_of_variation < 0.2:
        return 2.0
    if coefficient_of_variation < 0.3:
        return 1.0
    return 0.0


def cancellation_term(cancellation_pct: float) -> float:
    return _bounded("cancellations", -math.floor(cancellation_pct / CANCEL_PCT_PER_PENALTY))


# ── Legacy normalisation ─────────────────────────────────────────────────────


def normalize_lower_is_better(value: Optional[float], low: Optional[float], high: Optional[float]) -> float:
    """Map ``value`` to 0-100 where the cheapest/fastest candidate scores 100."""
    if value is None or low is None or high is None or high == low:
        return NEUTRAL
    return clamp((high - value) / (high - low) * 100, 0.0, 100.0)


# ── Strategies ───────────────────────────────────────────────────────────────


class ScoringStrategy:
    """Interface shared by the scoring models."""

    name: str = ""

    def score(self, candidate: ScoringCandidate, context: ScoringContext) -> ScoreBreakdown:
        raise NotImplementedError

    def apply_multi_item_bonus(self, breakdown: ScoreBreakdown, other_items: int) -> ScoreBreakdown:
        raise NotImplementedError


class BoundedScoringModel(ScoringStrategy):
    """Experience base score plus bounded bonus/penalty terms."""

    name = ScoringModel.BOUNDED.value

    def __init__(self, bonus_cap: int = DEFAULT_MULTI_ITEM_BONUS_CAP):
        self.bonus_cap = bonus_cap

    def score(self, candidate: ScoringCandidate, context: ScoringContext) -> ScoreBreakdown:
        m = candidate.metrics
        terms = {
            "base": base_score(m.completed_jobs),
            "price": price_term(context.market_price, candidate.price_per_unit),
            "promise_keeping": promise_keeping_term(m.promise_keeping_pct),
            "courier_confirm": courier_confirm_term(m.courier_confirm_pct),
            "early_finish": early_finish_term(m.early_finish_avg_days),
            "category_expert": category_expert_term(m.jobs_in_category),
            "current_load": current_load_term(m.open_jobs),
            "consistency": consistency_term(m.coefficient_of_variation),
            "cancellations": cancellation_term(m.cancellation_pct),
        }
        subtotal = sum(terms.values())
        return ScoreBreakdown(model=self.name, terms=terms, subtotal=subtotal, total=subtotal)

    def apply_multi_item_bonus(self, breakdown: ScoreBreakdown, other_items: int) -> ScoreBreakdown:
        bonus = float(min(max(other_items, 0), self.bonus_cap))
        return replace(breakdown, multi_item_bonus=bonus, total=breakdown.subtotal + bonus)


class WeightedScoringModel(ScoringStrategy):
    """Legacy model: normalised criteria combined by percentage weights."""

    name = ScoringModel.WEIGHTED.value

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def score(self, candidate: ScoringCandidate, context: ScoringContext) -> ScoreBreakdown:
        m = candidate.metrics
        terms = {
            "price": normalize_lower_is_better(candidate.price_per_unit, context.min_price, context.max_price),
            "rating": clamp(m.avg_rating / 10 * 100, 0.0, 100.0),
            "delivery_time": normalize_lower_is_better(
                candidate.delivery_days, context.min_delivery, context.max_delivery,
            ),
            "reliability": clamp(m.courier_confirm_pct, 0.0, 100.0),
        }
        w = self.weights
        subtotal = (
            terms["price"] * w.price
            + terms["rating"] * w.rating
            + terms["delivery_time"] * w.delivery_time
            + terms["reliability"] * w.reliability
        ) / 100
        return ScoreBreakdown(model=self.name, terms=terms, subtotal=subtotal, total=subtotal)

    def apply_multi_item_bonus(self, breakdown: ScoreBreakdown, other_items: int) -> ScoreBreakdown:
        uplift_pct = min(max(other_items, 0) * MULTI_ITEM_UPLIFT_PCT, MULTI_ITEM_UPLIFT_MAX_PCT)
        bonus = breakdown.subtotal * uplift_pct / 100
        return replace(breakdown, multi_item_bonus=bonus, total=breakdown.subtotal + bonus)


def get_scoring_strategy(
    name: str = ScoringModel.BOUNDED.value,
    weights: Optional[ScoringWeights] = None,
    bonus_cap: int = DEFAULT_MULTI_ITEM_BONUS_CAP,
) -> ScoringStrategy:
    """Build the strategy selected by ``name`` (``bounded`` or ``weighted``)."""
    model = ScoringModel(name)
    if model is ScoringModel.WEIGHTED:
        return WeightedScoringModel(weights)
    return BoundedScoringModel(bonus_cap)
