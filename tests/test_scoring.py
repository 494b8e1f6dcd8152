"""Unit tests for the deterministic supplier scoring engine."""

import math

import pytest

from printshop.domain.schemas import ScoringWeights
from printshop.services.metric_aggregator import SupplierMetrics
from printshop.services.scoring import (
    TERM_RANGES,
    BoundedScoringModel,
    ScoringCandidate,
    ScoringContext,
    WeightedScoringModel,
    base_score,
    cancellation_term,
    category_expert_term,
    consistency_term,
    courier_confirm_term,
    current_load_term,
    early_finish_term,
    get_scoring_strategy,
    normalize_lower_is_better,
    price_term,
    promise_keeping_term,
)


def _candidate(supplier_id=1, price=90.0, delivery_days=3, **metric_overrides):
    metrics = SupplierMetrics(supplier_id=supplier_id, **metric_overrides)
    return ScoringCandidate(
        supplier_id=supplier_id,
        price_per_unit=price,
        delivery_days=delivery_days,
        metrics=metrics,
    )


# ---------------------------------------------------------------------------
# Individual terms
# ---------------------------------------------------------------------------


class TestBaseScore:

    @pytest.mark.parametrize(
        "completed,expected",
        [(0, 70), (1, 80), (4, 80), (5, 90), (9, 90), (10, 100), (250, 100)],
    )
    def test_step_function(self, completed, expected):
        assert base_score(completed) == expected


class TestPriceTerm:

    def test_ten_percent_cheaper_is_plus_five(self):
        assert price_term(100.0, 90.0) == pytest.approx(5.0)

    def test_twenty_percent_cheaper_hits_cap(self):
        assert price_term(100.0, 80.0) == pytest.approx(10.0)
        assert price_term(100.0, 10.0) == 10.0

    def test_more_expensive_is_negative_and_floored(self):
        assert price_term(100.0, 110.0) == pytest.approx(-5.0)
        assert price_term(100.0, 1000.0) == -10.0

    def test_unknown_prices_skip_the_term(self):
        assert price_term(0.0, 90.0) == 0.0
        assert price_term(100.0, 0.0) == 0.0


class TestReliabilityTerms:

    def test_promise_keeping_pivot_is_neutral(self):
        assert promise_keeping_term(80.0) == 0.0

    def test_promise_keeping_bounds(self):
        assert promise_keeping_term(100.0) == 8.0
        assert promise_keeping_term(0.0) == -8.0
        assert promise_keeping_term(90.0) == pytest.approx(4.0)

    def test_courier_confirm_bounds(self):
        assert courier_confirm_term(80.0) == 0.0
        assert courier_confirm_term(100.0) == 6.0
        assert courier_confirm_term(0.0) == -6.0

    def test_early_finish_never_negative_and_capped(self):
        assert early_finish_term(0.0) == 0.0
        assert early_finish_term(1.5) == 1.5
        assert early_finish_term(12.0) == 3.0


class TestExperienceTerms:

    @pytest.mark.parametrize("jobs,expected", [(0, 0), (4, 0), (5, 1), (9, 1), (10, 2), (40, 2)])
    def test_category_expert(self, jobs, expected):
        assert category_expert_term(jobs) == expected

    @pytest.mark.parametrize("open_jobs,expected", [(0, 0), (2, 0), (3, -1), (6, -2), (9, -3), (30, -3)])
    def test_current_load(self, open_jobs, expected):
        assert current_load_term(open_jobs) == expected

    @pytest.mark.parametrize("cv,expected", [(None, 0), (0.1, 2), (0.2, 1), (0.29, 1), (0.3, 0), (2.0, 0)])
    def test_consistency(self, cv, expected):
        assert consistency_term(cv) == expected

    @pytest.mark.parametrize("pct,expected", [(0, 0), (4.9, 0), (5, -1), (10, -2), (100, -2)])
    def test_cancellations(self, pct, expected):
        assert cancellation_term(pct) == expected


# ---------------------------------------------------------------------------
# Bounded model
# ---------------------------------------------------------------------------


class TestBoundedModel:

    def test_new_supplier_ten_percent_below_market(self):
        """0 completed jobs, 90 vs market 100: base 70 + price 5 = 75."""
        model = BoundedScoringModel()
        breakdown = model.score(_candidate(price=90.0), ScoringContext(market_price=100.0))
        assert breakdown.terms["base"] == 70
        assert breakdown.terms["price"] == pytest.approx(5.0)
        assert breakdown.total == pytest.approx(75.0)

    def test_neutral_metrics_contribute_nothing(self):
        breakdown = BoundedScoringModel().score(_candidate(), ScoringContext(market_price=0.0))
        assert {k: v for k, v in breakdown.terms.items() if k != "base"} == {
            "price": 0.0,
            "promise_keeping": 0.0,
            "courier_confirm": 0.0,
            "early_finish": 0.0,
            "category_expert": 0.0,
            "current_load": 0.0,
            "consistency": 0.0,
            "cancellations": 0.0,
        }

    def test_total_is_unclamped_sum(self):
        candidate = _candidate(
            price=50.0,
            completed_jobs=20,
            promise_keeping_pct=100.0,
            courier_confirm_pct=100.0,
            early_finish_avg_days=5.0,
            jobs_in_category=12,
            coefficient_of_variation=0.1,
        )
        breakdown = BoundedScoringModel().score(candidate, ScoringContext(market_price=100.0))
        assert breakdown.total == pytest.approx(100 + 10 + 8 + 6 + 3 + 2 + 2)
        assert breakdown.total == pytest.approx(sum(breakdown.terms.values()))

    @pytest.mark.parametrize(
        "overrides,price,market",
        [
            ({}, 90.0, 100.0),
            ({"completed_jobs": 10_000, "promise_keeping_pct": 1e6, "courier_confirm_pct": 1e6,
              "early_finish_avg_days": 1e6, "jobs_in_category": 10_000}, 1e-6, 1e9),
            ({"promise_keeping_pct": -1e6, "courier_confirm_pct": -1e6, "open_jobs": 10_000,
              "cancellation_pct": 1e6, "coefficient_of_variation": 1e6}, 1e9, 1.0),
            ({"promise_keeping_pct": 0.0, "courier_confirm_pct": 0.0, "cancellation_pct": 100.0}, 100.0, 100.0),
        ],
    )
    def test_every_term_stays_within_its_range(self, overrides, price, market):
        breakdown = BoundedScoringModel().score(
            _candidate(price=price, **overrides), ScoringContext(market_price=market),
        )
        for name, value in breakdown.terms.items():
            low, high = TERM_RANGES[name]
            assert low <= value <= high, f"{name}={value} outside [{low}, {high}]"

    def test_multi_item_bonus_is_capped(self):
        model = BoundedScoringModel(bonus_cap=5)
        base = model.score(_candidate(), ScoringContext())
        assert model.apply_multi_item_bonus(base, 0).total == base.subtotal
        assert model.apply_multi_item_bonus(base, 1).multi_item_bonus == 1
        assert model.apply_multi_item_bonus(base, 12).multi_item_bonus == 5
        assert model.apply_multi_item_bonus(base, 12).total == base.subtotal + 5


# ---------------------------------------------------------------------------
# Weighted (legacy) model
# ---------------------------------------------------------------------------


class TestWeightedModel:

    def test_normalization_equal_values_are_neutral(self):
        assert normalize_lower_is_better(5.0, 5.0, 5.0) == 50.0
        assert normalize_lower_is_better(None, 1.0, 5.0) == 50.0

    def test_normalization_cheapest_scores_100(self):
        assert normalize_lower_is_better(10.0, 10.0, 20.0) == 100.0
        assert normalize_lower_is_better(20.0, 10.0, 20.0) == 0.0
        assert normalize_lower_is_better(15.0, 10.0, 20.0) == 50.0

    def test_weighted_combination(self):
        model = WeightedScoringModel(ScoringWeights(price=30, rating=25, delivery_time=25, reliability=20))
        cheap = _candidate(supplier_id=1, price=10.0, delivery_days=2, avg_rating=8.0, courier_confirm_pct=100.0)
        dear = _candidate(supplier_id=2, price=20.0, delivery_days=4)
        context = ScoringContext.for_candidates(0.0, [cheap, dear])

        breakdown = model.score(cheap, context)
        # price 100*30 + rating 80*25 + delivery 100*25 + reliability 100*20
        assert breakdown.total == pytest.approx((3000 + 2000 + 2500 + 2000) / 100)

        neutral = model.score(dear, context)
        assert neutral.terms["rating"] == 50.0
        assert neutral.terms["price"] == 0.0

    def test_multiplicative_bonus_capped_at_ten_percent(self):
        model = WeightedScoringModel()
        breakdown = model.score(_candidate(), ScoringContext.for_candidates(0.0, [_candidate()]))
        one = model.apply_multi_item_bonus(breakdown, 1)
        assert one.total == pytest.approx(breakdown.subtotal * 1.02)
        many = model.apply_multi_item_bonus(breakdown, 9)
        assert many.total == pytest.approx(breakdown.subtotal * 1.10)


class TestStrategySelection:

    def test_default_is_bounded(self):
        assert isinstance(get_scoring_strategy(), BoundedScoringModel)

    def test_weighted_by_name(self):
        strategy = get_scoring_strategy("weighted", ScoringWeights(price=100, rating=0, delivery_time=0, reliability=0))
        assert isinstance(strategy, WeightedScoringModel)
        assert strategy.weights.price == 100

    def test_unknown_name_rejected(self):
        with pytest.raises(ValueError):
            get_scoring_strategy("machine_learned")

    def test_bonus_cap_passed_through(self):
        strategy = get_scoring_strategy("bounded", bonus_cap=2)
        breakdown = strategy.score(_candidate(), ScoringContext())
        assert math.isclose(strategy.apply_multi_item_bonus(breakdown, 4).multi_item_bonus, 2)
