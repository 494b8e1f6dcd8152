"""Tests for supplier metric aggregation."""

from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from printshop.services.metric_aggregator import (
    NEUTRAL_RATING,
    NEUTRAL_RELIABILITY_PCT,
    MetricAggregator,
    compute_metrics,
)
from printshop.services.scoring import consistency_term

T0 = datetime(2025, 3, 1, 8, 0, 0)


def _job(status="delivered", promised=None, actual=None, marked_ready=None, courier=None, rating=None):
    """Simple namespace that acts like a SupplierJob row."""
    ready_at = T0 + timedelta(days=actual) if actual is not None else None
    return SimpleNamespace(
        status=status,
        created_at=T0,
        supplier_ready_at=ready_at,
        promised_delivery_days=promised,
        supplier_marked_ready=marked_ready if marked_ready is not None else ready_at is not None,
        courier_confirmed_ready=courier,
        supplier_rating=rating,
    )


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


class TestNeutralDefaults:

    def test_no_jobs(self):
        m = compute_metrics(7, [])
        assert m.supplier_id == 7
        assert m.completed_jobs == 0
        assert m.promise_keeping_pct == NEUTRAL_RELIABILITY_PCT
        assert m.courier_confirm_pct == NEUTRAL_RELIABILITY_PCT
        assert m.early_finish_avg_days == 0.0
        assert m.category_expertise_pct == 0.0
        assert m.open_jobs == 0
        assert m.coefficient_of_variation is None
        assert m.cancellation_pct == 0.0
        assert m.avg_rating == NEUTRAL_RATING

    def test_jobs_without_timing_keep_reliability_neutral(self):
        m = compute_metrics(1, [_job(status="pending"), _job(status="in_progress")])
        assert m.promise_keeping_pct == NEUTRAL_RELIABILITY_PCT
        assert m.courier_confirm_pct == NEUTRAL_RELIABILITY_PCT
        assert m.promise_sample == 0


class TestCounts:

    def test_completed_open_and_cancelled(self):
        jobs = [
            _job("delivered"), _job("ready"), _job("picked_up"),
            _job("pending"), _job("in_progress"), _job("in_progress"),
            _job("cancelled"),
        ]
        m = compute_metrics(1, jobs)
        assert m.total_jobs == 7
        assert m.completed_jobs == 3
        assert m.open_jobs == 3
        assert m.cancelled_jobs == 1
        assert m.cancellation_pct == pytest.approx(100 / 7)

    def test_category_share(self):
        m = compute_metrics(1, [_job() for _ in range(4)], jobs_in_category=3)
        assert m.jobs_in_category == 3
        assert m.category_expertise_pct == pytest.approx(75.0)


class TestPromiseKeeping:

    def test_on_time_and_late(self):
        jobs = [
            _job(promised=3, actual=2),   # early by 1
            _job(promised=3, actual=3),   # exactly on time
            _job(promised=3, actual=4),   # late
            _job(promised=5, actual=2),   # early by 3
        ]
        m = compute_metrics(1, jobs)
        assert m.promise_sample == 4
        assert m.promise_keeping_pct == pytest.approx(75.0)
        assert m.early_finish_avg_days == pytest.approx((1 + 0 + 0 + 3) / 4)

    def test_jobs_without_promise_are_ignored(self):
        m = compute_metrics(1, [_job(promised=None, actual=10), _job(promised=2, actual=1)])
        assert m.promise_sample == 1
        assert m.promise_keeping_pct == 100.0


class TestCourierConfirm:

    def test_share_of_ready_marks_confirmed(self):
        jobs = [
            _job(actual=1, courier=True),
            _job(actual=1, courier=False),
            _job(actual=1, courier=None),
            _job(actual=1, courier=True),
            _job(courier=True, marked_ready=False),  # never marked ready: not counted
        ]
        m = compute_metrics(1, jobs)
        assert m.courier_sample == 4
        assert m.courier_confirm_pct == pytest.approx(50.0)


class TestConsistency:

    def test_uniform_deliveries_are_consistent(self):
        m = compute_metrics(1, [_job(actual=2), _job(actual=2), _job(actual=2)])
        assert m.avg_delivery_days == pytest.approx(2.0)
        assert m.delivery_std_dev == pytest.approx(0.0)
        assert m.coefficient_of_variation == pytest.approx(0.0)
        assert m.is_consistent is True

    def test_sample_standard_deviation(self):
        m = compute_metrics(1, [_job(actual=1), _job(actual=3)])
        # mean 2, sample std sqrt(2)
        assert m.delivery_std_dev == pytest.approx(2 ** 0.5)
        assert m.coefficient_of_variation == pytest.approx(2 ** 0.5 / 2)
        assert m.is_consistent is False

    def test_single_delivery_counts_as_consistent(self):
        m = compute_metrics(1, [_job(actual=4)])
        assert m.avg_delivery_days == pytest.approx(4.0)
        assert m.delivery_std_dev == 0.0
        assert m.coefficient_of_variation == 0.0
        assert m.is_consistent is True
        assert consistency_term(m.coefficient_of_variation) == 2.0

    def test_no_timed_delivery_has_unknown_variation(self):
        m = compute_metrics(1, [_job(status="pending")])
        assert m.coefficient_of_variation is None
        assert consistency_term(m.coefficient_of_variation) == 0.0


class TestRatings:

    def test_average_of_rated_jobs(self):
        m = compute_metrics(1, [_job(rating=8), _job(rating=6), _job()])
        assert m.avg_rating == pytest.approx(7.0)
        assert m.rated_jobs == 2


# ---------------------------------------------------------------------------
# Store-backed aggregation
# ---------------------------------------------------------------------------


class TestMetricAggregator:

    async def test_collect_scoped_to_category(
        self, db_session, make_supplier, make_category, make_product_unit, make_job,
    ):
        supplier = await make_supplier("Acme Print")
        other = await make_supplier("Other")
        cards = await make_category("Cards")
        flyers = await make_category("Flyers")
        card_unit = await make_product_unit(category=cards)
        flyer_unit = await make_product_unit(product_name="Flyer", category=flyers)

        for _ in range(5):
            await make_job(supplier, card_unit, promised_days=3, actual_days=2, courier_confirmed=True)
        await make_job(supplier, flyer_unit, status="pending")
        await make_job(other, card_unit)

        metrics = await MetricAggregator(db_session).collect(supplier.id, cards.id)
        assert metrics.total_jobs == 6
        assert metrics.completed_jobs == 5
        assert metrics.jobs_in_category == 5
        assert metrics.open_jobs == 1
        assert metrics.promise_keeping_pct == 100.0
        assert metrics.courier_confirm_pct == 100.0
        assert metrics.early_finish_avg_days == pytest.approx(1.0)

    async def test_collect_without_category(self, db_session, make_supplier, make_job):
        supplier = await make_supplier()
        await make_job(supplier)
        metrics = await MetricAggregator(db_session).collect(supplier.id)
        assert metrics.jobs_in_category == 0
        assert metrics.completed_jobs == 1

    async def test_unavailable_store_yields_neutral_metrics(self, db_session):
        failure = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(db_session, "execute", side_effect=failure):
            metrics = await MetricAggregator(db_session).collect(42, category_id=1)
        assert metrics.total_jobs == 0
        assert metrics.promise_keeping_pct == NEUTRAL_RELIABILITY_PCT
        assert metrics.avg_rating == NEUTRAL_RATING
