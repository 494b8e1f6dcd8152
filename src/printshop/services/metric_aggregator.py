"""Supplier Metric Aggregator.

Derives trust metrics for one supplier from its historical ``SupplierJob``
rows: completion counts, promise keeping, courier confirmation, early
finish, category expertise, open load, delivery consistency and
cancellations.

``compute_metrics`` is pure and works on any objects exposing the job
attributes, so it can be fed ORM rows, test doubles or offline exports.
``MetricAggregator`` wraps it with the store reads.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from printshop.domain.enums import COMPLETED_JOB_STATUSES, OPEN_JOB_STATUSES, SupplierJobStatus
from printshop.infra.stores import JobStore

logger = logging.getLogger(__name__)

# ── Neutral defaults ─────────────────────────────────────────────────────────

# Pivot of the promise/courier terms; a supplier with no data scores zero there
NEUTRAL_RELIABILITY_PCT = 80.0
# Middle of the 1-10 rating scale
NEUTRAL_RATING = 5.0

# Coefficient of variation below which deliveries count as consistent
CONSISTENCY_THRESHOLD = 0.3

SECONDS_PER_DAY = 86400.0


@dataclass
class SupplierMetrics:
    """Aggregated history for one supplier (optionally scoped to a category)."""

    supplier_id: int
    total_jobs: int = 0
    completed_jobs: int = 0
    promise_keeping_pct: float = NEUTRAL_RELIABILITY_PCT
    promise_sample: int = 0
    courier_confirm_pct: float = NEUTRAL_RELIABILITY_PCT
    courier_sample: int = 0
    early_finish_avg_days: float = 0.0
    jobs_in_category: int = 0
    category_expertise_pct: float = 0.0
    open_jobs: int = 0
    avg_delivery_days: Optional[float] = None
    delivery_std_dev: Optional[float] = None
    coefficient_of_variation: Optional[float] = None
    is_consistent: bool = False
    cancelled_jobs: int = 0
    cancellation_pct: float = 0.0
    avg_rating: float = NEUTRAL_RATING
    rated_jobs: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _actual_days(created_at: Optional[datetime], ready_at: Optional[datetime]) -> Optional[float]:
    """Elapsed days from job creation to the supplier's ready mark."""
    if created_at is None or ready_at is None:
        return None
    return (ready_at - created_at).total_seconds() / SECONDS_PER_DAY


def _sample_std_dev(values: list[float]) -> Optional[float]:
    """Sample standard deviation; a single delivery counts as zero spread."""
    if not values:
        return None
    if len(values) == 1:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / (len(values) - 1)
    return math.sqrt(variance)


def _pct(part: int, whole: int) -> float:
    return part / whole * 100.0 if whole else 0.0


# ── Aggregation ──────────────────────────────────────────────────────────────


def compute_metrics(supplier_id: int, jobs: Iterable, jobs_in_category: int = 0) -> SupplierMetrics:
    """Aggregate a supplier's job rows into ``SupplierMetrics``.

    Every percentage falls back to its neutral default when no job
    qualifies for it, so a brand-new supplier is neither rewarded nor
    punished for missing history.
    """
    jobs = list(jobs)
    metrics = SupplierMetrics(supplier_id=supplier_id, total_jobs=len(jobs))
    if not jobs:
        return metrics

    promised_total = 0
    promised_kept = 0
    early_days: list[float] = []
    marked_ready = 0
    courier_confirmed = 0
    delivery_days: list[float] = []
    ratings: list[float] = []

    for job in jobs:
        status = job.status
        if status in COMPLETED_JOB_STATUSES:
            metrics.completed_jobs += 1
        elif status in OPEN_JOB_STATUSES:
            metrics.open_jobs += 1
        elif status == SupplierJobStatus.CANCELLED.value:
            metrics.cancelled_jobs += 1

        actual = _actual_days(job.created_at, job.supplier_ready_at)
        if actual is not None:
            delivery_days.append(actual)
            promised = job.promised_delivery_days
            if promised is not None:
                promised_total += 1
                if actual <= promised:
                    promised_kept += 1
                early_days.append(max(0.0, promised - actual))

        if job.supplier_marked_ready:
            marked_ready += 1
            if job.courier_confirmed_ready:
                courier_confirmed += 1

        if job.supplier_rating is not None:
            ratings.append(float(job.supplier_rating))

    if promised_total:
        metrics.promise_keeping_pct = _pct(promised_kept, promised_total)
        metrics.promise_sample = promised_total
        metrics.early_finish_avg_days = sum(early_days) / len(early_days)

    if marked_ready:
        metrics.courier_confirm_pct = _pct(courier_confirmed, marked_ready)
        metrics.courier_sample = marked_ready

    metrics.jobs_in_category = jobs_in_category
    metrics.category_expertise_pct = _pct(jobs_in_category, len(jobs))

    if delivery_days:
        mean = sum(delivery_days) / len(delivery_days)
        metrics.avg_delivery_days = mean
        std = _sample_std_dev(delivery_days)
        metrics.delivery_std_dev = std
        if std is not None and mean > 0:
            metrics.coefficient_of_variation = std / mean
            metrics.is_consistent = metrics.coefficient_of_variation < CONSISTENCY_THRESHOLD

    metrics.cancellation_pct = _pct(metrics.cancelled_jobs, len(jobs))

    if ratings:
        metrics.avg_rating = sum(ratings) / len(ratings)
        metrics.rated_jobs = len(ratings)

    return metrics


class MetricAggregator:
    """Load a supplier's job history and aggregate it."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.jobs = JobStore(db)

    async def collect(self, supplier_id: int, category_id: Optional[int] = None) -> SupplierMetrics:
        jobs = await self.jobs.get_supplier_jobs(supplier_id)
        in_category = 0
        if category_id is not None:
            in_category = await self.jobs.count_jobs_in_category(supplier_id, category_id)
        metrics = compute_metrics(supplier_id, jobs, in_category)
        logger.debug(
            "Supplier %s metrics: %d jobs, %d completed, pk=%.1f%%, cc=%.1f%%",
            supplier_id, metrics.total_jobs, metrics.completed_jobs,
            metrics.promise_keeping_pct, metrics.courier_confirm_pct,
        )
        return metrics
