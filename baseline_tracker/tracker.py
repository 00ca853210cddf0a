"""
Baseline Tracker - Rolling Personal Baselines.

============================================================
PURPOSE
============================================================
Maintains trailing-window baselines per metric and resolves a
day's aggregated inputs for scoring.

WINDOW:
    baseline(metric, as_of) reads samples whose local day lies in
    [as_of - window_days, as_of). The as_of day itself is never
    included, so a same-day outlier cannot inflate its own
    reference.

AGGREGATION:
- MEAN metrics: arithmetic mean of every sample
- SUM metrics: mean of per-day totals
- clock-time metrics: circular mean of per-day values

CACHING:
- One entry per (metric, as_of); a new sample whose day falls in
  an entry's window drops that entry
- Concurrent refreshes of the same entry share one fetch
- A fetch overtaken by a new in-window sample is not cached; the
  refresh reads the window again

============================================================
"""

import asyncio
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from core.clock import ClockProtocol, MINUTES_PER_DAY, SystemClock, day_bounds, local_day
from core.exceptions import InvalidConfigError
from scoring_engine.types import (
    Aggregation,
    Baseline,
    BaselineStatus,
    BiometricSample,
    DailyInputs,
    MetricKind,
    aggregate_day,
)
from .sample_source import SampleSource


logger = logging.getLogger(__name__)


# ============================================================
# CONFIGURATION
# ============================================================

@dataclass
class BaselineConfig:
    """Baseline window configuration."""

    window_days: int = 14
    """Default trailing window length."""

    min_coverage: Optional[int] = None
    """Minimum samples for an available baseline (default: half the window)."""

    window_overrides: Dict[MetricKind, int] = field(default_factory=dict)
    """Per-metric window lengths."""

    def __post_init__(self) -> None:
        if self.window_days < 1:
            raise InvalidConfigError("window_days", self.window_days, "must be at least 1")
        for metric, days in self.window_overrides.items():
            if days < 1:
                raise InvalidConfigError(f"window_overrides.{metric.value}", days, "must be at least 1")

    def window_for(self, metric: MetricKind) -> int:
        return self.window_overrides.get(metric, self.window_days)

    def min_coverage_for(self, metric: MetricKind) -> int:
        if self.min_coverage is not None:
            return self.min_coverage
        return max(1, self.window_for(metric) // 2)


# ============================================================
# AGGREGATION
# ============================================================

def circular_mean_minutes(values: Sequence[float]) -> float:
    """Mean clock time on the 24h circle, in minutes after midnight."""
    sin_sum = 0.0
    cos_sum = 0.0
    for minutes in values:
        angle = minutes / MINUTES_PER_DAY * 2 * math.pi
        sin_sum += math.sin(angle)
        cos_sum += math.cos(angle)
    mean_angle = math.atan2(sin_sum / len(values), cos_sum / len(values))
    return (mean_angle / (2 * math.pi) * MINUTES_PER_DAY) % MINUTES_PER_DAY


def window_aggregate(
    metric: MetricKind,
    samples_by_day: Dict[date, List[BiometricSample]],
) -> float:
    """Aggregate a window of samples grouped by local day."""
    if metric.is_time_of_day():
        per_day = [aggregate_day(metric, s) for s in samples_by_day.values()]
        return circular_mean_minutes(per_day)

    if metric.aggregation == Aggregation.SUM:
        totals = [aggregate_day(metric, s) for s in samples_by_day.values()]
        return sum(totals) / len(totals)

    values = [s.value for day_samples in samples_by_day.values() for s in day_samples]
    return sum(values) / len(values)


# ============================================================
# IN-FLIGHT REFRESH
# ============================================================

@dataclass
class _Refresh:
    """Single-flight state of one (metric, as_of) refresh."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0
    epoch: int = 0


# ============================================================
# BASELINE TRACKER
# ============================================================

class BaselineTracker:
    """
    Rolling-window baseline computation with per-(metric, day) caching.

    Reads samples only through the injected SampleSource.
    """

    def __init__(
        self,
        source: SampleSource,
        tz: tzinfo,
        config: Optional[BaselineConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._source = source
        self._tz = tz
        self._config = config or BaselineConfig()
        self._clock = clock or SystemClock()

        self._cache: Dict[Tuple[MetricKind, date], Baseline] = {}
        # Present only while a refresh of the key is running or queued.
        self._refreshes: Dict[Tuple[MetricKind, date], _Refresh] = {}
        self._computations = 0

    @property
    def config(self) -> BaselineConfig:
        return self._config

    @property
    def tz(self) -> tzinfo:
        return self._tz

    @property
    def computation_count(self) -> int:
        """Number of baselines actually computed (cache misses)."""
        return self._computations

    @property
    def in_flight(self) -> int:
        """Number of (metric, as_of) keys with a refresh running or queued."""
        return len(self._refreshes)

    # --------------------------------------------------------
    # BASELINES
    # --------------------------------------------------------

    def cached_baseline(self, metric: MetricKind, as_of: date) -> Optional[Baseline]:
        return self._cache.get((metric, as_of))

    async def refresh_baseline(self, metric: MetricKind, as_of: date) -> Baseline:
        """
        Baseline of ``metric`` for day ``as_of``.

        Returns a cached value when the window has not changed since
        it was computed. Never raises for missing data.
        """
        key = (metric, as_of)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        refresh = self._refreshes.get(key)
        if refresh is None:
            refresh = _Refresh()
            self._refreshes[key] = refresh
        refresh.waiters += 1

        try:
            async with refresh.lock:
                while True:
                    cached = self._cache.get(key)
                    if cached is not None:
                        return cached

                    epoch = refresh.epoch
                    baseline = await self._compute(metric, as_of)
                    if refresh.epoch == epoch:
                        self._cache[key] = baseline
                        return baseline
                    logger.debug(f"Window of {metric.value}@{as_of} changed during fetch; reading again")
        finally:
            refresh.waiters -= 1
            if refresh.waiters == 0 and self._refreshes.get(key) is refresh:
                del self._refreshes[key]

    async def refresh_many(
        self,
        metrics: Iterable[MetricKind],
        as_of: date,
    ) -> Dict[MetricKind, Baseline]:
        metrics = list(metrics)
        results = await asyncio.gather(*(self.refresh_baseline(m, as_of) for m in metrics))
        return dict(zip(metrics, results))

    async def _compute(self, metric: MetricKind, as_of: date) -> Baseline:
        window = self._config.window_for(metric)
        start, end = day_bounds(as_of - timedelta(days=window), as_of, self._tz)
        samples = await self._source.fetch(metric, start, end)

        by_day: Dict[date, List[BiometricSample]] = defaultdict(list)
        for sample in samples:
            by_day[local_day(sample.timestamp, self._tz)].append(sample)

        sample_count = len(samples)
        min_coverage = self._config.min_coverage_for(metric)
        self._computations += 1

        if sample_count >= min_coverage and by_day:
            status = BaselineStatus.AVAILABLE
            aggregate = window_aggregate(metric, by_day)
        else:
            status = BaselineStatus.INSUFFICIENT
            aggregate = None

        logger.debug(
            f"Baseline {metric.value}@{as_of}: {status.value} "
            f"(samples={sample_count}, days={len(by_day)}, min={min_coverage})"
        )

        return Baseline(
            metric_kind=metric,
            as_of=as_of,
            window_days=window,
            aggregate=aggregate,
            sample_count=sample_count,
            days_covered=len(by_day),
            computed_at=self._clock.now(),
            status=status,
        )

    # --------------------------------------------------------
    # INVALIDATION
    # --------------------------------------------------------

    def dependent_days(self, metric: MetricKind, sample_day: date) -> List[date]:
        """Days whose baseline window contains ``sample_day``."""
        window = self._config.window_for(metric)
        return [sample_day + timedelta(days=offset) for offset in range(1, window + 1)]

    def invalidate_for_sample(self, sample: BiometricSample) -> List[date]:
        """
        Drop cached baselines whose window contains the sample.

        A refresh of such a window that is already reading samples
        will not cache its result and reads the window again.

        Returns:
            The as_of days whose cached or in-flight baseline was affected
        """
        sample_day = local_day(sample.timestamp, self._tz)
        affected = []
        for as_of in self.dependent_days(sample.metric_kind, sample_day):
            key = (sample.metric_kind, as_of)
            dropped = self._cache.pop(key, None) is not None
            refresh = self._refreshes.get(key)
            if refresh is not None:
                refresh.epoch += 1
            if dropped or refresh is not None:
                affected.append(as_of)

        if affected:
            logger.debug(
                f"Invalidated {len(affected)} {sample.metric_kind.value} baseline(s) "
                f"for sample on {sample_day}"
            )
        return affected

    def clear(self) -> None:
        self._cache.clear()
        for refresh in self._refreshes.values():
            refresh.epoch += 1

    # --------------------------------------------------------
    # DAY INPUTS
    # --------------------------------------------------------

    async def day_inputs(self, day: date, metrics: Iterable[MetricKind]) -> DailyInputs:
        """Fetch and aggregate one local day's samples for ``metrics``."""
        metrics = list(metrics)
        start, end = day_bounds(day, day + timedelta(days=1), self._tz)
        fetched = await asyncio.gather(*(self._source.fetch(m, start, end) for m in metrics))
        return DailyInputs.from_samples(day, dict(zip(metrics, fetched)))


__all__ = [
    "BaselineConfig",
    "BaselineTracker",
    "circular_mean_minutes",
    "window_aggregate",
]
