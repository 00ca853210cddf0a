"""
Tests for the Baseline Tracker.

============================================================
PURPOSE
============================================================
Covers:
1. Sample validation and idempotent ingestion
2. Trailing window boundaries and coverage
3. Per-metric aggregation (mean, daily sums, clock times)
4. Caching, invalidation and single-flight computation
5. Local-day grouping of inputs

============================================================
"""

import asyncio
import math
import pytest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from baseline_tracker.sample_source import InMemorySampleStore, validate_sample
from baseline_tracker.tracker import BaselineConfig, BaselineTracker, circular_mean_minutes
from core.clock import MockClock
from core.exceptions import InvalidConfigError, SampleValidationError
from scoring_engine.types import BaselineStatus, BiometricSample, MetricKind


AS_OF = date(2025, 3, 14)


def at(day: date, hour: int = 7, minute: int = 0, tz=timezone.utc) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)


def daily(metric: MetricKind, value: float, days: int, hour: int = 7) -> list:
    """One sample per day for the ``days`` days before AS_OF."""
    return [
        BiometricSample(metric, at(AS_OF - timedelta(days=offset), hour), value)
        for offset in range(1, days + 1)
    ]


class SnapshotThenWaitStore(InMemorySampleStore):
    """Sample store that reads its window, then waits on an event before returning."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.parked = 0

    async def fetch(self, metric_kind, start, end):
        samples = await super().fetch(metric_kind, start, end)
        self.parked += 1
        await self.gate.wait()
        return samples


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def store():
    """Empty in-memory sample store."""
    return InMemorySampleStore()


@pytest.fixture
def clock():
    """Clock pinned to the morning of AS_OF."""
    return MockClock(at(AS_OF, 12))


@pytest.fixture
def tracker(store, clock):
    """Tracker over UTC days with the default 14-day window."""
    return BaselineTracker(store, timezone.utc, BaselineConfig(), clock)


# ============================================================
# SAMPLE STORE TESTS
# ============================================================

class TestSampleStore:
    """Tests for validation and ingestion."""

    def test_rejects_non_finite_and_negative(self):
        """Test value domain checks."""
        ts = at(AS_OF)

        with pytest.raises(SampleValidationError):
            validate_sample(BiometricSample(MetricKind.HRV, ts, math.nan))
        with pytest.raises(SampleValidationError):
            validate_sample(BiometricSample(MetricKind.HRV, ts, -1.0))
        with pytest.raises(SampleValidationError):
            validate_sample(BiometricSample(MetricKind.OXYGEN_SATURATION, ts, 101.0))
        with pytest.raises(SampleValidationError):
            validate_sample(BiometricSample(MetricKind.BEDTIME, ts, 1500.0))

    def test_naive_timestamp_treated_as_utc(self):
        """Test that naive timestamps become UTC."""
        sample = validate_sample(BiometricSample(MetricKind.HRV, datetime(2025, 3, 14, 7), 40.0))

        assert sample.timestamp.tzinfo == timezone.utc

    @pytest.mark.asyncio
    async def test_ingest_drops_duplicates(self, store):
        """Test at-least-once delivery handling."""
        batch = daily(MetricKind.HRV, 40.0, 3)

        first = await store.ingest(batch)
        second = await store.ingest(batch + daily(MetricKind.HRV, 40.0, 4)[3:])

        assert len(first) == 3
        assert len(second) == 1
        assert store.size == 4

    @pytest.mark.asyncio
    async def test_ingest_skips_invalid(self, store):
        """Test that one bad sample does not sink the batch."""
        batch = [
            BiometricSample(MetricKind.HRV, at(AS_OF), 40.0),
            BiometricSample(MetricKind.HRV, at(AS_OF, 8), -5.0),
        ]

        added = await store.ingest(batch)

        assert len(added) == 1
        assert store.rejected_count == 1

    @pytest.mark.asyncio
    async def test_fetch_is_half_open(self, store):
        """Test that fetch includes start and excludes end."""
        start = at(AS_OF, 0)
        end = at(AS_OF + timedelta(days=1), 0)
        await store.ingest([
            BiometricSample(MetricKind.HRV, start, 1.0),
            BiometricSample(MetricKind.HRV, end, 2.0),
        ])

        fetched = await store.fetch(MetricKind.HRV, start, end)

        assert [s.value for s in fetched] == [1.0]


# ============================================================
# WINDOW TESTS
# ============================================================

class TestBaselineWindow:
    """Tests for window boundaries and coverage."""

    @pytest.mark.asyncio
    async def test_current_day_excluded(self, store, tracker):
        """Test that the as_of day never feeds its own baseline."""
        await store.ingest(daily(MetricKind.HRV, 40.0, 7))
        await store.ingest([BiometricSample(MetricKind.HRV, at(AS_OF, 6), 1000.0)])

        baseline = await tracker.refresh_baseline(MetricKind.HRV, AS_OF)

        assert baseline.status == BaselineStatus.AVAILABLE
        assert baseline.aggregate == pytest.approx(40.0)
        assert baseline.sample_count == 7

    @pytest.mark.asyncio
    async def test_window_start_inclusive(self, store, tracker):
        """Test the oldest day of the window is included and the one before is not."""
        await store.ingest(daily(MetricKind.HRV, 40.0, 6))
        await store.ingest([
            BiometricSample(MetricKind.HRV, at(AS_OF - timedelta(days=14), 0), 40.0),
            BiometricSample(MetricKind.HRV, at(AS_OF - timedelta(days=15), 23, 59), 400.0),
        ])

        baseline = await tracker.refresh_baseline(MetricKind.HRV, AS_OF)

        assert baseline.sample_count == 7
        assert baseline.aggregate == pytest.approx(40.0)

    @pytest.mark.asyncio
    async def test_insufficient_coverage(self, store, tracker):
        """Test that fewer samples than half the window are insufficient."""
        await store.ingest(daily(MetricKind.HRV, 40.0, 6))

        baseline = await tracker.refresh_baseline(MetricKind.HRV, AS_OF)

        assert baseline.status == BaselineStatus.INSUFFICIENT
        assert baseline.aggregate is None
        assert not baseline.is_available

    @pytest.mark.asyncio
    async def test_window_override(self, store, clock):
        """Test a per-metric window length."""
        config = BaselineConfig(window_overrides={MetricKind.HRV: 4})
        tracker = BaselineTracker(store, timezone.utc, config, clock)
        await store.ingest(daily(MetricKind.HRV, 40.0, 2) + daily(MetricKind.HRV, 80.0, 6)[4:])

        baseline = await tracker.refresh_baseline(MetricKind.HRV, AS_OF)

        assert baseline.window_days == 4
        assert baseline.sample_count == 2
        assert baseline.aggregate == pytest.approx(40.0)

    def test_config_validation(self):
        """Test configuration bounds and the default coverage rule."""
        with pytest.raises(InvalidConfigError):
            BaselineConfig(window_days=0)

        config = BaselineConfig(window_days=14)
        assert config.min_coverage_for(MetricKind.HRV) == 7
        assert BaselineConfig(window_days=1).min_coverage_for(MetricKind.HRV) == 1
        assert BaselineConfig(min_coverage=3).min_coverage_for(MetricKind.HRV) == 3


# ============================================================
# AGGREGATION TESTS
# ============================================================

class TestAggregation:
    """Tests for per-metric aggregation."""

    def test_circular_mean_across_midnight(self):
        """Test that 23:20 and 00:20 average to 23:50, not noon."""
        assert circular_mean_minutes([1400.0, 20.0]) == pytest.approx(1430.0, abs=1e-6)

    def test_circular_mean_same_evening(self):
        assert circular_mean_minutes([1320.0, 1380.0]) == pytest.approx(1350.0, abs=1e-6)

    @pytest.mark.asyncio
    async def test_bedtime_baseline_wraps(self, store, clock):
        """Test the bedtime baseline around midnight."""
        tracker = BaselineTracker(store, timezone.utc, BaselineConfig(min_coverage=2), clock)
        await store.ingest([
            BiometricSample(MetricKind.BEDTIME, at(AS_OF - timedelta(days=1)), 1400.0),
            BiometricSample(MetricKind.BEDTIME, at(AS_OF - timedelta(days=2)), 20.0),
        ])

        baseline = await tracker.refresh_baseline(MetricKind.BEDTIME, AS_OF)

        assert baseline.aggregate == pytest.approx(1430.0, abs=1e-6)

    @pytest.mark.asyncio
    async def test_stage_durations_average_daily_totals(self, store, clock):
        """Test that sleep-stage segments sum per day before averaging."""
        tracker = BaselineTracker(store, timezone.utc, BaselineConfig(min_coverage=1), clock)
        day1 = AS_OF - timedelta(days=1)
        day2 = AS_OF - timedelta(days=2)
        await store.ingest([
            BiometricSample(MetricKind.DEEP_SLEEP, at(day1, 3), 30.0),
            BiometricSample(MetricKind.DEEP_SLEEP, at(day1, 5), 40.0),
            BiometricSample(MetricKind.DEEP_SLEEP, at(day2, 4), 50.0),
        ])

        baseline = await tracker.refresh_baseline(MetricKind.DEEP_SLEEP, AS_OF)

        assert baseline.aggregate == pytest.approx(60.0)
        assert baseline.days_covered == 2


# ============================================================
# CACHING TESTS
# ============================================================

class TestBaselineCaching:
    """Tests for caching and invalidation."""

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, store, tracker):
        """Test that a new in-window sample forces recomputation."""
        await store.ingest(daily(MetricKind.HRV, 40.0, 7))

        first = await tracker.refresh_baseline(MetricKind.HRV, AS_OF)
        again = await tracker.refresh_baseline(MetricKind.HRV, AS_OF)
        assert again is first
        assert tracker.computation_count == 1

        late = BiometricSample(MetricKind.HRV, at(AS_OF - timedelta(days=8)), 54.0)
        await store.ingest([late])
        dropped = tracker.invalidate_for_sample(late)

        refreshed = await tracker.refresh_baseline(MetricKind.HRV, AS_OF)
        assert AS_OF in dropped
        assert tracker.computation_count == 2
        assert refreshed.aggregate == pytest.approx(41.75)

    @pytest.mark.asyncio
    async def test_sample_outside_window_keeps_cache(self, store, tracker):
        """Test that a same-day sample leaves that day's baseline alone."""
        await store.ingest(daily(MetricKind.HRV, 40.0, 7))
        await tracker.refresh_baseline(MetricKind.HRV, AS_OF)

        dropped = tracker.invalidate_for_sample(BiometricSample(MetricKind.HRV, at(AS_OF), 45.0))

        assert dropped == []
        assert tracker.cached_baseline(MetricKind.HRV, AS_OF) is not None

    @pytest.mark.asyncio
    async def test_concurrent_refresh_computes_once(self, store, tracker):
        """Test single-flight computation per (metric, day)."""
        await store.ingest(daily(MetricKind.HRV, 40.0, 7))

        results = await asyncio.gather(*(
            tracker.refresh_baseline(MetricKind.HRV, AS_OF) for _ in range(5)
        ))

        assert tracker.computation_count == 1
        assert all(r is results[0] for r in results)
        assert tracker.in_flight == 0

    @pytest.mark.asyncio
    async def test_sample_during_fetch_is_not_lost(self, clock):
        """Test that a fetch overtaken by an in-window sample is read again."""
        store = SnapshotThenWaitStore()
        tracker = BaselineTracker(store, timezone.utc, BaselineConfig(), clock)
        await store.ingest(daily(MetricKind.HRV, 40.0, 7))

        store.gate.clear()
        pending = asyncio.create_task(tracker.refresh_baseline(MetricKind.HRV, AS_OF))
        for _ in range(20):
            if store.parked:
                break
            await asyncio.sleep(0)
        assert store.parked == 1

        late = BiometricSample(MetricKind.HRV, at(AS_OF - timedelta(days=8)), 54.0)
        await store.ingest([late])
        affected = tracker.invalidate_for_sample(late)
        store.gate.set()
        baseline = await pending

        assert AS_OF in affected
        assert baseline.aggregate == pytest.approx(41.75)
        assert tracker.cached_baseline(MetricKind.HRV, AS_OF) is baseline
        assert tracker.computation_count == 2

    @pytest.mark.asyncio
    async def test_refresh_state_released(self, store, tracker):
        """Test that no per-key refresh state outlives its refresh."""
        await store.ingest(daily(MetricKind.HRV, 40.0, 7))

        for offset in range(10):
            await tracker.refresh_baseline(MetricKind.HRV, AS_OF + timedelta(days=offset))

        assert tracker.in_flight == 0

    def test_dependent_days(self, tracker):
        """Test the days whose window holds a sample day."""
        days = tracker.dependent_days(MetricKind.HRV, AS_OF)

        assert days[0] == AS_OF + timedelta(days=1)
        assert days[-1] == AS_OF + timedelta(days=14)
        assert len(days) == 14


# ============================================================
# DAY INPUT TESTS
# ============================================================

class TestDayInputs:
    """Tests for local-day grouping."""

    @pytest.mark.asyncio
    async def test_aggregates_per_metric(self, store, tracker):
        """Test mean, sum and latest aggregation of one day."""
        await store.ingest([
            BiometricSample(MetricKind.HRV, at(AS_OF, 6), 40.0),
            BiometricSample(MetricKind.HRV, at(AS_OF, 7), 50.0),
            BiometricSample(MetricKind.REM_SLEEP, at(AS_OF, 3), 20.0),
            BiometricSample(MetricKind.REM_SLEEP, at(AS_OF, 5), 25.0),
            BiometricSample(MetricKind.BEDTIME, at(AS_OF, 6), 1380.0),
            BiometricSample(MetricKind.BEDTIME, at(AS_OF, 8), 1395.0),
        ])

        inputs = await tracker.day_inputs(
            AS_OF, [MetricKind.HRV, MetricKind.REM_SLEEP, MetricKind.BEDTIME, MetricKind.DEEP_SLEEP]
        )

        assert inputs.get(MetricKind.HRV) == pytest.approx(45.0)
        assert inputs.get(MetricKind.REM_SLEEP) == pytest.approx(45.0)
        assert inputs.get(MetricKind.BEDTIME) == pytest.approx(1395.0)
        assert inputs.get(MetricKind.DEEP_SLEEP) is None
        assert inputs.sample_counts[MetricKind.HRV] == 2

    @pytest.mark.asyncio
    async def test_day_follows_local_zone(self, store, clock):
        """Test that a late-evening UTC reading lands on the next Tokyo day."""
        tokyo = ZoneInfo("Asia/Tokyo")
        tracker = BaselineTracker(store, tokyo, BaselineConfig(), clock)
        await store.ingest([
            BiometricSample(MetricKind.HRV, datetime(2025, 3, 13, 23, 30, tzinfo=timezone.utc), 44.0),
        ])

        previous = await tracker.day_inputs(date(2025, 3, 13), [MetricKind.HRV])
        local = await tracker.day_inputs(date(2025, 3, 14), [MetricKind.HRV])

        assert previous.get(MetricKind.HRV) is None
        assert local.get(MetricKind.HRV) == pytest.approx(44.0)
