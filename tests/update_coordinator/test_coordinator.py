"""
Tests for the Update Coordinator.

============================================================
PURPOSE
============================================================
Covers reactive recompute end to end with in-memory
collaborators:
1. Key selection for new samples
2. At-most-one recompute per key and superseded results
3. Subscriber isolation
4. Follow-up recomputes of incomplete scores
5. Query service reads

============================================================
"""

import asyncio
import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

from baseline_tracker.sample_source import InMemorySampleStore
from baseline_tracker.tracker import BaselineConfig, BaselineTracker
from cache_store.config import CacheConfig
from cache_store.durable import DurableTier
from cache_store.store import CacheStore
from core.clock import MockClock
from scoring_engine.engine import ScoringEngine
from scoring_engine.types import BiometricSample, MetricKind, ScoreKey, ScoreKind
from update_coordinator.coordinator import CoordinatorConfig, UpdateCoordinator
from update_coordinator.freshness import FreshnessStatus
from update_coordinator.query_service import ScoreQueryService
from update_coordinator.state_machine import KeyState


TODAY = date(2025, 3, 14)
NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
RECOVERY_TODAY = ScoreKey(TODAY, ScoreKind.RECOVERY)


def hrv(day: date, value: float, hour: int = 7, minute: int = 0) -> BiometricSample:
    return BiometricSample(MetricKind.HRV, datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc), value)


def hrv_history(value: float = 40.0, days: int = 14) -> list:
    return [hrv(TODAY - timedelta(days=offset), value) for offset in range(1, days + 1)]


class GatedSampleStore(InMemorySampleStore):
    """Sample store whose reads wait on an event."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()

    async def fetch(self, metric_kind, start, end):
        await self.gate.wait()
        return await super().fetch(metric_kind, start, end)


class SnapshotThenWaitStore(InMemorySampleStore):
    """Sample store that reads its window, then waits on an event before returning."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.parked = []

    async def fetch(self, metric_kind, start, end):
        samples = await super().fetch(metric_kind, start, end)
        if not self.gate.is_set():
            self.parked.append((metric_kind, end))
        await self.gate.wait()
        return samples


class DictDurableTier(DurableTier):
    """Durable tier over a plain dict."""

    def __init__(self):
        self.rows = {}

    async def save(self, score):
        self.rows[score.key] = score

    async def load(self, key):
        return self.rows.get(key)

    async def recent(self, limit, score_kind=None, until=None):
        scores = [
            s for s in self.rows.values()
            if (score_kind is None or s.score_kind == score_kind) and (until is None or s.day_key <= until)
        ]
        scores.sort(key=lambda s: (s.day_key, s.score_kind.value), reverse=True)
        return scores[:limit]


def build(store=None, config=None, durable=None, capacity=50):
    store = store or InMemorySampleStore()
    clock = MockClock(NOW)
    tracker = BaselineTracker(store, timezone.utc, BaselineConfig(), clock)
    cache = CacheStore(CacheConfig(capacity=capacity), durable, clock)
    config = config or CoordinatorConfig(max_incomplete_retries=0)
    coordinator = UpdateCoordinator(store, tracker, ScoringEngine(), cache, config, clock)
    return coordinator, store, cache


async def wait_for_state(coordinator, key, state, attempts: int = 50) -> None:
    for _ in range(attempts):
        if coordinator.state_of(key) == state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"{key} never reached {state}")


async def wait_until(predicate, attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never met")


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def mock_durable():
    durable = AsyncMock(spec=DurableTier)
    durable.load.return_value = None
    durable.exists.return_value = False
    durable.recent.return_value = []
    return durable


# ============================================================
# KEY SELECTION TESTS
# ============================================================

class TestKeySelection:
    """Tests for which keys a batch invalidates."""

    @pytest.mark.asyncio
    async def test_hrv_sample_touches_recovery_only(self):
        coordinator, store, _ = build()

        keys = await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()

        assert keys == [RECOVERY_TODAY]
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_sleep_sample_touches_both_profiles(self):
        coordinator, _, _ = build()
        sample = BiometricSample(MetricKind.REM_SLEEP, datetime(2025, 3, 14, 5, 0, tzinfo=timezone.utc), 30.0)

        keys = await coordinator.on_samples([sample])
        await coordinator.wait_until_idle()

        assert keys == [RECOVERY_TODAY, ScoreKey(TODAY, ScoreKind.SLEEP)]
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_ignored(self):
        """Test that a redelivered batch triggers no work."""
        coordinator, _, _ = build()
        batch = [hrv(TODAY, 45.0)]

        await coordinator.on_samples(batch)
        await coordinator.wait_until_idle()
        again = await coordinator.on_samples(batch)
        await coordinator.wait_until_idle()

        assert again == []
        assert coordinator.get_stats()["computations"] == 1
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_late_sample_refreshes_cached_later_days(self):
        """Test that a late sample recomputes later days whose baseline it feeds."""
        coordinator, store, cache = build()
        await store.ingest(hrv_history())
        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()
        first = await cache.get(RECOVERY_TODAY)

        yesterday = TODAY - timedelta(days=1)
        keys = await coordinator.on_samples([hrv(yesterday, 80.0, hour=9)])
        await coordinator.wait_until_idle()
        second = await cache.get(RECOVERY_TODAY)

        assert keys == [ScoreKey(yesterday, ScoreKind.RECOVERY), RECOVERY_TODAY]
        assert second.component("hrv").raw_inputs["baseline"] > first.component("hrv").raw_inputs["baseline"]
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_uncached_later_days_left_alone(self):
        coordinator, _, _ = build()
        yesterday = TODAY - timedelta(days=1)

        keys = await coordinator.on_samples([hrv(yesterday, 44.0)])
        await coordinator.wait_until_idle()

        assert keys == [ScoreKey(yesterday, ScoreKind.RECOVERY)]
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_late_sample_refreshes_days_held_only_durably(self):
        """Test that a later day pushed out of memory is still recomputed."""
        durable = DictDurableTier()
        coordinator, store, cache = build(durable=durable, capacity=1)
        yesterday_key = ScoreKey(TODAY - timedelta(days=1), ScoreKind.RECOVERY)
        await store.ingest(hrv_history())

        await coordinator.invalidate(yesterday_key)
        await coordinator.wait_until_idle()
        await coordinator.invalidate(RECOVERY_TODAY)
        await coordinator.wait_until_idle()
        await cache.flush()
        before = durable.rows[yesterday_key].component("hrv").raw_inputs["baseline"]
        assert cache.stats().size == 1

        keys = await coordinator.on_samples([hrv(TODAY - timedelta(days=5), 300.0, hour=9)])
        await coordinator.wait_until_idle()
        await cache.flush()

        after = durable.rows[yesterday_key].component("hrv").raw_inputs["baseline"]
        assert yesterday_key in keys
        assert RECOVERY_TODAY in keys
        assert before == pytest.approx(40.0)
        assert after == pytest.approx(820.0 / 14)
        await coordinator.shutdown()


# ============================================================
# RECOMPUTE TESTS
# ============================================================

class TestRecompute:
    """Tests for the recompute lifecycle."""

    @pytest.mark.asyncio
    async def test_hrv_only_morning_publishes(self):
        """Test the score published for a morning with only HRV synced."""
        coordinator, store, cache = build()
        await store.ingest(hrv_history())

        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()

        score = await cache.get(RECOVERY_TODAY)
        assert score.overall == 43
        assert not score.data_complete
        assert coordinator.state_of(RECOVERY_TODAY) == KeyState.IDLE
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_input_during_compute_discards_result(self, mock_durable):
        """Test that a compute overtaken by new input never publishes."""
        store = GatedSampleStore()
        coordinator, _, cache = build(store=store, durable=mock_durable)
        await store.ingest(hrv_history())
        published = []

        async def record(score):
            published.append(score)

        coordinator.subscribe(record)

        store.gate.clear()
        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await wait_for_state(coordinator, RECOVERY_TODAY, KeyState.COMPUTING)

        await coordinator.on_samples([hrv(TODAY, 46.0, minute=10)])
        assert coordinator.state_of(RECOVERY_TODAY) == KeyState.SUPERSEDED
        await coordinator.on_samples([hrv(TODAY, 47.0, minute=20)])
        assert coordinator.state_of(RECOVERY_TODAY) == KeyState.SUPERSEDED

        store.gate.set()
        await coordinator.wait_until_idle()
        await cache.flush()

        stats = coordinator.get_stats()
        assert stats["computations"] == 2
        assert stats["discards"] == 1
        assert stats["publishes"] == 1
        assert len(published) == 1
        assert published[0].component("hrv").raw_inputs["current"] == pytest.approx(46.0)
        assert mock_durable.save.await_count == 1
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_sample_during_baseline_read_is_published(self):
        """Test that a sample landing while a baseline window is read reaches the score."""
        store = SnapshotThenWaitStore()
        coordinator, _, cache = build(store=store)
        await store.ingest(hrv_history())
        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()

        store.gate.clear()
        await coordinator.on_samples([hrv(TODAY - timedelta(days=2), 40.0, hour=9)])
        today_start = datetime(2025, 3, 14, tzinfo=timezone.utc)
        await wait_until(lambda: (MetricKind.HRV, today_start) in store.parked)

        await coordinator.on_samples([hrv(TODAY - timedelta(days=3), 200.0, hour=9)])
        assert coordinator.state_of(RECOVERY_TODAY) == KeyState.SUPERSEDED

        store.gate.set()
        await coordinator.wait_until_idle()

        score = await cache.get(RECOVERY_TODAY)
        # 15 readings of 40 and one of 200 in the window
        assert score.component("hrv").raw_inputs["baseline"] == pytest.approx(50.0)
        assert coordinator.tracker.in_flight == 0
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_subscriber_failure_isolated(self):
        """Test that one failing subscriber does not block others."""
        coordinator, store, cache = build()
        received = []

        async def broken(score):
            raise RuntimeError("push service down")

        async def record(score):
            received.append(score.key)

        coordinator.subscribe(broken)
        coordinator.subscribe(record)

        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()

        assert received == [RECOVERY_TODAY]
        assert coordinator.get_stats()["subscriber_errors"] == 1
        assert await cache.get(RECOVERY_TODAY) is not None
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        coordinator, _, _ = build()
        received = []

        async def record(score):
            received.append(score)

        unsubscribe = coordinator.subscribe(record)
        unsubscribe()

        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()

        assert received == []
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_compute_failure_returns_to_idle(self, monkeypatch):
        """Test that a failed compute leaves the previous value untouched."""
        coordinator, _, cache = build()
        monkeypatch.setattr(coordinator.tracker, "day_inputs", AsyncMock(side_effect=RuntimeError("boom")))

        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()

        assert coordinator.state_of(RECOVERY_TODAY) == KeyState.IDLE
        assert coordinator.get_stats()["failures"] == 1
        assert await cache.get(RECOVERY_TODAY) is None
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_incomplete_score_retried(self):
        """Test the bounded follow-up recompute of incomplete scores."""
        config = CoordinatorConfig(incomplete_retry_seconds=0.01, max_incomplete_retries=1)
        coordinator, _, _ = build(config=config)

        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()
        await asyncio.sleep(0.05)
        await coordinator.wait_until_idle()
        await asyncio.sleep(0.05)
        await coordinator.wait_until_idle()

        assert coordinator.get_stats()["computations"] == 2
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_request_days(self):
        coordinator, _, cache = build()

        await coordinator.request_days([TODAY])
        await coordinator.wait_until_idle()

        assert await cache.get(RECOVERY_TODAY) is not None
        assert await cache.get(ScoreKey(TODAY, ScoreKind.SLEEP)) is not None
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_ignores_new_samples(self):
        coordinator, _, _ = build()
        await coordinator.shutdown()

        assert await coordinator.on_samples([hrv(TODAY, 45.0)]) == []
        assert not await coordinator.invalidate(RECOVERY_TODAY)


# ============================================================
# QUERY SERVICE TESTS
# ============================================================

class TestScoreQueryService:
    """Tests for consumer reads."""

    @pytest.mark.asyncio
    async def test_current_score_and_freshness(self):
        coordinator, store, _ = build()
        query = ScoreQueryService(coordinator)
        await store.ingest(hrv_history())

        assert await query.current_score(ScoreKind.RECOVERY) is None
        await coordinator.on_samples([hrv(TODAY, 45.0)])
        await coordinator.wait_until_idle()

        score = await query.current_score(ScoreKind.RECOVERY)
        report = await query.freshness_status(ScoreKind.RECOVERY)
        assert score.overall == 43
        assert report.status == FreshnessStatus.RECENTLY_UPDATED
        assert report.message == "Score updated, monitoring for more data"
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_freshness_while_computing(self):
        store = GatedSampleStore()
        coordinator, _, _ = build(store=store)
        query = ScoreQueryService(coordinator)

        store.gate.clear()
        await coordinator.on_samples([hrv(TODAY, 45.0)])
        report = await query.freshness_status(ScoreKind.RECOVERY)

        assert report.status == FreshnessStatus.COMPUTING
        store.gate.set()
        await coordinator.wait_until_idle()
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_history_range(self):
        """Test that history covers only the requested days."""
        coordinator, _, _ = build()
        query = ScoreQueryService(coordinator)

        await coordinator.request_days([TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=5)])
        await coordinator.wait_until_idle()

        history = await query.history(ScoreKind.SLEEP, 3)

        assert [s.day_key for s in history] == [TODAY, TODAY - timedelta(days=1)]
        assert await query.history(ScoreKind.SLEEP, 0) == []
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_history_ignores_future_days(self):
        """Test that a future-dated score does not push in-range days out."""
        coordinator, _, _ = build()
        query = ScoreQueryService(coordinator)

        await coordinator.request_days([TODAY + timedelta(days=1), TODAY, TODAY - timedelta(days=1)])
        await coordinator.wait_until_idle()

        history = await query.history(ScoreKind.SLEEP, 2)

        assert [s.day_key for s in history] == [TODAY, TODAY - timedelta(days=1)]
        await coordinator.shutdown()

    @pytest.mark.asyncio
    async def test_baseline(self):
        coordinator, store, _ = build()
        query = ScoreQueryService(coordinator)
        await store.ingest(hrv_history(42.0))

        baseline = await query.baseline(MetricKind.HRV)

        assert baseline.as_of == TODAY
        assert baseline.aggregate == pytest.approx(42.0)
