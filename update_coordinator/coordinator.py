"""
Update Coordinator - Reactive Recompute.

============================================================
PURPOSE
============================================================
Turns sample arrivals into per-key recomputes and publishes
the results.

FLOW:
    on_samples(batch)
      -> ingest (duplicates dropped)
      -> drop affected baselines
      -> invalidate affected score keys
      -> one runner task per key: compute, publish, settle

SCHEDULING RULES:
- Notification handling never awaits a computation
- At most one computation in flight per key
- A result computed before the latest invalidation is discarded
  and the key recomputed
- Different keys compute concurrently

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from baseline_tracker.sample_source import SampleStore
from baseline_tracker.tracker import BaselineTracker
from cache_store.store import CacheStore
from core.clock import ClockProtocol, SystemClock, local_day
from core.exceptions import ConcurrentRecomputeRace, InvalidConfigError
from scoring_engine.engine import ScoringEngine
from scoring_engine.types import BiometricSample, CompositeScore, ScoreKey, ScoreKind
from .state_machine import KeyState, KeyStateMachine


logger = logging.getLogger(__name__)


ScoreSubscriber = Callable[[CompositeScore], Awaitable[None]]


# ============================================================
# CONFIGURATION
# ============================================================

@dataclass
class CoordinatorConfig:
    """Reactive update configuration."""

    recently_updated_seconds: float = 1800.0
    """How long a published score reports RECENTLY_UPDATED."""

    incomplete_retry_seconds: float = 900.0
    """Delay before recomputing a key whose score was incomplete."""

    max_incomplete_retries: int = 4
    """Follow-up recomputes per key while it stays incomplete."""

    recompute_dependent_days: bool = True
    """Refresh cached later days whose baseline window holds a new sample."""

    def __post_init__(self) -> None:
        if self.recently_updated_seconds < 0:
            raise InvalidConfigError("recently_updated_seconds", self.recently_updated_seconds, "must be >= 0")
        if self.incomplete_retry_seconds <= 0:
            raise InvalidConfigError("incomplete_retry_seconds", self.incomplete_retry_seconds, "must be > 0")
        if self.max_incomplete_retries < 0:
            raise InvalidConfigError("max_incomplete_retries", self.max_incomplete_retries, "must be >= 0")


# ============================================================
# UPDATE COORDINATOR
# ============================================================

class UpdateCoordinator:
    """
    Reactive recompute coordinator.

    Collaborators are injected; the coordinator owns only key
    state, runner tasks and subscribers.
    """

    def __init__(
        self,
        store: SampleStore,
        tracker: BaselineTracker,
        engine: ScoringEngine,
        cache: CacheStore,
        config: Optional[CoordinatorConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._store = store
        self._tracker = tracker
        self._engine = engine
        self._cache = cache
        self._config = config or CoordinatorConfig()
        self._clock = clock or SystemClock()

        self._machines: Dict[ScoreKey, KeyStateMachine] = {}
        self._locks: Dict[ScoreKey, asyncio.Lock] = {}
        self._runners: Dict[ScoreKey, asyncio.Task] = {}
        self._retry_timers: Dict[ScoreKey, asyncio.Task] = {}
        self._retry_counts: Dict[ScoreKey, int] = {}
        self._subscribers: List[ScoreSubscriber] = []

        self._computations = 0
        self._publishes = 0
        self._discards = 0
        self._failures = 0
        self._subscriber_errors = 0
        self._closed = False

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    @property
    def tz(self) -> tzinfo:
        return self._tracker.tz

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def tracker(self) -> BaselineTracker:
        return self._tracker

    @property
    def clock(self) -> ClockProtocol:
        return self._clock

    def state_of(self, key: ScoreKey) -> KeyState:
        machine = self._machines.get(key)
        return machine.state if machine is not None else KeyState.IDLE

    def machine(self, key: ScoreKey) -> KeyStateMachine:
        machine = self._machines.get(key)
        if machine is None:
            machine = KeyStateMachine(key)
            self._machines[key] = machine
        return machine

    def get_stats(self) -> Dict[str, int]:
        return {
            "keys": len(self._machines),
            "in_flight": sum(1 for t in self._runners.values() if not t.done()),
            "computations": self._computations,
            "publishes": self._publishes,
            "discards": self._discards,
            "failures": self._failures,
            "subscriber_errors": self._subscriber_errors,
        }

    # --------------------------------------------------------
    # SUBSCRIBERS
    # --------------------------------------------------------

    def subscribe(self, callback: ScoreSubscriber) -> Callable[[], None]:
        """
        Register an async callback for published scores.

        Returns:
            A callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # --------------------------------------------------------
    # NOTIFICATIONS
    # --------------------------------------------------------

    async def on_samples(self, batch: Iterable[BiometricSample]) -> List[ScoreKey]:
        """
        Handle a provider delivery.

        Returns:
            The keys invalidated by the batch's new samples
        """
        if self._closed:
            logger.warning("Coordinator is shut down; ignoring sample batch")
            return []

        new_samples = await self._store.ingest(batch)
        if not new_samples:
            return []

        for sample in new_samples:
            self._tracker.invalidate_for_sample(sample)

        keys = await self._affected_keys(new_samples)
        for key in sorted(keys, key=lambda k: (k.day_key, k.score_kind.value)):
            await self.invalidate(key, reason="new samples")

        logger.info(f"Processed {len(new_samples)} new sample(s), invalidated {len(keys)} key(s)")
        return sorted(keys, key=lambda k: (k.day_key, k.score_kind.value))

    async def _affected_keys(self, samples: List[BiometricSample]) -> Set[ScoreKey]:
        tz = self._tracker.tz
        today = self._clock.today(tz)
        keys: Set[ScoreKey] = set()
        checked: Set[ScoreKey] = set()

        for sample in samples:
            sample_day = local_day(sample.timestamp, tz)
            for kind in sample.metric_kind.score_kinds():
                keys.add(ScoreKey(sample_day, kind))

            if not self._config.recompute_dependent_days:
                continue

            kinds = [
                kind for kind in ScoreKind
                if sample.metric_kind in self._engine.required_baselines(kind)
            ]
            for day in self._tracker.dependent_days(sample.metric_kind, sample_day):
                if day > today:
                    break
                for kind in kinds:
                    key = ScoreKey(day, kind)
                    if key in keys or key in checked:
                        continue
                    checked.add(key)
                    # A pending key may already have read the old window.
                    if self.state_of(key).is_pending() or await self._cache.contains(key):
                        keys.add(key)
        return keys

    async def invalidate(self, key: ScoreKey, reason: str = "") -> bool:
        """
        Mark a key as needing recompute.

        Returns:
            True if a new runner was scheduled
        """
        if self._closed:
            return False

        machine = self.machine(key)
        scheduled = machine.invalidate(reason)
        await self._cache.invalidate(key)

        if scheduled:
            runner = self._runners.get(key)
            if runner is None or runner.done():
                self._runners[key] = asyncio.create_task(self._run(key), name=f"recompute:{key}")
        return scheduled

    async def request_days(self, days: Iterable[date]) -> None:
        """Invalidate every score kind of the given days."""
        for day in days:
            for kind in ScoreKind:
                await self.invalidate(ScoreKey(day, kind), reason="requested")

    # --------------------------------------------------------
    # RUNNER
    # --------------------------------------------------------

    async def _run(self, key: ScoreKey) -> None:
        machine = self.machine(key)
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            while True:
                machine.transition_to(KeyState.COMPUTING)
                started = machine.generation

                try:
                    score = await self._compute(key)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._failures += 1
                    logger.error(f"Recompute of {key} failed: {e}")
                    score = None

                if machine.state == KeyState.SUPERSEDED:
                    race = ConcurrentRecomputeRace(str(key), started, machine.generation)
                    logger.info(f"{race.code}: {race.message}")
                    self._discards += 1
                    machine.transition_to(KeyState.INVALIDATED, reason="discarded")
                    continue

                if score is not None:
                    await self._publish(key, score)

                if machine.state == KeyState.SUPERSEDED:
                    machine.transition_to(KeyState.INVALIDATED, reason="input during publish")
                    continue

                machine.transition_to(KeyState.IDLE, reason="published" if score is not None else "failed")
                if score is not None:
                    self._schedule_incomplete_retry(key, score)
                return

    async def _compute(self, key: ScoreKey) -> CompositeScore:
        self._computations += 1
        kind = key.score_kind
        baselines = await self._tracker.refresh_many(self._engine.required_baselines(kind), key.day_key)
        inputs = await self._tracker.day_inputs(key.day_key, self._engine.required_metrics(kind))
        return self._engine.compute(kind, inputs, baselines, self._clock.now())

    async def _publish(self, key: ScoreKey, score: CompositeScore) -> None:
        await self._cache.put(key, score)
        self._publishes += 1
        logger.info(f"Published {key}: overall={score.overall} complete={score.data_complete}")

        for subscriber in list(self._subscribers):
            try:
                await subscriber(score)
            except Exception as e:
                self._subscriber_errors += 1
                logger.error(f"Subscriber error for {key}: {e}")

    # --------------------------------------------------------
    # INCOMPLETE RETRY
    # --------------------------------------------------------

    def _schedule_incomplete_retry(self, key: ScoreKey, score: CompositeScore) -> None:
        if score.data_complete:
            self._retry_counts.pop(key, None)
            self._cancel_retry_timer(key)
            return

        attempts = self._retry_counts.get(key, 0)
        if attempts >= self._config.max_incomplete_retries:
            return
        self._retry_counts[key] = attempts + 1

        self._cancel_retry_timer(key)
        self._retry_timers[key] = asyncio.create_task(
            self._retry_after(key, self._config.incomplete_retry_seconds),
            name=f"incomplete-retry:{key}",
        )
        logger.debug(
            f"{key} incomplete; retry {attempts + 1}/{self._config.max_incomplete_retries} "
            f"in {self._config.incomplete_retry_seconds:.0f}s"
        )

    async def _retry_after(self, key: ScoreKey, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._retry_timers.get(key) is asyncio.current_task():
            del self._retry_timers[key]
        await self.invalidate(key, reason="incomplete retry")

    def _cancel_retry_timer(self, key: ScoreKey) -> None:
        timer = self._retry_timers.pop(key, None)
        if timer is not None and not timer.done():
            timer.cancel()

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def wait_until_idle(self) -> None:
        """Wait for every in-flight recompute, including ones they trigger."""
        while True:
            pending = [t for t in self._runners.values() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding work and flush the cache's durable writes."""
        self._closed = True
        tasks = [t for t in list(self._runners.values()) + list(self._retry_timers.values()) if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._runners.clear()
        self._retry_timers.clear()
        await self._cache.flush()
        logger.info(f"Update coordinator shut down ({len(tasks)} task(s) cancelled)")


__all__ = [
    "ScoreSubscriber",
    "CoordinatorConfig",
    "UpdateCoordinator",
]
