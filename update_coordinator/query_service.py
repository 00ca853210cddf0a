"""
Update Coordinator - Score Query Service.

============================================================
PURPOSE
============================================================
Read-only interface for consumers.

- current_score: cached value for a day, never triggers a recompute
- history: most recent scores first
- freshness_status: status + message for one key
- baseline: current baseline of one metric

============================================================
"""

import logging
from datetime import date, timedelta
from typing import List, Optional

from scoring_engine.types import Baseline, CompositeScore, MetricKind, ScoreKey, ScoreKind
from .coordinator import UpdateCoordinator
from .freshness import FreshnessReport, freshness_report


logger = logging.getLogger(__name__)


class ScoreQueryService:
    """Consumer-facing queries over the coordinator's collaborators."""

    def __init__(self, coordinator: UpdateCoordinator):
        self._coordinator = coordinator

    async def current_score(self, score_kind: ScoreKind, day_key: Optional[date] = None) -> Optional[CompositeScore]:
        """Cached score for ``day_key`` (default: today)."""
        day_key = day_key or self._today()
        return await self._coordinator.cache.get(ScoreKey(day_key, score_kind))

    async def history(self, score_kind: ScoreKind, range_days: int) -> List[CompositeScore]:
        """Scores from the last ``range_days`` days including today, newest first."""
        if range_days <= 0:
            return []
        today = self._today()
        earliest = today - timedelta(days=range_days - 1)
        recent = await self._coordinator.cache.list_recent(score_kind, offset=0, limit=range_days, until=today)
        return [score for score in recent if score.day_key >= earliest]

    async def freshness_status(self, score_kind: ScoreKind, day_key: Optional[date] = None) -> FreshnessReport:
        day_key = day_key or self._today()
        key = ScoreKey(day_key, score_kind)
        entry = await self._coordinator.cache.get_entry(key)
        return freshness_report(
            entry,
            self._coordinator.state_of(key),
            self._coordinator.clock.now(),
            self._coordinator.tz,
            self._coordinator.config.recently_updated_seconds,
        )

    async def baseline(self, metric_kind: MetricKind, as_of: Optional[date] = None) -> Baseline:
        as_of = as_of or self._today()
        return await self._coordinator.tracker.refresh_baseline(metric_kind, as_of)

    def _today(self) -> date:
        return self._coordinator.clock.today(self._coordinator.tz)


__all__ = ["ScoreQueryService"]
