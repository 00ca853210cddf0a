"""
Scoring Engine - Dispatcher.

============================================================
PURPOSE
============================================================
Single entry point that maps a ScoreKind onto its scoring
profile. Pure: no I/O, no clock reads, no shared state.

Same inputs + same baselines + same computed_at always give
an equal CompositeScore.

============================================================
"""

from datetime import datetime
from typing import Mapping, Optional, Tuple

from .config import ScoringConfig
from .recovery_score import RECOVERY_BASELINE_METRICS, score_recovery
from .sleep_score import SLEEP_BASELINE_METRICS, score_sleep
from .types import Baseline, CompositeScore, DailyInputs, MetricKind, ScoreKind


# ============================================================
# SCORING ENGINE
# ============================================================

class ScoringEngine:
    """Computes composite scores for every supported profile."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self._config = config or ScoringConfig()

    @property
    def config(self) -> ScoringConfig:
        return self._config

    @staticmethod
    def required_baselines(score_kind: ScoreKind) -> Tuple[MetricKind, ...]:
        """Baselines a profile reads; each is refreshed once per compute."""
        if score_kind == ScoreKind.RECOVERY:
            return RECOVERY_BASELINE_METRICS
        if score_kind == ScoreKind.SLEEP:
            return SLEEP_BASELINE_METRICS
        raise ValueError(f"Unknown score kind: {score_kind}")

    @staticmethod
    def required_metrics(score_kind: ScoreKind) -> Tuple[MetricKind, ...]:
        """Metrics whose day values a profile reads."""
        return tuple(m for m in MetricKind if score_kind in m.score_kinds())

    def compute(
        self,
        score_kind: ScoreKind,
        inputs: DailyInputs,
        baselines: Mapping[MetricKind, Baseline],
        computed_at: datetime,
    ) -> CompositeScore:
        if score_kind == ScoreKind.RECOVERY:
            return score_recovery(inputs, baselines, computed_at, self._config)
        if score_kind == ScoreKind.SLEEP:
            return score_sleep(inputs, baselines, computed_at, self._config)
        raise ValueError(f"Unknown score kind: {score_kind}")


__all__ = ["ScoringEngine"]
