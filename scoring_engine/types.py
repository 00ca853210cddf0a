"""
Scoring Engine - Types.

============================================================
PURPOSE
============================================================
Domain types shared by the baseline tracker, scoring engine,
cache store and update coordinator.

- MetricKind / ScoreKind are closed enumerations; scoring
  dispatches on them, never on strings
- Samples, baselines and scores are frozen dataclasses; a
  recompute produces a new value, it never mutates one

============================================================
"""

from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum


# ============================================================
# ENUMERATIONS
# ============================================================

class Aggregation(Enum):
    """How several samples of one metric on one day combine."""

    MEAN = "MEAN"
    """Arithmetic mean of readings."""

    SUM = "SUM"
    """Total of durations (sleep stage segments)."""

    LATEST = "LATEST"
    """Most recent reading wins."""


class ScoreKind(Enum):
    """Composite score profile."""

    RECOVERY = "RECOVERY"
    SLEEP = "SLEEP"


class MetricKind(Enum):
    """
    Biometric metric kind.

    Units:
    - HRV: ms (SDNN)
    - heart rates: beats per minute
    - RESPIRATORY_RATE: breaths per minute
    - OXYGEN_SATURATION: percent
    - sleep stage durations: minutes
    - BEDTIME / WAKE_TIME: minutes after local midnight
    """

    HRV = "HRV"
    RESTING_HEART_RATE = "RESTING_HEART_RATE"
    WALKING_HEART_RATE = "WALKING_HEART_RATE"
    RESPIRATORY_RATE = "RESPIRATORY_RATE"
    OXYGEN_SATURATION = "OXYGEN_SATURATION"
    SLEEPING_HEART_RATE = "SLEEPING_HEART_RATE"
    TIME_ASLEEP = "TIME_ASLEEP"
    TIME_IN_BED = "TIME_IN_BED"
    DEEP_SLEEP = "DEEP_SLEEP"
    REM_SLEEP = "REM_SLEEP"
    BEDTIME = "BEDTIME"
    WAKE_TIME = "WAKE_TIME"

    @property
    def aggregation(self) -> Aggregation:
        if self in _SUM_METRICS:
            return Aggregation.SUM
        if self in _TIME_OF_DAY_METRICS:
            return Aggregation.LATEST
        return Aggregation.MEAN

    def is_time_of_day(self) -> bool:
        """Check if values are clock times (minutes after midnight)."""
        return self in _TIME_OF_DAY_METRICS

    def is_sleep_session(self) -> bool:
        """Check if the metric is stamped at sleep-session end."""
        return self in _SLEEP_SESSION_METRICS

    def score_kinds(self) -> FrozenSet[ScoreKind]:
        """Score profiles that read this metric."""
        if self in _SLEEP_SCORE_METRICS:
            return frozenset({ScoreKind.SLEEP, ScoreKind.RECOVERY})
        return frozenset({ScoreKind.RECOVERY})


_SUM_METRICS = frozenset({
    MetricKind.TIME_ASLEEP,
    MetricKind.TIME_IN_BED,
    MetricKind.DEEP_SLEEP,
    MetricKind.REM_SLEEP,
})

_TIME_OF_DAY_METRICS = frozenset({
    MetricKind.BEDTIME,
    MetricKind.WAKE_TIME,
})

_SLEEP_SCORE_METRICS = _SUM_METRICS | _TIME_OF_DAY_METRICS

_SLEEP_SESSION_METRICS = _SLEEP_SCORE_METRICS | frozenset({
    MetricKind.SLEEPING_HEART_RATE,
})


class BaselineStatus(Enum):
    """Baseline availability."""

    AVAILABLE = "AVAILABLE"
    """Enough samples in the window; aggregate is defined."""

    INSUFFICIENT = "INSUFFICIENT"
    """Window under-covered; aggregate undefined."""


# ============================================================
# SAMPLES AND BASELINES
# ============================================================

@dataclass(frozen=True)
class BiometricSample:
    """A single reading delivered by the health-data provider."""

    metric_kind: MetricKind
    """Metric kind."""

    timestamp: datetime
    """When the reading was taken (tz-aware)."""

    value: float
    """Reading in the metric's unit."""

    @property
    def identity(self) -> Tuple[MetricKind, datetime]:
        """Unique identity; duplicates share it."""
        return (self.metric_kind, self.timestamp)


@dataclass(frozen=True)
class Baseline:
    """Rolling trailing-window reference for one metric."""

    metric_kind: MetricKind
    """Metric kind."""

    as_of: date
    """Day the baseline serves; its own data is excluded."""

    window_days: int
    """Trailing window length."""

    aggregate: Optional[float]
    """Window mean; None when insufficient."""

    sample_count: int
    """Samples found in the window."""

    days_covered: int
    """Distinct days with at least one sample."""

    computed_at: datetime
    """When the baseline was computed."""

    status: BaselineStatus
    """Availability."""

    @property
    def is_available(self) -> bool:
        return self.status == BaselineStatus.AVAILABLE and self.aggregate is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric_kind": self.metric_kind.value,
            "as_of": self.as_of.isoformat(),
            "window_days": self.window_days,
            "aggregate": self.aggregate,
            "sample_count": self.sample_count,
            "days_covered": self.days_covered,
            "computed_at": self.computed_at.isoformat(),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class DailyInputs:
    """
    One day's samples grouped per metric.

    Values are already aggregated per the metric's Aggregation.
    """

    day_key: date
    values: Mapping[MetricKind, float] = field(default_factory=dict)
    sample_counts: Mapping[MetricKind, int] = field(default_factory=dict)

    def get(self, metric: MetricKind) -> Optional[float]:
        return self.values.get(metric)

    @classmethod
    def from_samples(
        cls,
        day_key: date,
        samples_by_metric: Mapping[MetricKind, List[BiometricSample]],
    ) -> "DailyInputs":
        values: Dict[MetricKind, float] = {}
        counts: Dict[MetricKind, int] = {}
        for metric, samples in samples_by_metric.items():
            if not samples:
                continue
            values[metric] = aggregate_day(metric, samples)
            counts[metric] = len(samples)
        return cls(day_key=day_key, values=values, sample_counts=counts)


def aggregate_day(metric: MetricKind, samples: List[BiometricSample]) -> float:
    """Combine one day's samples according to the metric's aggregation."""
    aggregation = metric.aggregation
    if aggregation == Aggregation.SUM:
        return float(sum(s.value for s in samples))
    if aggregation == Aggregation.LATEST:
        return float(max(samples, key=lambda s: s.timestamp).value)
    return float(sum(s.value for s in samples) / len(samples))


# ============================================================
# SCORES
# ============================================================

@dataclass(frozen=True)
class ScoreKey:
    """Cache and coordination key."""

    day_key: date
    score_kind: ScoreKind

    def __str__(self) -> str:
        return f"{self.score_kind.value}:{self.day_key.isoformat()}"


@dataclass(frozen=True)
class ScoreComponent:
    """One weighted component of a composite score."""

    name: str
    """Component name."""

    weight: float
    """Top-level weight (0-1)."""

    normalized_value: float
    """Normalized value, clamped to [0, 100]."""

    complete: bool
    """False when an input was missing or a baseline insufficient."""

    raw_inputs: Mapping[str, Any] = field(default_factory=dict)
    """Inputs used (current values, baselines, ratios)."""

    raw_points: Optional[float] = None
    """Points on the component's own scale, when it has one."""

    max_points: Optional[float] = None
    """Maximum of the component's own scale."""

    degraded_reason: Optional[str] = None
    """Error code explaining an incomplete component."""

    @property
    def contribution(self) -> float:
        return self.weight * self.normalized_value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "weight": self.weight,
            "normalized_value": self.normalized_value,
            "contribution": self.contribution,
            "complete": self.complete,
            "raw_inputs": dict(self.raw_inputs),
            "raw_points": self.raw_points,
            "max_points": self.max_points,
            "degraded_reason": self.degraded_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoreComponent":
        return cls(
            name=data["name"],
            weight=float(data["weight"]),
            normalized_value=float(data["normalized_value"]),
            complete=bool(data["complete"]),
            raw_inputs=dict(data.get("raw_inputs") or {}),
            raw_points=data.get("raw_points"),
            max_points=data.get("max_points"),
            degraded_reason=data.get("degraded_reason"),
        )


@dataclass(frozen=True)
class CompositeScore:
    """Final 0-100 score for one day and profile."""

    score_kind: ScoreKind
    day_key: date
    overall: int
    components: Tuple[ScoreComponent, ...]
    computed_at: datetime
    data_complete: bool

    @property
    def key(self) -> ScoreKey:
        return ScoreKey(self.day_key, self.score_kind)

    def component(self, name: str) -> Optional[ScoreComponent]:
        for item in self.components:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score_kind": self.score_kind.value,
            "day_key": self.day_key.isoformat(),
            "overall": self.overall,
            "components": [c.to_dict() for c in self.components],
            "computed_at": self.computed_at.isoformat(),
            "data_complete": self.data_complete,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CompositeScore":
        return cls(
            score_kind=ScoreKind(data["score_kind"]),
            day_key=date.fromisoformat(data["day_key"]),
            overall=int(data["overall"]),
            components=tuple(ScoreComponent.from_dict(c) for c in data["components"]),
            computed_at=datetime.fromisoformat(data["computed_at"]),
            data_complete=bool(data["data_complete"]),
        )


__all__ = [
    "Aggregation",
    "ScoreKind",
    "MetricKind",
    "BaselineStatus",
    "BiometricSample",
    "Baseline",
    "DailyInputs",
    "aggregate_day",
    "ScoreKey",
    "ScoreComponent",
    "CompositeScore",
]
