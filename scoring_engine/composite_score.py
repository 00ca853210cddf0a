"""
Scoring Engine - Composite Score Assembly.

============================================================
PURPOSE
============================================================
Builds ScoreComponents and folds them into a CompositeScore.

INVARIANTS:
- normalized_value is clamped to [0, 100] at construction
- overall == round_half_up(sum of contributions), in [0, 100]
- component weights of one score sum to 1.0 (within 1e-6)
- data_complete is True iff every component is complete

============================================================
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

from core.exceptions import DataError, InsufficientBaseline, MissingSample
from .config import WEIGHT_TOLERANCE
from .growth_curve import clamp
from .types import (
    Baseline,
    CompositeScore,
    DailyInputs,
    MetricKind,
    ScoreComponent,
    ScoreKind,
)


logger = logging.getLogger(__name__)


# ============================================================
# ROUNDING
# ============================================================

def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negatives."""
    return int(math.floor(value + 0.5))


def normalize_points(points: float, max_points: float) -> float:
    """Convert a point-scale value to the 0-100 scale."""
    if max_points <= 0:
        return 0.0
    return clamp(points / max_points * 100.0)


# ============================================================
# INPUT RESOLUTION
# ============================================================

def require_value(inputs: DailyInputs, metric: MetricKind) -> float:
    """
    Current-day value for ``metric``.

    Raises:
        MissingSample: If the day has no sample for the metric
    """
    value = inputs.get(metric)
    if value is None:
        raise MissingSample(metric.value, inputs.day_key.isoformat())
    return value


def require_baseline(
    baselines: Mapping[MetricKind, Baseline],
    metric: MetricKind,
    allow_zero: bool = False,
) -> float:
    """
    Baseline aggregate for ``metric``.

    A zero aggregate is unusable as a ratio denominator and counts as
    insufficient unless ``allow_zero`` (clock-time metrics, where 0 is
    midnight).

    Raises:
        InsufficientBaseline: If the baseline is absent or under-covered
    """
    baseline = baselines.get(metric)
    if baseline is None:
        raise InsufficientBaseline(metric.value)
    if not baseline.is_available or (baseline.aggregate == 0 and not allow_zero):
        raise InsufficientBaseline(metric.value, baseline.sample_count)
    return baseline.aggregate


# ============================================================
# COMPONENT BUILDERS
# ============================================================

def make_component(
    name: str,
    weight: float,
    normalized_value: float,
    raw_inputs: Optional[Mapping[str, Any]] = None,
    complete: bool = True,
    raw_points: Optional[float] = None,
    max_points: Optional[float] = None,
    degraded_reason: Optional[str] = None,
) -> ScoreComponent:
    """Build a component with its value clamped into [0, 100]."""
    return ScoreComponent(
        name=name,
        weight=weight,
        normalized_value=clamp(float(normalized_value)),
        complete=complete,
        raw_inputs=dict(raw_inputs or {}),
        raw_points=raw_points,
        max_points=max_points,
        degraded_reason=degraded_reason,
    )


def make_point_component(
    name: str,
    weight: float,
    points: float,
    max_points: float,
    raw_inputs: Optional[Mapping[str, Any]] = None,
) -> ScoreComponent:
    """Build a component scored on its own point scale."""
    return make_component(
        name=name,
        weight=weight,
        normalized_value=normalize_points(points, max_points),
        raw_inputs=raw_inputs,
        raw_points=points,
        max_points=max_points,
    )


def degraded_component(
    name: str,
    weight: float,
    error: DataError,
    raw_inputs: Optional[Mapping[str, Any]] = None,
    max_points: Optional[float] = None,
) -> ScoreComponent:
    """A component whose inputs were missing: value 0, incomplete."""
    logger.debug(f"Component {name} degraded: {error.message}")
    return make_component(
        name=name,
        weight=weight,
        normalized_value=0.0,
        raw_inputs=raw_inputs,
        complete=False,
        raw_points=0.0 if max_points is not None else None,
        max_points=max_points,
        degraded_reason=error.code,
    )


# ============================================================
# COMPOSITION
# ============================================================

def compose(
    score_kind: ScoreKind,
    day_key: date,
    components: Sequence[ScoreComponent],
    computed_at: datetime,
) -> CompositeScore:
    """
    Fold components into a CompositeScore.

    Raises:
        ValueError: If the component weights do not sum to 1.0
    """
    total_weight = sum(c.weight for c in components)
    if abs(total_weight - 1.0) > WEIGHT_TOLERANCE:
        raise ValueError(
            f"{score_kind.value} component weights sum to {total_weight}, expected 1.0"
        )

    total = sum(c.contribution for c in components)
    overall = int(clamp(round_half_up(total)))

    return CompositeScore(
        score_kind=score_kind,
        day_key=day_key,
        overall=overall,
        components=tuple(components),
        computed_at=computed_at,
        data_complete=all(c.complete for c in components),
    )


__all__ = [
    "round_half_up",
    "normalize_points",
    "require_value",
    "require_baseline",
    "make_component",
    "make_point_component",
    "degraded_component",
    "compose",
]
