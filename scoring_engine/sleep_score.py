"""
Scoring Engine - Sleep Score.

============================================================
PURPOSE
============================================================
Scores one night of sleep (the night ending on day_key).

COMPONENTS (top-level weight, own point scale):
- duration     30%   0-30 points  minutes asleep
- deep_sleep   25%   0-25 points  minutes of deep sleep
- rem_sleep    20%   0-20 points  minutes of REM sleep
- efficiency   15%   0-15 points  asleep / in bed
- consistency  10%   0-10 points  bedtime vs. baseline bedtime

Every component's points are normalized to 0-100 before the
top-level weights apply; the overall score never mixes the
point scales with the normalized scale.

============================================================
"""

import logging
from datetime import datetime
from typing import Mapping, Optional, Sequence, Tuple

from core.clock import MINUTES_PER_DAY
from core.exceptions import DataError, MissingSample
from .composite_score import (
    compose,
    degraded_component,
    make_point_component,
    require_baseline,
    require_value,
)
from .config import ScoringConfig, SleepThresholds
from .types import Baseline, CompositeScore, DailyInputs, MetricKind, ScoreComponent, ScoreKind


logger = logging.getLogger(__name__)


# ============================================================
# POINT TABLES
# ============================================================

DURATION_MAX_POINTS = 30
DEEP_SLEEP_MAX_POINTS = 25
REM_MAX_POINTS = 20
EFFICIENCY_MAX_POINTS = 15
CONSISTENCY_MAX_POINTS = 10

# (lower-inclusive minutes asleep, points); first match wins.
# More than 480 minutes earns the full 30.
DURATION_TABLE: Tuple[Tuple[float, int], ...] = (
    (470, 29),
    (460, 28),
    (450, 27),
    (440, 26),
    (420, 25),
    (410, 24),
    (400, 22),
    (390, 20),
    (380, 18),
    (370, 16),
    (360, 15),
    (330, 10),
    (300, 5),
)

DEEP_SLEEP_TABLE: Tuple[Tuple[float, int], ...] = (
    (105, 25),
    (90, 22),
    (75, 18),
    (60, 14),
    (45, 8),
)

REM_TABLE: Tuple[Tuple[float, int], ...] = (
    (120, 20),
    (105, 18),
    (90, 16),
    (75, 13),
    (60, 10),
)

# (lower-inclusive efficiency percent, points)
EFFICIENCY_TABLE: Tuple[Tuple[float, int], ...] = (
    (95.0, 15),
    (92.5, 12),
    (90.0, 10),
    (85.0, 5),
)


def _lookup(table: Sequence[Tuple[float, int]], value: float) -> Optional[int]:
    for threshold, points in table:
        if value >= threshold:
            return points
    return None


def duration_points(minutes_asleep: float) -> int:
    if minutes_asleep > 480:
        return DURATION_MAX_POINTS
    return _lookup(DURATION_TABLE, minutes_asleep) or 0


def deep_sleep_points(minutes: float) -> int:
    return _lookup(DEEP_SLEEP_TABLE, minutes) or 0


def rem_points(minutes: float) -> int:
    points = _lookup(REM_TABLE, minutes)
    if points is not None:
        return points
    # Under an hour of REM earns proportional partial credit
    return max(0, int(minutes / 60.0 * 5))


def efficiency_percent(minutes_asleep: float, minutes_in_bed: float) -> float:
    if minutes_in_bed <= 0:
        return 0.0
    return min(100.0, minutes_asleep / minutes_in_bed * 100.0)


def efficiency_points(percent: float) -> int:
    return _lookup(EFFICIENCY_TABLE, percent) or 0


# ============================================================
# BEDTIME CONSISTENCY
# ============================================================

def wrapped_minutes_late(bedtime: float, target: float) -> float:
    """
    Signed lateness of ``bedtime`` against ``target`` in minutes.

    Clock times are minutes after midnight; the difference is
    wrapped into [-720, 720) so 00:30 against 23:45 is +45.
    """
    half_day = MINUTES_PER_DAY / 2
    return ((bedtime - target + half_day) % MINUTES_PER_DAY) - half_day


def is_reasonable_bedtime(minutes: float, thresholds: SleepThresholds) -> bool:
    """True when ``minutes`` falls in the evening window (wraps midnight)."""
    start = thresholds.reasonable_bedtime_start
    end = thresholds.reasonable_bedtime_end
    if start <= end:
        return start <= minutes <= end
    return minutes >= start or minutes <= end


def consistency_target(baseline_bedtime: float, thresholds: SleepThresholds) -> float:
    if is_reasonable_bedtime(baseline_bedtime, thresholds):
        return baseline_bedtime
    return thresholds.default_bedtime_minutes


def consistency_points(bedtime: float, target: float, thresholds: SleepThresholds) -> int:
    late = wrapped_minutes_late(bedtime, target)
    if late <= 0:
        return CONSISTENCY_MAX_POINTS
    penalty = late / thresholds.minutes_per_consistency_point
    return int(max(0.0, CONSISTENCY_MAX_POINTS - penalty))


# ============================================================
# COMPONENT SCORERS
# ============================================================

def _duration_component(inputs: DailyInputs, weight: float) -> ScoreComponent:
    try:
        asleep = require_value(inputs, MetricKind.TIME_ASLEEP)
    except DataError as e:
        return degraded_component("duration", weight, e, max_points=DURATION_MAX_POINTS)
    return make_point_component(
        "duration", weight, duration_points(asleep), DURATION_MAX_POINTS,
        raw_inputs={"minutes_asleep": asleep},
    )


def _deep_sleep_component(inputs: DailyInputs, weight: float) -> ScoreComponent:
    try:
        deep = require_value(inputs, MetricKind.DEEP_SLEEP)
    except DataError as e:
        return degraded_component("deep_sleep", weight, e, max_points=DEEP_SLEEP_MAX_POINTS)
    return make_point_component(
        "deep_sleep", weight, deep_sleep_points(deep), DEEP_SLEEP_MAX_POINTS,
        raw_inputs={"deep_minutes": deep},
    )


def _rem_component(inputs: DailyInputs, weight: float) -> ScoreComponent:
    try:
        rem = require_value(inputs, MetricKind.REM_SLEEP)
    except DataError as e:
        return degraded_component("rem_sleep", weight, e, max_points=REM_MAX_POINTS)
    return make_point_component(
        "rem_sleep", weight, rem_points(rem), REM_MAX_POINTS,
        raw_inputs={"rem_minutes": rem},
    )


def _efficiency_component(inputs: DailyInputs, weight: float) -> ScoreComponent:
    try:
        asleep = require_value(inputs, MetricKind.TIME_ASLEEP)
        in_bed = require_value(inputs, MetricKind.TIME_IN_BED)
        if in_bed <= 0:
            raise MissingSample(MetricKind.TIME_IN_BED.value, inputs.day_key.isoformat())
    except DataError as e:
        return degraded_component("efficiency", weight, e, max_points=EFFICIENCY_MAX_POINTS)
    percent = efficiency_percent(asleep, in_bed)
    return make_point_component(
        "efficiency", weight, efficiency_points(percent), EFFICIENCY_MAX_POINTS,
        raw_inputs={"minutes_asleep": asleep, "minutes_in_bed": in_bed, "efficiency_pct": percent},
    )


def _consistency_component(
    inputs: DailyInputs,
    baselines: Mapping[MetricKind, Baseline],
    weight: float,
    thresholds: SleepThresholds,
) -> ScoreComponent:
    try:
        bedtime = require_value(inputs, MetricKind.BEDTIME)
        baseline_bedtime = require_baseline(baselines, MetricKind.BEDTIME, allow_zero=True)
    except DataError as e:
        return degraded_component("consistency", weight, e, max_points=CONSISTENCY_MAX_POINTS)
    target = consistency_target(baseline_bedtime, thresholds)
    return make_point_component(
        "consistency", weight, consistency_points(bedtime, target, thresholds),
        CONSISTENCY_MAX_POINTS,
        raw_inputs={
            "bedtime_minutes": bedtime,
            "baseline_bedtime_minutes": baseline_bedtime,
            "target_minutes": target,
            "minutes_late": max(0.0, wrapped_minutes_late(bedtime, target)),
        },
    )


# ============================================================
# SLEEP SCORE
# ============================================================

SLEEP_BASELINE_METRICS = (MetricKind.BEDTIME,)


def score_sleep(
    inputs: DailyInputs,
    baselines: Mapping[MetricKind, Baseline],
    computed_at: datetime,
    config: Optional[ScoringConfig] = None,
) -> CompositeScore:
    """
    Compute the Sleep Score for ``inputs.day_key``.

    Missing inputs degrade single components; this never raises
    for absent data.
    """
    config = config or ScoringConfig()
    weights = config.sleep_weights

    components = [
        _duration_component(inputs, weights.duration),
        _deep_sleep_component(inputs, weights.deep_sleep),
        _rem_component(inputs, weights.rem_sleep),
        _efficiency_component(inputs, weights.efficiency),
        _consistency_component(inputs, baselines, weights.consistency, config.sleep_thresholds),
    ]

    score = compose(ScoreKind.SLEEP, inputs.day_key, components, computed_at)
    logger.debug(
        f"Sleep score {inputs.day_key}: {score.overall} "
        f"(complete={score.data_complete})"
    )
    return score


__all__ = [
    "DURATION_MAX_POINTS",
    "DEEP_SLEEP_MAX_POINTS",
    "REM_MAX_POINTS",
    "EFFICIENCY_MAX_POINTS",
    "CONSISTENCY_MAX_POINTS",
    "SLEEP_BASELINE_METRICS",
    "duration_points",
    "deep_sleep_points",
    "rem_points",
    "efficiency_percent",
    "efficiency_points",
    "wrapped_minutes_late",
    "is_reasonable_bedtime",
    "consistency_target",
    "consistency_points",
    "score_sleep",
]
