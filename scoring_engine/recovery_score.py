"""
Scoring Engine - Recovery Score.

============================================================
PURPOSE
============================================================
Scores next-day readiness from overnight physiology.

COMPONENTS:
- hrv                 50%  growth curve on current / baseline
- resting_heart_rate  25%  growth curve on baseline / current
- sleep_quality       15%  sub-score of the night ending on day_key
- stress              10%  weighted deviation of walking HR,
                           respiratory rate and SpO2 from baseline

SLEEP QUALITY SUB-WEIGHTS:
- efficiency 30%, deep/REM proportion 30%, HR dip 25%,
  bedtime consistency 15%

============================================================
"""

import logging
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple

from core.exceptions import DataError, MissingSample
from .composite_score import (
    compose,
    degraded_component,
    make_component,
    normalize_points,
    require_baseline,
    require_value,
)
from .config import ScoringConfig, SleepThresholds, StressSensitivity
from .growth_curve import (
    clamp,
    growth_curve_score,
    higher_is_better_ratio,
    lower_is_better_ratio,
)
from .sleep_score import (
    CONSISTENCY_MAX_POINTS,
    EFFICIENCY_MAX_POINTS,
    consistency_points,
    consistency_target,
    efficiency_percent,
    efficiency_points,
)
from .types import Baseline, CompositeScore, DailyInputs, MetricKind, ScoreComponent, ScoreKind


logger = logging.getLogger(__name__)


RECOVERY_BASELINE_METRICS = (
    MetricKind.HRV,
    MetricKind.RESTING_HEART_RATE,
    MetricKind.WALKING_HEART_RATE,
    MetricKind.RESPIRATORY_RATE,
    MetricKind.OXYGEN_SATURATION,
    MetricKind.BEDTIME,
)


# ============================================================
# GROWTH-CURVE COMPONENTS
# ============================================================

def _hrv_component(
    inputs: DailyInputs,
    baselines: Mapping[MetricKind, Baseline],
    weight: float,
    config: ScoringConfig,
) -> ScoreComponent:
    try:
        current = require_value(inputs, MetricKind.HRV)
        baseline = require_baseline(baselines, MetricKind.HRV)
    except DataError as e:
        return degraded_component("hrv", weight, e, raw_inputs={"current": inputs.get(MetricKind.HRV)})

    ratio = higher_is_better_ratio(current, baseline)
    return make_component(
        "hrv", weight, growth_curve_score(ratio, config.growth_curve),
        raw_inputs={"current": current, "baseline": baseline, "ratio": ratio},
    )


def _rhr_component(
    inputs: DailyInputs,
    baselines: Mapping[MetricKind, Baseline],
    weight: float,
    config: ScoringConfig,
) -> ScoreComponent:
    try:
        current = require_value(inputs, MetricKind.RESTING_HEART_RATE)
        if current <= 0:
            raise MissingSample(MetricKind.RESTING_HEART_RATE.value, inputs.day_key.isoformat())
        baseline = require_baseline(baselines, MetricKind.RESTING_HEART_RATE)
    except DataError as e:
        return degraded_component(
            "resting_heart_rate", weight, e,
            raw_inputs={"current": inputs.get(MetricKind.RESTING_HEART_RATE)},
        )

    ratio = lower_is_better_ratio(current, baseline)
    return make_component(
        "resting_heart_rate", weight, growth_curve_score(ratio, config.growth_curve),
        raw_inputs={"current": current, "baseline": baseline, "ratio": ratio},
    )


# ============================================================
# SLEEP QUALITY SUB-SCORE
# ============================================================

def range_score(fraction: float, low: float, high: float) -> float:
    """
    Score a proportion against an optimal range.

    100 inside [low, high]; proportional below; tapering to 0
    once the excess over ``high`` equals ``high`` itself.
    """
    if fraction < low:
        return clamp(fraction / low * 100.0)
    if fraction > high:
        return clamp(100.0 * (1.0 - (fraction - high) / high))
    return 100.0


def stage_proportion_score(
    minutes_asleep: float,
    deep_minutes: float,
    rem_minutes: float,
    thresholds: SleepThresholds,
) -> Tuple[float, float, float]:
    """Return (score, deep share, REM share)."""
    deep_share = deep_minutes / minutes_asleep
    rem_share = rem_minutes / minutes_asleep
    deep = range_score(deep_share, thresholds.deep_optimal_low, thresholds.deep_optimal_high)
    rem = range_score(rem_share, thresholds.rem_optimal_low, thresholds.rem_optimal_high)
    return (deep + rem) / 2.0, deep_share, rem_share


def heart_rate_dip_score(sleeping_hr: float, resting_hr: float, thresholds: SleepThresholds) -> Tuple[float, float]:
    """Return (score, dip). dip = 1 - sleeping / resting."""
    dip = 1.0 - sleeping_hr / resting_hr
    return clamp(dip / thresholds.full_heart_rate_dip * 100.0), dip


def _sleep_quality_component(
    inputs: DailyInputs,
    baselines: Mapping[MetricKind, Baseline],
    weight: float,
    config: ScoringConfig,
) -> ScoreComponent:
    thresholds = config.sleep_thresholds
    sub_weights = config.sleep_quality_weights

    def efficiency():
        asleep = require_value(inputs, MetricKind.TIME_ASLEEP)
        in_bed = require_value(inputs, MetricKind.TIME_IN_BED)
        if in_bed <= 0:
            raise MissingSample(MetricKind.TIME_IN_BED.value, inputs.day_key.isoformat())
        percent = efficiency_percent(asleep, in_bed)
        return normalize_points(efficiency_points(percent), EFFICIENCY_MAX_POINTS), {"efficiency_pct": percent}

    def stage_proportion():
        asleep = require_value(inputs, MetricKind.TIME_ASLEEP)
        if asleep <= 0:
            raise MissingSample(MetricKind.TIME_ASLEEP.value, inputs.day_key.isoformat())
        score, deep_share, rem_share = stage_proportion_score(
            asleep,
            require_value(inputs, MetricKind.DEEP_SLEEP),
            require_value(inputs, MetricKind.REM_SLEEP),
            thresholds,
        )
        return score, {"deep_share": deep_share, "rem_share": rem_share}

    def heart_rate_dip():
        sleeping = require_value(inputs, MetricKind.SLEEPING_HEART_RATE)
        resting = require_value(inputs, MetricKind.RESTING_HEART_RATE)
        if resting <= 0:
            raise MissingSample(MetricKind.RESTING_HEART_RATE.value, inputs.day_key.isoformat())
        score, dip = heart_rate_dip_score(sleeping, resting, thresholds)
        return score, {"heart_rate_dip": dip}

    def consistency():
        bedtime = require_value(inputs, MetricKind.BEDTIME)
        target = consistency_target(
            require_baseline(baselines, MetricKind.BEDTIME, allow_zero=True),
            thresholds,
        )
        points = consistency_points(bedtime, target, thresholds)
        return normalize_points(points, CONSISTENCY_MAX_POINTS), {"target_bedtime_minutes": target}

    parts = {
        "efficiency": (sub_weights.efficiency, efficiency),
        "stage_proportion": (sub_weights.stage_proportion, stage_proportion),
        "heart_rate_dip": (sub_weights.heart_rate_dip, heart_rate_dip),
        "consistency": (sub_weights.consistency, consistency),
    }

    total = 0.0
    raw_inputs: Dict[str, object] = {}
    missing: List[str] = []
    for name, (sub_weight, resolve) in parts.items():
        try:
            value, detail = resolve()
        except DataError as e:
            missing.append(e.code)
            raw_inputs[name] = 0.0
            raw_inputs[f"{name}_degraded_reason"] = e.code
            continue
        total += sub_weight * value
        raw_inputs[name] = value
        raw_inputs.update(detail)

    return make_component(
        "sleep_quality", weight, total,
        raw_inputs=raw_inputs,
        complete=not missing,
        degraded_reason=missing[0] if missing else None,
    )


# ============================================================
# PHYSIOLOGICAL STRESS
# ============================================================

def _stress_metrics(sensitivity: StressSensitivity) -> Tuple[Tuple[MetricKind, float], ...]:
    return (
        (MetricKind.WALKING_HEART_RATE, sensitivity.walking_heart_rate),
        (MetricKind.RESPIRATORY_RATE, sensitivity.respiratory_rate),
        (MetricKind.OXYGEN_SATURATION, sensitivity.oxygen_saturation),
    )


def weighted_deviation_pct(current: float, baseline: float, sensitivity: float) -> float:
    return abs(current - baseline) / baseline * 100.0 * sensitivity


def _stress_component(
    inputs: DailyInputs,
    baselines: Mapping[MetricKind, Baseline],
    weight: float,
    config: ScoringConfig,
) -> ScoreComponent:
    deviations: Dict[str, float] = {}
    first_error: Optional[DataError] = None

    for metric, sensitivity in _stress_metrics(config.stress_sensitivity):
        try:
            current = require_value(inputs, metric)
            baseline = require_baseline(baselines, metric)
        except DataError as e:
            first_error = first_error or e
            continue
        deviations[metric.value] = weighted_deviation_pct(current, baseline, sensitivity)

    if not deviations:
        return degraded_component("stress", weight, first_error)

    average = sum(deviations.values()) / len(deviations)
    return make_component(
        "stress", weight, clamp(100.0 - average),
        raw_inputs={"weighted_deviations": deviations, "average_weighted_deviation": average},
        complete=first_error is None,
        degraded_reason=first_error.code if first_error else None,
    )


# ============================================================
# RECOVERY SCORE
# ============================================================

def score_recovery(
    inputs: DailyInputs,
    baselines: Mapping[MetricKind, Baseline],
    computed_at: datetime,
    config: Optional[ScoringConfig] = None,
) -> CompositeScore:
    """
    Compute the Recovery Score for ``inputs.day_key``.

    ``inputs`` carries both the day's physiology and the sleep
    session that ended on that day.
    """
    config = config or ScoringConfig()
    weights = config.recovery_weights

    components = [
        _hrv_component(inputs, baselines, weights.hrv, config),
        _rhr_component(inputs, baselines, weights.resting_heart_rate, config),
        _sleep_quality_component(inputs, baselines, weights.sleep_quality, config),
        _stress_component(inputs, baselines, weights.stress, config),
    ]

    score = compose(ScoreKind.RECOVERY, inputs.day_key, components, computed_at)
    logger.debug(
        f"Recovery score {inputs.day_key}: {score.overall} "
        f"(complete={score.data_complete})"
    )
    return score


__all__ = [
    "RECOVERY_BASELINE_METRICS",
    "range_score",
    "stage_proportion_score",
    "heart_rate_dip_score",
    "weighted_deviation_pct",
    "score_recovery",
]
