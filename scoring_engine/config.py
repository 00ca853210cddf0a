"""
Scoring Engine - Configuration.

============================================================
PURPOSE
============================================================
All tunable constants of the scoring profiles.

CONSTRAINTS:
- Top-level weights of a profile sum to 1.0 (within 1e-6)
- Sub-weights of the sleep-quality sub-score sum to 1.0
- Growth curve: anchor value at ratio 1.0, monotonic,
  clamped to [floor, ceiling]

============================================================
"""

from dataclasses import dataclass, field, fields
from typing import Dict, List

from core.exceptions import InvalidConfigError


WEIGHT_TOLERANCE = 1e-6


def _check_weight_sum(name: str, weights: Dict[str, float]) -> None:
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise InvalidConfigError(name, total, "weights must sum to 1.0")
    for key, value in weights.items():
        if not 0.0 <= value <= 1.0:
            raise InvalidConfigError(f"{name}.{key}", value, "weight must be within [0, 1]")


def _as_weight_dict(instance) -> Dict[str, float]:
    return {f.name: getattr(instance, f.name) for f in fields(instance)}


# ============================================================
# GROWTH CURVE
# ============================================================

@dataclass(frozen=True)
class GrowthCurveConfig:
    """
    Baseline-ratio growth curve.

    Above the anchor the curve approaches the ceiling
    exponentially; below it falls linearly to the floor.
    """

    anchor_ratio: float = 1.0
    """Ratio that maps to anchor_value."""

    anchor_value: float = 75.0
    """Score at a ratio equal to the baseline."""

    upside_rate: float = 5.0
    """Exponential approach rate above the anchor."""

    downside_slope: float = 2.5
    """Fraction of the anchor value lost per unit of ratio below the anchor."""

    floor: float = 0.0
    """Lowest score."""

    ceiling: float = 100.0
    """Highest score."""

    def __post_init__(self) -> None:
        if not self.floor <= self.anchor_value <= self.ceiling:
            raise InvalidConfigError("anchor_value", self.anchor_value, "must lie within [floor, ceiling]")
        if self.upside_rate <= 0:
            raise InvalidConfigError("upside_rate", self.upside_rate, "must be positive")
        if self.downside_slope <= 0:
            raise InvalidConfigError("downside_slope", self.downside_slope, "must be positive")
        if self.anchor_ratio <= 0:
            raise InvalidConfigError("anchor_ratio", self.anchor_ratio, "must be positive")


# ============================================================
# PROFILE WEIGHTS
# ============================================================

@dataclass(frozen=True)
class RecoveryWeights:
    """Top-level recovery score weights."""

    hrv: float = 0.50
    resting_heart_rate: float = 0.25
    sleep_quality: float = 0.15
    stress: float = 0.10

    def __post_init__(self) -> None:
        _check_weight_sum("recovery_weights", self.as_dict())

    def as_dict(self) -> Dict[str, float]:
        return _as_weight_dict(self)


@dataclass(frozen=True)
class SleepQualityWeights:
    """Sub-weights of the recovery profile's sleep-quality component."""

    efficiency: float = 0.30
    stage_proportion: float = 0.30
    heart_rate_dip: float = 0.25
    consistency: float = 0.15

    def __post_init__(self) -> None:
        _check_weight_sum("sleep_quality_weights", self.as_dict())

    def as_dict(self) -> Dict[str, float]:
        return _as_weight_dict(self)


@dataclass(frozen=True)
class SleepWeights:
    """Top-level sleep score weights."""

    duration: float = 0.30
    deep_sleep: float = 0.25
    rem_sleep: float = 0.20
    efficiency: float = 0.15
    consistency: float = 0.10

    def __post_init__(self) -> None:
        _check_weight_sum("sleep_weights", self.as_dict())

    def as_dict(self) -> Dict[str, float]:
        return _as_weight_dict(self)


@dataclass(frozen=True)
class StressSensitivity:
    """Per-metric multipliers applied to baseline deviation percentages."""

    walking_heart_rate: float = 1.2
    respiratory_rate: float = 1.5
    oxygen_saturation: float = 2.0


# ============================================================
# SLEEP THRESHOLDS
# ============================================================

@dataclass(frozen=True)
class SleepThresholds:
    """Physiological ranges used by sleep-quality scoring."""

    deep_optimal_low: float = 0.13
    """Lower bound of healthy deep-sleep share of time asleep."""

    deep_optimal_high: float = 0.23
    """Upper bound of healthy deep-sleep share."""

    rem_optimal_low: float = 0.20
    """Lower bound of healthy REM share."""

    rem_optimal_high: float = 0.25
    """Upper bound of healthy REM share."""

    full_heart_rate_dip: float = 0.10
    """Sleeping HR dip (vs. resting HR) that earns full marks."""

    default_bedtime_minutes: float = 23 * 60 + 45
    """Bedtime target when no usable baseline exists (23:45)."""

    reasonable_bedtime_start: float = 20 * 60
    """Earliest plausible baseline bedtime (20:00)."""

    reasonable_bedtime_end: float = 2 * 60
    """Latest plausible baseline bedtime (02:00, next day)."""

    minutes_per_consistency_point: float = 10.0
    """Lateness that costs one consistency point."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class ScoringConfig:
    """Scoring engine configuration."""

    growth_curve: GrowthCurveConfig = field(default_factory=GrowthCurveConfig)
    recovery_weights: RecoveryWeights = field(default_factory=RecoveryWeights)
    sleep_quality_weights: SleepQualityWeights = field(default_factory=SleepQualityWeights)
    sleep_weights: SleepWeights = field(default_factory=SleepWeights)
    stress_sensitivity: StressSensitivity = field(default_factory=StressSensitivity)
    sleep_thresholds: SleepThresholds = field(default_factory=SleepThresholds)

    def validate(self) -> List[str]:
        """Return human-readable problems; empty when valid."""
        errors = []
        sensitivity = self.stress_sensitivity
        for name in ("walking_heart_rate", "respiratory_rate", "oxygen_saturation"):
            if getattr(sensitivity, name) <= 0:
                errors.append(f"stress sensitivity {name} must be positive")
        thresholds = self.sleep_thresholds
        if thresholds.deep_optimal_low >= thresholds.deep_optimal_high:
            errors.append("deep sleep optimal range is empty")
        if thresholds.rem_optimal_low >= thresholds.rem_optimal_high:
            errors.append("REM optimal range is empty")
        if thresholds.full_heart_rate_dip <= 0:
            errors.append("full_heart_rate_dip must be positive")
        return errors


__all__ = [
    "WEIGHT_TOLERANCE",
    "GrowthCurveConfig",
    "RecoveryWeights",
    "SleepQualityWeights",
    "SleepWeights",
    "StressSensitivity",
    "SleepThresholds",
    "ScoringConfig",
]
