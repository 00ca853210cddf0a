"""
Scoring Engine Package.

Pure functions that turn one day's samples plus personal
baselines into 0-100 composite scores.

Modules:
- types: Metric/score enumerations and value types
- config: Weights, growth curve and thresholds
- growth_curve: Baseline-ratio growth curve
- sleep_score: Sleep Score profile
- recovery_score: Recovery Score profile
- composite_score: Component and composite assembly
- engine: ScoreKind dispatcher
- interpretation: Descriptive bands and directives
"""

from .types import (
    Aggregation,
    ScoreKind,
    MetricKind,
    BaselineStatus,
    BiometricSample,
    Baseline,
    DailyInputs,
    ScoreKey,
    ScoreComponent,
    CompositeScore,
)
from .config import (
    GrowthCurveConfig,
    RecoveryWeights,
    SleepQualityWeights,
    SleepWeights,
    StressSensitivity,
    SleepThresholds,
    ScoringConfig,
)
from .growth_curve import growth_curve_score
from .composite_score import compose, round_half_up
from .sleep_score import score_sleep
from .recovery_score import score_recovery
from .engine import ScoringEngine
from .interpretation import ScoreBand, StressBand, directive


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    # Types
    "Aggregation",
    "ScoreKind",
    "MetricKind",
    "BaselineStatus",
    "BiometricSample",
    "Baseline",
    "DailyInputs",
    "ScoreKey",
    "ScoreComponent",
    "CompositeScore",

    # Config
    "GrowthCurveConfig",
    "RecoveryWeights",
    "SleepQualityWeights",
    "SleepWeights",
    "StressSensitivity",
    "SleepThresholds",
    "ScoringConfig",

    # Scoring
    "growth_curve_score",
    "compose",
    "round_half_up",
    "score_sleep",
    "score_recovery",
    "ScoringEngine",

    # Interpretation
    "ScoreBand",
    "StressBand",
    "directive",
]
