"""
Scoring Engine - Interpretation.

Descriptive labels layered on top of computed scores. Nothing in
this module feeds back into the numeric contract.
"""

from enum import Enum
from typing import Optional

from .types import CompositeScore, ScoreKind


class ScoreBand(Enum):
    """User-facing band of a 0-100 score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @classmethod
    def for_score(cls, score: float) -> "ScoreBand":
        if score >= 85:
            return cls.EXCELLENT
        if score >= 70:
            return cls.GOOD
        if score >= 50:
            return cls.FAIR
        return cls.POOR


class StressBand(Enum):
    """Band of the average weighted baseline deviation (percent)."""

    EXCELLENT = "excellent"
    """0-3 %"""

    GOOD = "good"
    """3-8 %"""

    ELEVATED = "elevated"
    """8-15 %"""

    HIGH = "high"
    """above 15 %"""

    @classmethod
    def for_deviation(cls, deviation_pct: float) -> "StressBand":
        if deviation_pct <= 3:
            return cls.EXCELLENT
        if deviation_pct <= 8:
            return cls.GOOD
        if deviation_pct <= 15:
            return cls.ELEVATED
        return cls.HIGH


SLEEP_DIRECTIVES = {
    ScoreBand.EXCELLENT: "Excellent sleep quality. Your body is well-rested and ready for optimal performance.",
    ScoreBand.GOOD: "Good sleep quality. Maintain your current sleep habits for continued improvement.",
    ScoreBand.FAIR: "Fair sleep quality. Consider improving your sleep routine for better recovery.",
    ScoreBand.POOR: "Poor sleep quality. Focus on sleep hygiene and consider adjusting your schedule.",
}


def _component_value(score: CompositeScore, name: str) -> Optional[float]:
    component = score.component(name)
    if component is None or not component.complete:
        return None
    return component.normalized_value


def recovery_directive(score: CompositeScore) -> str:
    """Training directive for a recovery score, naming the weakest system."""
    overall = score.overall
    if overall >= 85:
        return "Primed for peak performance. Your body is ready for high-intensity training."
    if overall >= 70:
        return "Good recovery state. Moderate to high-intensity training is appropriate."
    if overall >= 55:
        return "Moderate recovery. Consider lighter training or active recovery."

    hrv = _component_value(score, "hrv")
    rhr = _component_value(score, "resting_heart_rate")
    sleep = _component_value(score, "sleep_quality")
    stress = _component_value(score, "stress")

    if hrv is not None and hrv < 60:
        return "Nervous system under strain. Prioritize rest and recovery activities."
    if rhr is not None and rhr < 60:
        return "Elevated cardiovascular load. Focus on active recovery and stress management."
    if sleep is not None and sleep < 50:
        return "Poor sleep quality detected. Prioritize sleep hygiene and recovery."
    if stress is not None and stress < 70:
        return "Stress indicators present. Consider reducing training load."
    return "Recovery needs attention. Focus on rest, nutrition, and stress management."


def recovery_recommendation(overall: int) -> str:
    if overall >= 85:
        return "Fully recovered. A good day for peak efforts."
    if overall >= 65:
        return "Adequately recovered. Train as planned."
    if overall >= 40:
        return "Partially recovered. Keep intensity moderate."
    return "Under-recovered. Favor rest and light movement."


def directive(score: CompositeScore) -> str:
    """Directive text for any score kind."""
    if score.score_kind == ScoreKind.RECOVERY:
        return recovery_directive(score)
    if score.score_kind == ScoreKind.SLEEP:
        return SLEEP_DIRECTIVES[ScoreBand.for_score(score.overall)]
    raise ValueError(f"Unknown score kind: {score.score_kind}")


def stress_band(score: CompositeScore) -> Optional[StressBand]:
    """Stress band of a recovery score, if its stress component had data."""
    component = score.component("stress")
    if component is None:
        return None
    deviation = component.raw_inputs.get("average_weighted_deviation")
    if deviation is None:
        return None
    return StressBand.for_deviation(deviation)


__all__ = [
    "ScoreBand",
    "StressBand",
    "SLEEP_DIRECTIVES",
    "recovery_directive",
    "recovery_recommendation",
    "directive",
    "stress_band",
]
