"""
Scoring Engine - Baseline-Ratio Growth Curve.

Maps a "goodness" ratio (current vs. personal baseline, oriented so
that values above 1 are good) onto a 0-100 score.

    score(anchor_ratio) == anchor_value
    ratio > anchor: anchor + (ceiling - anchor) * (1 - exp(-rate * (ratio - anchor)))
    ratio < anchor: anchor * max(0, 1 - slope * (anchor - ratio))

Both branches are non-decreasing and the result is clamped.
"""

import math
from typing import Optional

from .config import GrowthCurveConfig


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp ``value`` into ``[low, high]``."""
    return max(low, min(high, value))


def growth_curve_score(ratio: float, config: Optional[GrowthCurveConfig] = None) -> float:
    """
    Score a baseline ratio.

    Args:
        ratio: current/baseline (or baseline/current for lower-is-better metrics)
        config: Curve constants

    Returns:
        Score within [config.floor, config.ceiling]
    """
    config = config or GrowthCurveConfig()

    if math.isnan(ratio) or ratio <= 0:
        return config.floor

    anchor = config.anchor_value
    delta = ratio - config.anchor_ratio

    if delta >= 0:
        headroom = config.ceiling - anchor
        score = anchor + headroom * (1.0 - math.exp(-config.upside_rate * delta))
    else:
        score = anchor * max(0.0, 1.0 - config.downside_slope * -delta)

    return clamp(score, config.floor, config.ceiling)


def higher_is_better_ratio(current: float, baseline: float) -> float:
    return current / baseline


def lower_is_better_ratio(current: float, baseline: float) -> float:
    return baseline / current


__all__ = [
    "clamp",
    "growth_curve_score",
    "higher_is_better_ratio",
    "lower_is_better_ratio",
]
