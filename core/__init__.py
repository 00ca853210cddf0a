"""
Core Module Package.

This package contains the infrastructure every scoring
component depends on.

Components:
- clock: Time abstraction and local day-key arithmetic
- exceptions: Exception hierarchy and error-code registry
"""

from .clock import (
    ClockProtocol,
    SystemClock,
    MockClock,
    resolve_timezone,
    local_day,
)
from .exceptions import (
    ScoringException,
    InvalidConfigError,
    InsufficientBaseline,
    MissingSample,
    DurableWriteFailed,
    ConcurrentRecomputeRace,
    StateTransitionError,
)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "resolve_timezone",
    "local_day",
    "ScoringException",
    "InvalidConfigError",
    "InsufficientBaseline",
    "MissingSample",
    "DurableWriteFailed",
    "ConcurrentRecomputeRace",
    "StateTransitionError",
]
