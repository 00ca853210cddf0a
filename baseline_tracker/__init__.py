"""
Baseline Tracker Package.

Maintains rolling personal baselines and exposes the sample
sources they are computed from.

Modules:
- sample_source: SampleSource / SampleStore interfaces, in-memory store
- tracker: BaselineTracker and BaselineConfig
"""

from .sample_source import (
    SampleSource,
    SampleStore,
    InMemorySampleStore,
    validate_sample,
)
from .tracker import (
    BaselineConfig,
    BaselineTracker,
    circular_mean_minutes,
)


__all__ = [
    "SampleSource",
    "SampleStore",
    "InMemorySampleStore",
    "validate_sample",
    "BaselineConfig",
    "BaselineTracker",
    "circular_mean_minutes",
]
