"""
Baseline Tracker - Sample Sources.

============================================================
RESPONSIBILITY
============================================================
Abstracts where biometric samples come from.

- SampleSource: read side, async window fetch
- SampleStore: adds idempotent ingestion of delivered batches
- InMemorySampleStore: process-local implementation keyed by
  (metric_kind, timestamp)

============================================================
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Tuple

from core.clock import ensure_aware
from core.exceptions import SampleValidationError
from scoring_engine.types import BiometricSample, MetricKind


logger = logging.getLogger(__name__)


# ============================================================
# INTERFACES
# ============================================================

class SampleSource(ABC):
    """Read access to stored samples."""

    @abstractmethod
    async def fetch(
        self,
        metric_kind: MetricKind,
        start: datetime,
        end: datetime,
    ) -> List[BiometricSample]:
        """Samples of ``metric_kind`` with ``start <= timestamp < end``, oldest first."""
        pass


class SampleStore(SampleSource):
    """A sample source that also accepts provider deliveries."""

    @abstractmethod
    async def ingest(self, batch: Iterable[BiometricSample]) -> List[BiometricSample]:
        """
        Store a delivered batch.

        Delivery is at-least-once, so duplicates are expected.

        Returns:
            Only the samples that were not already stored
        """
        pass


# ============================================================
# VALIDATION
# ============================================================

def validate_sample(sample: BiometricSample) -> BiometricSample:
    """
    Normalize and validate a sample.

    Raises:
        SampleValidationError: On non-finite or out-of-domain values
    """
    value = sample.value
    metric = sample.metric_kind

    if value is None or not math.isfinite(value):
        raise SampleValidationError(metric.value, value, "value must be finite")
    if value < 0:
        raise SampleValidationError(metric.value, value, "value must be non-negative")
    if metric.is_time_of_day() and value > 24 * 60:
        raise SampleValidationError(metric.value, value, "clock time exceeds 24h")
    if metric == MetricKind.OXYGEN_SATURATION and value > 100:
        raise SampleValidationError(metric.value, value, "saturation exceeds 100%")

    if sample.timestamp.tzinfo is None:
        return BiometricSample(metric, ensure_aware(sample.timestamp), float(value))
    return sample


# ============================================================
# IN-MEMORY STORE
# ============================================================

class InMemorySampleStore(SampleStore):
    """Dictionary-backed sample store."""

    def __init__(self):
        self._samples: Dict[Tuple[MetricKind, datetime], BiometricSample] = {}
        self._lock = asyncio.Lock()
        self._rejected = 0

    @property
    def size(self) -> int:
        return len(self._samples)

    @property
    def rejected_count(self) -> int:
        return self._rejected

    async def ingest(self, batch: Iterable[BiometricSample]) -> List[BiometricSample]:
        added: List[BiometricSample] = []
        async with self._lock:
            for raw in batch:
                try:
                    sample = validate_sample(raw)
                except SampleValidationError as e:
                    self._rejected += 1
                    logger.warning(f"Rejected sample: {e.message}")
                    continue
                if sample.identity in self._samples:
                    continue
                self._samples[sample.identity] = sample
                added.append(sample)

        if added:
            logger.debug(f"Ingested {len(added)} new sample(s)")
        return added

    async def fetch(
        self,
        metric_kind: MetricKind,
        start: datetime,
        end: datetime,
    ) -> List[BiometricSample]:
        async with self._lock:
            matches = [
                s for (metric, ts), s in self._samples.items()
                if metric == metric_kind and start <= ts < end
            ]
        return sorted(matches, key=lambda s: s.timestamp)


__all__ = [
    "SampleSource",
    "SampleStore",
    "InMemorySampleStore",
    "validate_sample",
]
