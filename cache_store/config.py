"""
Cache Store - Configuration.

============================================================
PURPOSE
============================================================
Memory tier sizing and durable-write retry policy.

CONSTRAINTS:
- Bounded retries, never an infinite loop
- Memory tier bounded, LRU eviction

============================================================
"""

from dataclasses import dataclass, field
from typing import List

from core.exceptions import InvalidConfigError


# ============================================================
# RETRY CONFIGURATION
# ============================================================

@dataclass
class RetryConfig:
    """Retry configuration for durable writes."""

    max_retries: int = 3
    """Retry attempts after the first write."""

    initial_delay_seconds: float = 1.0
    """Delay before the first retry."""

    max_delay_seconds: float = 30.0
    """Upper bound on the delay between retries."""

    backoff_multiplier: float = 2.0
    """Exponential backoff multiplier."""

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def validate(self) -> List[str]:
        errors = []
        if self.max_retries < 0:
            errors.append("retry.max_retries must be >= 0")
        if self.initial_delay_seconds < 0:
            errors.append("retry.initial_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.initial_delay_seconds:
            errors.append("retry.max_delay_seconds must be >= initial_delay_seconds")
        if self.backoff_multiplier < 1.0:
            errors.append("retry.backoff_multiplier must be >= 1.0")
        return errors


# ============================================================
# CACHE CONFIGURATION
# ============================================================

@dataclass
class CacheConfig:
    """Two-tier cache configuration."""

    capacity: int = 100
    """Maximum entries held in memory."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    """Durable write retry policy."""

    default_page_size: int = 30
    """list_recent page size when none is given."""

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise InvalidConfigError("cache.capacity", self.capacity, "must be at least 1")

    def validate(self) -> List[str]:
        errors = self.retry.validate()
        if self.default_page_size < 1:
            errors.append("cache.default_page_size must be >= 1")
        return errors


__all__ = ["RetryConfig", "CacheConfig"]
