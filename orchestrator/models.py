"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Aggregated runtime configuration.

- EngineConfig: every component config plus runtime settings
- from_env: environment (and .env) driven construction
- for_testing: in-memory database, short delays

============================================================
"""

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from baseline_tracker.tracker import BaselineConfig
from cache_store.config import CacheConfig, RetryConfig
from core.clock import resolve_timezone
from scoring_engine.config import ScoringConfig
from storage.database import DEFAULT_DATABASE_URL, DatabaseConfig
from update_coordinator.coordinator import CoordinatorConfig


VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS = ("json", "text")


# ============================================================
# ENGINE CONFIGURATION
# ============================================================

@dataclass
class EngineConfig:
    """Configuration for the scoring runtime."""

    # Locale
    timezone: Optional[str] = None
    """IANA zone for day keys; None means UTC."""

    # Components
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    baseline: BaselineConfig = field(default_factory=BaselineConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    # Persistence
    durable_enabled: bool = True
    """Write scores to the durable tier."""

    # Logging
    log_level: str = "INFO"
    """Logging level."""

    log_format: str = "json"
    """json or text."""

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        window_days = int(os.getenv("BASELINE_WINDOW_DAYS", "14"))
        min_coverage = os.getenv("BASELINE_MIN_COVERAGE")

        return cls(
            timezone=os.getenv("SCORING_TIMEZONE") or None,
            baseline=BaselineConfig(
                window_days=window_days,
                min_coverage=int(min_coverage) if min_coverage else None,
            ),
            cache=CacheConfig(
                capacity=int(os.getenv("CACHE_CAPACITY", "100")),
                retry=RetryConfig(
                    max_retries=int(os.getenv("DURABLE_MAX_RETRIES", "3")),
                    initial_delay_seconds=float(os.getenv("DURABLE_RETRY_DELAY_SECONDS", "1.0")),
                ),
            ),
            coordinator=CoordinatorConfig(
                recently_updated_seconds=float(os.getenv("RECENTLY_UPDATED_SECONDS", "1800")),
                incomplete_retry_seconds=float(os.getenv("INCOMPLETE_RETRY_SECONDS", "900")),
                max_incomplete_retries=int(os.getenv("MAX_INCOMPLETE_RETRIES", "4")),
            ),
            database=DatabaseConfig(
                url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
                echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
            ),
            durable_enabled=os.getenv("DURABLE_ENABLED", "true").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "json").lower(),
        )

    @classmethod
    def for_testing(cls, timezone: Optional[str] = None) -> "EngineConfig":
        """In-memory SQLite, millisecond retry delays."""
        return cls(
            timezone=timezone,
            cache=CacheConfig(
                retry=RetryConfig(
                    max_retries=2,
                    initial_delay_seconds=0.001,
                    max_delay_seconds=0.01,
                ),
            ),
            coordinator=CoordinatorConfig(incomplete_retry_seconds=0.05, max_incomplete_retries=1),
            database=DatabaseConfig(url="sqlite+aiosqlite:///:memory:"),
            log_level="DEBUG",
            log_format="text",
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []
        errors.extend(self.scoring.validate())
        errors.extend(self.cache.validate())

        if self.timezone:
            try:
                resolve_timezone(self.timezone)
            except (KeyError, ValueError) as e:
                errors.append(f"unknown timezone {self.timezone!r}: {e}")

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}")
        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(VALID_LOG_FORMATS)}")
        if self.durable_enabled and not self.database.url:
            errors.append("database url required when durable tier is enabled")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["baseline"]["window_overrides"] = {
            metric.value: days for metric, days in self.baseline.window_overrides.items()
        }
        return data


__all__ = [
    "VALID_LOG_LEVELS",
    "VALID_LOG_FORMATS",
    "EngineConfig",
]
