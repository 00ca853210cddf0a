"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Wires the components into a running scoring runtime.

- Logging setup (json or text on stdout)
- Construction order: sample store -> baseline tracker ->
  scoring engine -> cache store -> update coordinator
- Startup creates the durable tables; shutdown cancels pending
  recomputes, flushes durable writes and disposes the engine

============================================================
ARCHITECTURAL POSITION
============================================================
- No scoring logic lives here
- Every collaborator is passed explicitly; there are no
  module-level singletons

============================================================
"""

import json
import logging
import sys
from typing import Optional

from baseline_tracker.sample_source import InMemorySampleStore, SampleStore
from baseline_tracker.tracker import BaselineTracker
from cache_store.durable import SqlDurableTier
from cache_store.store import CacheStore
from core.clock import ClockProtocol, SystemClock, resolve_timezone
from core.exceptions import ConfigurationError
from scoring_engine.engine import ScoringEngine
from storage.database import Database
from update_coordinator.coordinator import UpdateCoordinator
from update_coordinator.query_service import ScoreQueryService
from .models import EngineConfig


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        The orchestrator logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "correlation_id": correlation_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("orchestrator")


# ============================================================
# RUNTIME
# ============================================================

class ScoringRuntime:
    """
    A fully wired scoring engine.

    Usage:
        runtime = build_runtime(EngineConfig.from_env())
        await runtime.start()
        await runtime.coordinator.on_samples(batch)
        await runtime.coordinator.wait_until_idle()
        await runtime.stop()
    """

    def __init__(
        self,
        config: EngineConfig,
        store: SampleStore,
        tracker: BaselineTracker,
        engine: ScoringEngine,
        cache: CacheStore,
        coordinator: UpdateCoordinator,
        database: Optional[Database] = None,
    ):
        self.config = config
        self.store = store
        self.tracker = tracker
        self.engine = engine
        self.cache = cache
        self.coordinator = coordinator
        self.query = ScoreQueryService(coordinator)
        self.database = database
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        if self.database is not None:
            await self.database.create_tables()
            if not await self.database.health_check():
                raise ConfigurationError(
                    f"Durable tier unreachable at {self.database.url.split('@')[-1]}",
                )
        self._started = True
        logger.info(
            f"Scoring runtime started (tz={self.config.timezone or 'UTC'}, "
            f"durable={'on' if self.database is not None else 'off'})"
        )

    async def stop(self) -> None:
        if not self._started:
            return
        await self.coordinator.shutdown()
        await self.cache.close()
        self._started = False
        logger.info(f"Scoring runtime stopped: {self.cache.stats().to_dict()}")

    async def __aenter__(self) -> "ScoringRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def build_runtime(
    config: EngineConfig,
    clock: Optional[ClockProtocol] = None,
    store: Optional[SampleStore] = None,
) -> ScoringRuntime:
    """
    Construct every component from ``config``.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(
            f"Invalid configuration: {'; '.join(errors)}",
            context={"errors": errors},
        )

    clock = clock or SystemClock()
    tz = resolve_timezone(config.timezone)
    store = store or InMemorySampleStore()

    database = Database(config.database) if config.durable_enabled else None
    durable = SqlDurableTier(database) if database is not None else None

    tracker = BaselineTracker(store, tz, config.baseline, clock)
    engine = ScoringEngine(config.scoring)
    cache = CacheStore(config.cache, durable, clock)
    coordinator = UpdateCoordinator(store, tracker, engine, cache, config.coordinator, clock)

    return ScoringRuntime(config, store, tracker, engine, cache, coordinator, database)


__all__ = [
    "setup_logging",
    "ScoringRuntime",
    "build_runtime",
]
