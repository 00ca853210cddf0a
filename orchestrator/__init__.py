"""
Orchestrator Package - Runtime Wiring.

============================================================
PACKAGE OVERVIEW
============================================================
Assembles the scoring components into a runtime and exposes
the command-line interface.

    +-----------------------------------------------------+
    |                   ScoringRuntime                    |
    |-----------------------------------------------------|
    |  SampleStore      |  provider deliveries            |
    |  BaselineTracker  |  rolling personal baselines     |
    |  ScoringEngine    |  Recovery / Sleep profiles      |
    |  CacheStore       |  memory + durable score tiers   |
    |  UpdateCoordinator|  reactive per-key recompute     |
    +-----------------------------------------------------+

============================================================
QUICK START
============================================================
Command line usage::

    python -m orchestrator.cli replay --samples week.jsonl
    python -m orchestrator.cli show-config

Programmatic usage::

    from orchestrator import EngineConfig, build_runtime

    async with build_runtime(EngineConfig.from_env()) as runtime:
        await runtime.coordinator.on_samples(batch)
        await runtime.coordinator.wait_until_idle()
        score = await runtime.query.current_score(ScoreKind.RECOVERY)

============================================================
"""

from .models import EngineConfig, VALID_LOG_FORMATS, VALID_LOG_LEVELS
from .core import ScoringRuntime, build_runtime, setup_logging


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "EngineConfig",
    "VALID_LOG_FORMATS",
    "VALID_LOG_LEVELS",
    "ScoringRuntime",
    "build_runtime",
    "setup_logging",
]
