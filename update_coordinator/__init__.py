"""
Update Coordinator Package.

Reactive recompute of composite scores as samples arrive.

Modules:
- state_machine: Per-key recompute state machine
- coordinator: UpdateCoordinator and CoordinatorConfig
- freshness: Freshness status and status messages
- query_service: ScoreQueryService
"""

from .state_machine import (
    KeyState,
    VALID_TRANSITIONS,
    StateTransitionEvent,
    TransitionGuard,
    KeyStateMachine,
)
from .coordinator import CoordinatorConfig, UpdateCoordinator
from .freshness import (
    FreshnessStatus,
    FreshnessReport,
    describe_freshness,
    evaluate_freshness,
)
from .query_service import ScoreQueryService


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    # State machine
    "KeyState",
    "VALID_TRANSITIONS",
    "StateTransitionEvent",
    "TransitionGuard",
    "KeyStateMachine",

    # Coordinator
    "CoordinatorConfig",
    "UpdateCoordinator",

    # Freshness
    "FreshnessStatus",
    "FreshnessReport",
    "describe_freshness",
    "evaluate_freshness",

    # Queries
    "ScoreQueryService",
]
