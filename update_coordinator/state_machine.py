"""
Update Coordinator - Per-Key State Machine.

============================================================
PURPOSE
============================================================
Tracks the recompute lifecycle of one (day_key, score_kind).

STATE MACHINE:

        IDLE ──────────► INVALIDATED
         ▲                  │   ▲
         │                  ▼   │
         └──────────── COMPUTING│
                            │   │
                            ▼   │
                        SUPERSEDED

    IDLE -> INVALIDATED         new input
    INVALIDATED -> COMPUTING    recompute started
    COMPUTING -> IDLE           published
    COMPUTING -> SUPERSEDED     new input while computing
    SUPERSEDED -> INVALIDATED   result discarded

INVARIANTS:
- Every transition passes the guard
- Re-entering the current state is a no-op
- Every accepted invalidation bumps the generation

============================================================
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from core.exceptions import StateTransitionError
from scoring_engine.types import ScoreKey


logger = logging.getLogger(__name__)


# ============================================================
# STATES
# ============================================================

class KeyState(Enum):
    """Recompute state of one score key."""

    IDLE = "IDLE"
    """Last computed value is current."""

    INVALIDATED = "INVALIDATED"
    """New input arrived; recompute scheduled."""

    COMPUTING = "COMPUTING"
    """Recompute in flight."""

    SUPERSEDED = "SUPERSEDED"
    """Further input arrived while computing."""

    def is_pending(self) -> bool:
        """Check if work is outstanding for the key."""
        return self != KeyState.IDLE


VALID_TRANSITIONS: Dict[KeyState, Set[KeyState]] = {
    KeyState.IDLE: {KeyState.INVALIDATED},
    KeyState.INVALIDATED: {KeyState.COMPUTING},
    KeyState.COMPUTING: {KeyState.IDLE, KeyState.SUPERSEDED},
    KeyState.SUPERSEDED: {KeyState.INVALIDATED},
}


# ============================================================
# TRANSITION EVENT
# ============================================================

@dataclass
class StateTransitionEvent:
    """A recorded transition."""

    key: ScoreKey
    from_state: KeyState
    to_state: KeyState
    generation: int

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    reason: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# GUARD
# ============================================================

class TransitionGuard:
    """Validates transitions against VALID_TRANSITIONS."""

    @staticmethod
    def can_transition(from_state: KeyState, to_state: KeyState) -> tuple[bool, str]:
        if from_state == to_state:
            return True, "Same state"
        if to_state in VALID_TRANSITIONS.get(from_state, set()):
            return True, "Valid transition"
        return False, f"Invalid transition: {from_state.value} -> {to_state.value}"


# ============================================================
# KEY STATE MACHINE
# ============================================================

class KeyStateMachine:
    """State, generation and bounded history for one key."""

    HISTORY_LIMIT = 50

    def __init__(self, key: ScoreKey):
        self._key = key
        self._state = KeyState.IDLE
        self._generation = 0
        self._history: Deque[StateTransitionEvent] = deque(maxlen=self.HISTORY_LIMIT)
        self._listeners: List[Callable[[StateTransitionEvent], None]] = []

    @property
    def key(self) -> ScoreKey:
        return self._key

    @property
    def state(self) -> KeyState:
        return self._state

    @property
    def generation(self) -> int:
        """Count of accepted invalidations."""
        return self._generation

    @property
    def history(self) -> List[StateTransitionEvent]:
        return list(self._history)

    def add_listener(self, listener: Callable[[StateTransitionEvent], None]) -> None:
        self._listeners.append(listener)

    def transition_to(
        self,
        target: KeyState,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> StateTransitionEvent:
        """
        Move to ``target``.

        Raises:
            StateTransitionError: If the guard rejects the transition
        """
        allowed, guard_reason = TransitionGuard.can_transition(self._state, target)
        if not allowed:
            raise StateTransitionError(str(self._key), self._state.value, target.value, guard_reason)

        if target == self._state:
            return StateTransitionEvent(
                key=self._key,
                from_state=self._state,
                to_state=target,
                generation=self._generation,
                reason="No change",
            )

        if target in (KeyState.INVALIDATED, KeyState.SUPERSEDED) and self._state != KeyState.SUPERSEDED:
            self._generation += 1

        event = StateTransitionEvent(
            key=self._key,
            from_state=self._state,
            to_state=target,
            generation=self._generation,
            reason=reason,
            details=details or {},
        )
        self._state = target
        self._history.append(event)

        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"State listener error: {e}")

        logger.debug(
            f"{self._key}: {event.from_state.value} -> {event.to_state.value} "
            f"(gen={self._generation}{', ' + reason if reason else ''})"
        )
        return event

    def invalidate(self, reason: str = "") -> bool:
        """
        Record new input for the key.

        Returns:
            True if a new recompute must be scheduled (was IDLE)
        """
        if self._state == KeyState.IDLE:
            self.transition_to(KeyState.INVALIDATED, reason)
            return True
        if self._state == KeyState.COMPUTING:
            self.transition_to(KeyState.SUPERSEDED, reason)
        return False


__all__ = [
    "KeyState",
    "VALID_TRANSITIONS",
    "StateTransitionEvent",
    "TransitionGuard",
    "KeyStateMachine",
]
