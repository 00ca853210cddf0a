"""
Update Coordinator - Freshness.

============================================================
PURPOSE
============================================================
Derives a key's freshness status from its cache entry and
recompute state, plus the status line shown to users.

PRECEDENCE:
1. Work pending for the key          -> COMPUTING
2. No cached score                   -> WAITING_FOR_DATA
3. Published within the window       -> RECENTLY_UPDATED
4. Complete score                    -> SILENT
5. Incomplete score                  -> WAITING_FOR_DATA

============================================================
"""

from dataclasses import dataclass
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any, Dict, Optional

from cache_store.store import CacheEntry
from .state_machine import KeyState


# ============================================================
# STATUS
# ============================================================

class FreshnessStatus(Enum):
    """Freshness of one score key."""

    RECENTLY_UPDATED = "RECENTLY_UPDATED"
    """Published within the recently-updated window."""

    SILENT = "SILENT"
    """Complete and settled."""

    WAITING_FOR_DATA = "WAITING_FOR_DATA"
    """Missing or incomplete; more samples expected."""

    COMPUTING = "COMPUTING"
    """Invalidated, computing or superseded."""


JUST_UPDATED_SECONDS = 300.0
SYNC_CUTOFF_HOUR = 10


@dataclass(frozen=True)
class FreshnessReport:
    """Status plus presentation message."""

    status: FreshnessStatus
    message: str
    data_complete: bool
    last_published_at: Optional[datetime] = None
    seconds_since_publish: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "data_complete": self.data_complete,
            "last_published_at": self.last_published_at.isoformat() if self.last_published_at else None,
            "seconds_since_publish": self.seconds_since_publish,
        }


# ============================================================
# EVALUATION
# ============================================================

def evaluate_freshness(
    entry: Optional[CacheEntry],
    state: KeyState,
    now: datetime,
    recently_updated_seconds: float,
) -> FreshnessStatus:
    if state.is_pending():
        return FreshnessStatus.COMPUTING
    if entry is None:
        return FreshnessStatus.WAITING_FOR_DATA
    if entry.last_published_at is not None:
        if (now - entry.last_published_at).total_seconds() < recently_updated_seconds:
            return FreshnessStatus.RECENTLY_UPDATED
    if entry.value.data_complete:
        return FreshnessStatus.SILENT
    return FreshnessStatus.WAITING_FOR_DATA


def describe_freshness(
    status: FreshnessStatus,
    entry: Optional[CacheEntry],
    now: datetime,
    tz: tzinfo,
) -> str:
    """User-facing status line."""
    if status == FreshnessStatus.COMPUTING:
        return "Updating with new health data"

    complete = entry is not None and entry.value.data_complete
    if entry is not None and entry.last_published_at is not None:
        if (now - entry.last_published_at).total_seconds() < JUST_UPDATED_SECONDS:
            if complete:
                return "Score updated with complete data"
            return "Score updated, monitoring for more data"

    if complete:
        return "Ready - monitoring for new data"
    if now.astimezone(tz).hour < SYNC_CUTOFF_HOUR:
        return "Waiting for watch sync"
    return "Monitoring for health data updates"


def freshness_report(
    entry: Optional[CacheEntry],
    state: KeyState,
    now: datetime,
    tz: tzinfo,
    recently_updated_seconds: float,
) -> FreshnessReport:
    status = evaluate_freshness(entry, state, now, recently_updated_seconds)
    published = entry.last_published_at if entry is not None else None
    return FreshnessReport(
        status=status,
        message=describe_freshness(status, entry, now, tz),
        data_complete=entry is not None and entry.value.data_complete,
        last_published_at=published,
        seconds_since_publish=(now - published).total_seconds() if published else None,
    )


__all__ = [
    "FreshnessStatus",
    "FreshnessReport",
    "evaluate_freshness",
    "describe_freshness",
    "freshness_report",
]
