"""
Cache Store Package.

Two-tier storage of computed composite scores.

Modules:
- config: RetryConfig, CacheConfig
- lru: In-memory LRU tier
- durable: DurableTier interface and SQL-backed implementation
- store: CacheStore
"""

from .config import CacheConfig, RetryConfig
from .durable import DurableTier, SqlDurableTier
from .lru import LRUTier
from .store import CacheEntry, CacheStats, CacheStore


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "CacheConfig",
    "RetryConfig",
    "DurableTier",
    "SqlDurableTier",
    "LRUTier",
    "CacheEntry",
    "CacheStats",
    "CacheStore",
]
