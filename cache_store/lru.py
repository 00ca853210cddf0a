"""
Cache Store - In-Memory LRU Tier.

Bounded mapping ordered by access. get and put both count as
access; the least recently accessed entry is evicted first.

Not coroutine-safe on its own: CacheStore serializes access
with its lock.
"""

import logging
from collections import OrderedDict
from typing import Generic, Hashable, Iterator, List, Optional, Tuple, TypeVar


logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUTier(Generic[K, V]):
    """Capacity-bounded LRU mapping with counters."""

    def __init__(self, capacity: int):
        self._capacity = capacity
        self._entries: "OrderedDict[K, V]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: K) -> bool:
        return key in self._entries

    def get(self, key: K) -> Optional[V]:
        value = self._entries.get(key)
        if value is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def peek(self, key: K) -> Optional[V]:
        """Read without touching access order or counters."""
        return self._entries.get(key)

    def put(self, key: K, value: V) -> Optional[Tuple[K, V]]:
        """
        Insert or replace.

        Returns:
            The evicted (key, value) pair, if any
        """
        self._entries[key] = value
        self._entries.move_to_end(key)
        if len(self._entries) <= self._capacity:
            return None
        evicted = self._entries.popitem(last=False)
        self.evictions += 1
        logger.debug(f"Evicted {evicted[0]} from memory tier")
        return evicted

    def keys(self) -> List[K]:
        """Keys from least to most recently used."""
        return list(self._entries.keys())

    def values(self) -> Iterator[V]:
        return iter(list(self._entries.values()))


__all__ = ["LRUTier"]
