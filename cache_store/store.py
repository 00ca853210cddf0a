"""
Cache Store - Two-Tier Score Cache.

============================================================
PURPOSE
============================================================
Keyed storage of computed composite scores.

MEMORY TIER:
- Bounded LRU, authoritative for reads
- Serialized by a single asyncio lock

DURABLE TIER:
- Written in the background after each put
- Exponential backoff between attempts, bounded retries
- A newer put for the same key supersedes an older pending write
- Exhausted retries are logged as DURABLE_WRITE_FAILED; the
  memory value stays authoritative
- Read on memory miss, repopulating memory

============================================================
STALENESS
============================================================
invalidate(key) only marks an entry stale. The value stays
readable until the next put replaces it.

============================================================
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.clock import ClockProtocol, SystemClock
from core.exceptions import DurableWriteFailed
from scoring_engine.types import CompositeScore, ScoreKey, ScoreKind
from storage.repositories.exceptions import RepositoryException
from .config import CacheConfig
from .durable import DurableTier
from .lru import LRUTier


logger = logging.getLogger(__name__)


# Failures the durable tier is expected to surface.
DURABLE_ERRORS = (RepositoryException, SQLAlchemyError, OSError)


# ============================================================
# ENTRY AND STATS
# ============================================================

@dataclass
class CacheEntry:
    """One cached score and its bookkeeping."""

    key: ScoreKey
    value: CompositeScore

    last_computed_at: datetime
    """computed_at of the held value."""

    last_published_at: Optional[datetime] = None
    """When the value was put into the cache."""

    is_stale: bool = False
    """Set by invalidate, cleared by the next put."""


@dataclass
class CacheStats:
    """Diagnostic counters."""

    size: int = 0
    capacity: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    durable_hits: int = 0
    durable_writes: int = 0
    durable_retries: int = 0
    durable_failures: int = 0
    superseded_writes: int = 0
    pending_writes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# CACHE STORE
# ============================================================

class CacheStore:
    """
    Two-tier composite score cache.

    Passed explicitly to its collaborators; there is no global
    instance.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        durable: Optional[DurableTier] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config or CacheConfig()
        self._durable = durable
        self._clock = clock or SystemClock()

        self._memory: LRUTier[ScoreKey, CacheEntry] = LRUTier(self._config.capacity)
        self._lock = asyncio.Lock()

        # Latest value awaiting a durable write, per key.
        self._dirty: Dict[ScoreKey, CompositeScore] = {}
        self._writers: Dict[ScoreKey, asyncio.Task] = {}

        self._durable_hits = 0
        self._durable_writes = 0
        self._durable_retries = 0
        self._durable_failures = 0
        self._superseded_writes = 0
        self._closed = False

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def has_durable_tier(self) -> bool:
        return self._durable is not None

    # --------------------------------------------------------
    # READS
    # --------------------------------------------------------

    async def get(self, key: ScoreKey) -> Optional[CompositeScore]:
        entry = await self.get_entry(key)
        return entry.value if entry is not None else None

    async def get_entry(self, key: ScoreKey) -> Optional[CacheEntry]:
        """Memory first, then the durable tier."""
        async with self._lock:
            entry = self._memory.get(key)
        if entry is not None:
            return entry

        if self._durable is None:
            return None

        try:
            value = await self._durable.load(key)
        except DURABLE_ERRORS as e:
            logger.warning(f"Durable read failed for {key}: {e}")
            return None
        if value is None:
            return None

        async with self._lock:
            # A put may have landed while the durable read was pending.
            current = self._memory.peek(key)
            if current is not None:
                return current
            entry = CacheEntry(key=key, value=value, last_computed_at=value.computed_at)
            self._memory.put(key, entry)
            self._durable_hits += 1

        logger.debug(f"Repopulated {key} from durable tier")
        return entry

    async def contains(self, key: ScoreKey) -> bool:
        """
        Whether either tier holds a score for ``key``.

        Does not repopulate memory or touch the counters. A failed
        durable lookup counts as absent.
        """
        async with self._lock:
            if key in self._memory or key in self._dirty:
                return True
        if self._durable is None:
            return False

        try:
            return await self._durable.exists(key)
        except DURABLE_ERRORS as e:
            logger.warning(f"Durable lookup failed for {key}: {e}")
            return False

    async def is_stale(self, key: ScoreKey) -> bool:
        async with self._lock:
            entry = self._memory.peek(key)
        return entry is not None and entry.is_stale

    async def list_recent(
        self,
        score_kind: Optional[ScoreKind] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        until: Optional[date] = None,
    ) -> List[CompositeScore]:
        """
        Scores ordered newest day first, memory values overriding durable ones.

        ``until`` excludes days after it before paging.
        """
        limit = self._config.default_page_size if limit is None else limit
        if limit <= 0 or offset < 0:
            return []

        merged: Dict[ScoreKey, CompositeScore] = {}
        if self._durable is not None:
            try:
                for score in await self._durable.recent(offset + limit, score_kind, until):
                    merged[score.key] = score
            except DURABLE_ERRORS as e:
                logger.warning(f"Durable history read failed: {e}")

        async with self._lock:
            for entry in self._memory.values():
                if score_kind is not None and entry.key.score_kind != score_kind:
                    continue
                if until is not None and entry.key.day_key > until:
                    continue
                merged[entry.key] = entry.value

        ordered = sorted(
            merged.values(),
            key=lambda s: (s.day_key, s.score_kind.value),
            reverse=True,
        )
        return ordered[offset:offset + limit]

    # --------------------------------------------------------
    # WRITES
    # --------------------------------------------------------

    async def put(self, key: ScoreKey, value: CompositeScore) -> CacheEntry:
        """
        Store a freshly computed score.

        Memory is updated before returning; the durable write runs
        in the background.
        """
        if key != value.key:
            raise ValueError(f"Key {key} does not match score key {value.key}")

        async with self._lock:
            entry = CacheEntry(
                key=key,
                value=value,
                last_computed_at=value.computed_at,
                last_published_at=self._clock.now(),
            )
            self._memory.put(key, entry)

        if self._durable is not None and not self._closed:
            self._schedule_write(key, value)
        return entry

    async def invalidate(self, key: ScoreKey) -> bool:
        """
        Mark an entry stale.

        Returns:
            True if a memory entry was marked
        """
        async with self._lock:
            entry = self._memory.peek(key)
            if entry is None:
                return False
            entry.is_stale = True
        logger.debug(f"Marked {key} stale")
        return True

    # --------------------------------------------------------
    # DURABLE WRITE-BEHIND
    # --------------------------------------------------------

    def _schedule_write(self, key: ScoreKey, value: CompositeScore) -> None:
        if key in self._dirty:
            self._superseded_writes += 1
            logger.debug(f"Pending durable write for {key} superseded")
        self._dirty[key] = value

        writer = self._writers.get(key)
        if writer is None or writer.done():
            self._writers[key] = asyncio.create_task(
                self._write_behind(key), name=f"durable-write:{key}"
            )

    async def _write_behind(self, key: ScoreKey) -> None:
        try:
            while True:
                value = self._dirty.get(key)
                if value is None:
                    return
                await self._write_with_retry(key, value)
                if self._dirty.get(key) is value:
                    del self._dirty[key]
                    return
        finally:
            if self._writers.get(key) is asyncio.current_task():
                del self._writers[key]

    async def _write_with_retry(self, key: ScoreKey, value: CompositeScore) -> bool:
        retry = self._config.retry
        delay = retry.initial_delay_seconds
        last_error: Optional[Exception] = None

        for attempt in range(retry.max_attempts):
            if self._dirty.get(key) is not value:
                # A newer put owns the key now.
                return False
            try:
                await self._durable.save(value)
                self._durable_writes += 1
                return True
            except DURABLE_ERRORS as e:
                last_error = e
                if attempt < retry.max_retries:
                    self._durable_retries += 1
                    logger.warning(
                        f"Durable write for {key} failed "
                        f"(attempt {attempt + 1}/{retry.max_attempts}): {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    delay = min(delay * retry.backoff_multiplier, retry.max_delay_seconds)

        self._durable_failures += 1
        error = DurableWriteFailed(str(key), retry.max_attempts, cause=last_error)
        logger.error(f"{error.code}: {error.message}")
        return False

    async def flush(self) -> None:
        """Wait for every pending durable write."""
        while self._writers:
            await asyncio.gather(*list(self._writers.values()), return_exceptions=True)

    async def close(self) -> None:
        """Flush pending writes and release the durable tier."""
        self._closed = True
        await self.flush()
        if self._durable is not None:
            await self._durable.close()
        logger.info("Cache store closed")

    # --------------------------------------------------------
    # DIAGNOSTICS
    # --------------------------------------------------------

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._memory),
            capacity=self._memory.capacity,
            hits=self._memory.hits,
            misses=self._memory.misses,
            evictions=self._memory.evictions,
            durable_hits=self._durable_hits,
            durable_writes=self._durable_writes,
            durable_retries=self._durable_retries,
            durable_failures=self._durable_failures,
            superseded_writes=self._superseded_writes,
            pending_writes=len(self._dirty),
        )


__all__ = [
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "DURABLE_ERRORS",
]
