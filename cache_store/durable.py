"""
Cache Store - Durable Tier.

============================================================
PURPOSE
============================================================
Adapter between the cache store and the score repository.

- DurableTier: abstract interface the cache store writes to
- SqlDurableTier: one session per operation on a Database;
  operations run one at a time (SQLite has a single writer)

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from scoring_engine.types import CompositeScore, ScoreKey, ScoreKind
from storage.database import Database
from storage.repositories.scores import ScoreRepository


logger = logging.getLogger(__name__)


class DurableTier(ABC):
    """Restart-surviving score storage."""

    @abstractmethod
    async def save(self, score: CompositeScore) -> None:
        pass

    @abstractmethod
    async def load(self, key: ScoreKey) -> Optional[CompositeScore]:
        pass

    async def exists(self, key: ScoreKey) -> bool:
        return await self.load(key) is not None

    @abstractmethod
    async def recent(
        self,
        limit: int,
        score_kind: Optional[ScoreKind] = None,
        until: Optional[date] = None,
    ) -> List[CompositeScore]:
        """Newest day first, no day after ``until``."""
        pass

    async def close(self) -> None:
        pass


class SqlDurableTier(DurableTier):
    """Durable tier backed by the composite_scores table."""

    def __init__(self, database: Database):
        self._database = database
        self._lock = asyncio.Lock()

    @property
    def database(self) -> Database:
        return self._database

    async def save(self, score: CompositeScore) -> None:
        async with self._lock, self._database.session() as session:
            await ScoreRepository(session).upsert(score)
            await session.commit()

    async def load(self, key: ScoreKey) -> Optional[CompositeScore]:
        async with self._lock, self._database.session() as session:
            return await ScoreRepository(session).get(key.day_key, key.score_kind)

    async def exists(self, key: ScoreKey) -> bool:
        async with self._lock, self._database.session() as session:
            return await ScoreRepository(session).exists(key.day_key, key.score_kind)

    async def recent(
        self,
        limit: int,
        score_kind: Optional[ScoreKind] = None,
        until: Optional[date] = None,
    ) -> List[CompositeScore]:
        async with self._lock, self._database.session() as session:
            return await ScoreRepository(session).list_recent(limit, score_kind, until)

    async def close(self) -> None:
        async with self._lock:
            await self._database.dispose()


__all__ = ["DurableTier", "SqlDurableTier"]
