"""
Score Repository.

============================================================
PURPOSE
============================================================
Durable read/write access to composite scores.

- upsert: one row per (day_key, score_kind), last write wins
- get: single key lookup
- list_recent: newest days first, optionally one score kind

============================================================
TIMESTAMPS
============================================================
computed_at is normalized to UTC on write. Backends that drop
the offset (SQLite) hand back naive values, which are read as
UTC.

============================================================
"""

import logging
from datetime import date, timezone
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import ensure_aware
from scoring_engine.types import CompositeScore, ScoreComponent, ScoreKind
from storage.models.scores import ScoreRecordModel
from storage.repositories.exceptions import RepositoryException


logger = logging.getLogger(__name__)


class ScoreRepository:
    """
    Repository for composite score persistence.

    The session is injected; the caller owns commit.
    """

    NAME = "ScoreRepository"

    def __init__(self, session: AsyncSession):
        self._session = session

    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------

    async def upsert(self, score: CompositeScore) -> ScoreRecordModel:
        """Insert or overwrite the row for the score's key."""
        try:
            record = await self._get_record(score.day_key, score.score_kind)
            payload = [c.to_dict() for c in score.components]
            computed_at = score.computed_at.astimezone(timezone.utc)

            if record is None:
                record = ScoreRecordModel(
                    day_key=score.day_key,
                    score_kind=score.score_kind.value,
                    overall=score.overall,
                    data_complete=score.data_complete,
                    components=payload,
                    computed_at=computed_at,
                )
                self._session.add(record)
            else:
                record.overall = score.overall
                record.data_complete = score.data_complete
                record.components = payload
                record.computed_at = computed_at

            await self._session.flush()
            logger.debug(f"Upserted score {score.key} overall={score.overall}")
            return record
        except SQLAlchemyError as e:
            raise RepositoryException(str(e), self.NAME, "upsert", {"key": str(score.key)}) from e

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    async def get(self, day_key: date, score_kind: ScoreKind) -> Optional[CompositeScore]:
        try:
            record = await self._get_record(day_key, score_kind)
        except SQLAlchemyError as e:
            raise RepositoryException(
                str(e), self.NAME, "get", {"key": f"{score_kind.value}:{day_key}"}
            ) from e
        return _model_to_score(record) if record is not None else None

    async def exists(self, day_key: date, score_kind: ScoreKind) -> bool:
        stmt = select(ScoreRecordModel.id).where(
            ScoreRecordModel.day_key == day_key,
            ScoreRecordModel.score_kind == score_kind.value,
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(
                str(e), self.NAME, "exists", {"key": f"{score_kind.value}:{day_key}"}
            ) from e
        return result.scalar_one_or_none() is not None

    async def list_recent(
        self,
        limit: int,
        score_kind: Optional[ScoreKind] = None,
        until: Optional[date] = None,
    ) -> List[CompositeScore]:
        """Up to ``limit`` scores dated no later than ``until``, newest day first."""
        stmt = select(ScoreRecordModel)
        if score_kind is not None:
            stmt = stmt.where(ScoreRecordModel.score_kind == score_kind.value)
        if until is not None:
            stmt = stmt.where(ScoreRecordModel.day_key <= until)
        stmt = stmt.order_by(desc(ScoreRecordModel.day_key), ScoreRecordModel.score_kind).limit(limit)

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(str(e), self.NAME, "list_recent") from e
        return [_model_to_score(r) for r in result.scalars().all()]

    async def _get_record(self, day_key: date, score_kind: ScoreKind) -> Optional[ScoreRecordModel]:
        stmt = select(ScoreRecordModel).where(
            ScoreRecordModel.day_key == day_key,
            ScoreRecordModel.score_kind == score_kind.value,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


def _model_to_score(record: ScoreRecordModel) -> CompositeScore:
    return CompositeScore(
        score_kind=ScoreKind(record.score_kind),
        day_key=record.day_key,
        overall=record.overall,
        components=tuple(ScoreComponent.from_dict(c) for c in record.components),
        computed_at=ensure_aware(record.computed_at),
        data_complete=record.data_complete,
    )


__all__ = ["ScoreRepository"]
