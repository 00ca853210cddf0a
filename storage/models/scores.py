"""
Score ORM Models.

============================================================
PURPOSE
============================================================
Durable record of the latest composite score per
(day_key, score_kind).

============================================================
DATA LIFECYCLE ROLE
============================================================
- Stage: DERIVED
- Mutability: UPSERT (one row per key, overwritten on recompute)
- Source: Scoring engine via the cache store
- Consumers: Cache store fall-through, history queries

============================================================
"""

from datetime import date, datetime
from typing import Any, Dict, List

from sqlalchemy import Boolean, Date, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, TimestampMixin


class ScoreRecordModel(Base, TimestampMixin):
    """
    One composite score.

    Components are stored as a JSON list of component dicts so
    the breakdown survives restarts without a second table.
    """

    __tablename__ = "composite_scores"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    day_key: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Local calendar day the score describes",
    )

    score_kind: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="RECOVERY or SLEEP",
    )

    overall: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Overall score 0-100",
    )

    data_complete: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="True when every component had its inputs",
    )

    components: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Serialized ScoreComponent list",
    )

    computed_at: Mapped[datetime] = mapped_column(
        nullable=False,
        comment="When the engine produced the score",
    )

    __table_args__ = (
        UniqueConstraint("day_key", "score_kind", name="uq_composite_scores_day_kind"),
        Index("ix_composite_scores_kind_day", "score_kind", "day_key"),
    )

    def __repr__(self) -> str:
        return f"<ScoreRecordModel {self.score_kind}:{self.day_key} overall={self.overall}>"


__all__ = ["ScoreRecordModel"]
