"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Declarative base and shared mixins for the score tables.

- Base: declarative base, timezone-aware datetimes
- TimestampMixin: created_at / updated_at columns

============================================================
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for every persisted model."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    Row bookkeeping columns.

    updated_at moves on every upsert so the durable tier can
    tell when a day was last recomputed.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Row creation timestamp",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last write timestamp",
    )
