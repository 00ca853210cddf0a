"""
Storage Models Package.

- base: Declarative base and timestamp mixin
- scores: ScoreRecordModel (composite_scores)
"""

from storage.models.base import Base, TimestampMixin
from storage.models.scores import ScoreRecordModel


__all__ = [
    "Base",
    "TimestampMixin",
    "ScoreRecordModel",
]
