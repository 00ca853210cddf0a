"""
Repository Layer Package.

Repositories are the only gateway to the durable tier. Sessions
are injected, never created internally, and database errors are
wrapped in RepositoryException.
"""

from storage.repositories.exceptions import RepositoryException
from storage.repositories.scores import ScoreRepository


__all__ = [
    "RepositoryException",
    "ScoreRepository",
]
