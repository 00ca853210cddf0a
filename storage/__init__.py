"""
Storage Package.

Durable tier for composite scores.

Modules:
- database: Async engine and session management
- models/: ORM models
- repositories/: Data access layer
"""

from .database import Database, DatabaseConfig, get_database_url
from .repositories import RepositoryException, ScoreRepository


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "Database",
    "DatabaseConfig",
    "get_database_url",
    "RepositoryException",
    "ScoreRepository",
]
