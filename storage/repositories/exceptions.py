"""
Repository Layer Exceptions.

Repositories catch SQLAlchemy errors and re-raise them as
RepositoryException with the repository and operation attached.
"""

from typing import Optional


class RepositoryException(Exception):
    """Base exception for all repository operations."""

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None,
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(f"[{self.repository_name}] {self.operation}: {self.message}")


__all__ = ["RepositoryException"]
