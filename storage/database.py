"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages the async engine and session factory backing the
durable score tier.

- One AsyncEngine per Database instance
- Sessions handed out through an async context manager that
  rolls back on any error
- Schema creation for the score tables

============================================================
CONNECTION
============================================================
- DATABASE_URL environment variable, loaded through dotenv
- Default: local SQLite file through aiosqlite

============================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storage.models.base import Base


logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./scores.db"


def get_database_url() -> str:
    """Database URL from the environment."""
    load_dotenv()
    url = os.getenv("DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {url}")
    return url


@dataclass
class DatabaseConfig:
    """Durable tier connection settings."""

    url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    """Log SQL statements."""

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            url=get_database_url(),
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        )


class Database:
    """
    Async database handle.

    Usage:
        db = Database(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))
        await db.create_tables()
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self._config = config or DatabaseConfig.from_env()
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def url(self) -> str:
        return self._config.url

    def get_engine(self) -> AsyncEngine:
        if self._engine is None:
            logger.info(f"Creating database engine for: {self._config.url.split('@')[-1]}")
            kwargs = {"echo": self._config.echo}
            if ":memory:" in self._config.url:
                # In-memory SQLite lives on a single shared connection.
                kwargs["poolclass"] = StaticPool
            self._engine = create_async_engine(self._config.url, **kwargs)
            self._session_factory = async_sessionmaker(
                self._engine,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Session scope.

        Rolls back and re-raises on any exception. The caller commits.
        """
        self.get_engine()
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error, rolling back: {e}")
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_tables(self) -> None:
        """Create every table registered on the declarative base."""
        # Import registers the score models on Base.metadata.
        from storage.models import scores  # noqa: F401

        engine = self.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def health_check(self) -> bool:
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.debug("Database engine disposed")


__all__ = [
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "DatabaseConfig",
    "Database",
]
