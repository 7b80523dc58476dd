# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Memory database connection management using SQLAlchemy async.

DatabaseManager owns one async engine and its sessionmaker. The API
process holds a single module-level manager; each dramatiq worker thread
gets its own through get_worker_db_manager() because async engines are
bound to the event loop they were created on.

Uses SQLAlchemy 2.0 async API with the asyncpg driver in production and
aiosqlite for tests and single-node setups.

Example:
    from tutormind.infrastructure.database.connection import (
        init_database,
        get_db_manager,
    )

    await init_database(settings)

    async with get_db_manager().get_session() as session:
        result = await session.execute(select(UserFact))
"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tutormind.infrastructure.database.models.base import Base

if TYPE_CHECKING:
    from tutormind.core.config.settings import DatabaseSettings, Settings

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class DatabaseManager:
    """Async engine and session factory for the memory database.

    The engine is created lazily so a manager can be dropped and rebuilt
    on a new event loop.

    Attributes:
        url: Async SQLAlchemy connection URL.
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        echo: bool = False,
    ) -> None:
        """Initialize the database manager.

        Args:
            url: Async SQLAlchemy connection URL.
            pool_size: Connection pool size (ignored for SQLite).
            max_overflow: Pool overflow (ignored for SQLite).
            echo: Whether to log emitted SQL.
        """
        self.url = url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: "DatabaseSettings") -> "DatabaseManager":
        """Build a manager from database settings."""
        return cls(
            url=settings.url,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            echo=settings.echo,
        )

    @property
    def is_sqlite(self) -> bool:
        """Check whether the manager targets SQLite."""
        return self.url.startswith("sqlite")

    def _create_engine(self) -> AsyncEngine:
        if self.is_sqlite:
            kwargs: dict = {"connect_args": {"check_same_thread": False}}
            if self.url.split("://", 1)[-1].strip("/") in ("", ":memory:"):
                # One shared connection keeps an in-memory database alive
                kwargs["poolclass"] = StaticPool
            return create_async_engine(self.url, echo=self._echo, **kwargs)

        return create_async_engine(
            self.url,
            pool_size=self._pool_size,
            max_overflow=self._max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
            echo=self._echo,
        )

    @property
    def engine(self) -> AsyncEngine:
        """Get the async engine, creating it on first use.

        Raises:
            DatabaseError: If engine creation fails.
        """
        if self._engine is None:
            try:
                self._engine = self._create_engine()
            except SQLAlchemyError as e:
                raise DatabaseError("Failed to create database engine", e) from e
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        """Get the sessionmaker, creating it on first use."""
        if self._sessionmaker is None:
            self._sessionmaker = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._sessionmaker

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Get an async session.

        The session is committed on success and rolled back on exception.

        Yields:
            AsyncSession for database operations.

        Raises:
            DatabaseError: If a database operation fails.
        """
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError("Database operation failed", e) from e
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create every memory table that does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Memory tables ensured")

    async def check_connection(self) -> bool:
        """Check if the database is reachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, DatabaseError, OSError) as e:
            logger.warning("Database health check failed: %s", str(e))
            return False

    def forget_engine(self) -> None:
        """Drop cached engine and sessionmaker without disposing them.

        Used when the owning event loop has been replaced.
        """
        self._engine = None
        self._sessionmaker = None

    async def dispose(self) -> None:
        """Dispose of the engine and its pool."""
        if self._engine is not None:
            await self._engine.dispose()
        self.forget_engine()

    def __repr__(self) -> str:
        return f"DatabaseManager(url={self.url.split('@')[-1]!r})"


# Module-level state for the API process
_db_manager: DatabaseManager | None = None


async def init_database(settings: "Settings", create_tables: bool = True) -> DatabaseManager:
    """Initialize the process-wide database manager.

    Args:
        settings: Application settings.
        create_tables: Whether to create missing tables.

    Returns:
        The initialized manager.

    Raises:
        DatabaseError: If initialization fails.
    """
    global _db_manager

    manager = DatabaseManager.from_settings(settings.database)
    if create_tables:
        try:
            await manager.create_all()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to create memory tables", e) from e

    _db_manager = manager
    return manager


async def close_database() -> None:
    """Dispose of the process-wide database manager."""
    global _db_manager

    if _db_manager is not None:
        await _db_manager.dispose()
        _db_manager = None


def get_db_manager() -> DatabaseManager:
    """Get the process-wide database manager.

    Raises:
        DatabaseError: If init_database() has not been called.
    """
    if _db_manager is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _db_manager


# =============================================================================
# Worker support
# =============================================================================

# Each dramatiq worker thread gets its own manager bound to its own loop
_thread_local = threading.local()


def get_worker_db_manager() -> DatabaseManager:
    """Get the DatabaseManager for the current worker thread."""
    manager = getattr(_thread_local, "db_manager", None)

    if manager is None:
        from tutormind.core.config import get_settings

        manager = DatabaseManager.from_settings(get_settings().database)
        _thread_local.db_manager = manager

    return manager


def clear_thread_db_connections() -> None:
    """Drop the current thread's engine so it is rebuilt on the new loop.

    Called by run_async() when it creates a new event loop for a thread.
    """
    manager = getattr(_thread_local, "db_manager", None)
    if manager is not None:
        manager.forget_engine()
