"""
MATKA - Database
Async database connections, atomic transactions and batch chunking
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Sequence, TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from matka.core.config import settings

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()

T = TypeVar("T")


def chunked(
    items: Sequence[T],
    max_size: int,
    weight: Optional[Callable[[T], int]] = None,
) -> List[List[T]]:
    """
    Split items into consecutive chunks whose total weight stays within max_size.

    Every storage path (settlement, revert, purge) sizes its atomic commits
    with this helper. An item heavier than max_size gets a chunk of its own.

    Args:
        items: Items to split, order is preserved
        max_size: Maximum total weight per chunk
        weight: Weight of one item (default 1)

    Returns:
        List of chunks
    """
    if max_size < 1:
        raise ValueError("max_size must be at least 1")
    weigh = weight or (lambda _item: 1)

    chunks: List[List[T]] = []
    current: List[T] = []
    current_weight = 0
    for item in items:
        w = weigh(item)
        if current and current_weight + w > max_size:
            chunks.append(current)
            current = []
            current_weight = 0
        current.append(item)
        current_weight += w
    if current:
        chunks.append(current)
    return chunks


class DatabaseManager:
    """Async engine, read sessions and atomic transactions"""

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.url = url or settings.get_database_url()
        self.echo = settings.DATABASE_ECHO if echo is None else echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    async def initialize(self) -> None:
        """Initialize database engine and session factory"""
        if self._engine is not None:
            return

        logger.info("Initializing database connection...")

        engine_kwargs: Dict[str, Any] = {"echo": self.echo}
        if not self.is_sqlite:
            engine_kwargs.update(
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=settings.DATABASE_POOL_RECYCLE,
                pool_pre_ping=True,
            )

        self._engine = create_async_engine(self.url, **engine_kwargs)

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )

        logger.info("Database connection initialized successfully")

    async def create_all(self) -> None:
        """Create all tables known to the model metadata"""
        await self.initialize()
        # registers the tables on Base.metadata
        from matka.models import models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured/created")

    async def close(self) -> None:
        """Close database connection pool"""
        if self._engine:
            logger.info("Closing database connection pool...")
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Read session; nothing is committed"""
        if not self._session_factory:
            await self.initialize()

        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Run the enclosed statements as one atomic unit.

        Commits on normal exit; any exception rolls back every statement
        issued through the yielded session and is re-raised.
        """
        if not self._session_factory:
            await self.initialize()

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except Exception as e:
                logger.error(f"Database transaction rolled back: {e}")
                raise


# Global database manager instance
db_manager = DatabaseManager()


def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance."""
    return db_manager


async def init_db(manager: Optional[DatabaseManager] = None) -> DatabaseManager:
    """Initialize database and create tables"""
    manager = manager or db_manager
    await manager.create_all()
    return manager


async def close_db(manager: Optional[DatabaseManager] = None) -> None:
    """Close database connections"""
    await (manager or db_manager).close()
