"""
Async SQLAlchemy engine and session factory for the credential store.

Usage:
    manager = DatabaseManager()
    manager.init(Config.async_database_url())

    async with manager.session() as db:
        user = (await db.execute(select(User))).scalars().first()
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class DatabaseManager:
    """Manages database connections and sessions."""

    def __init__(self):
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    def init(self, database_url: str, echo: bool = False, pool_size: int = 10) -> None:
        """
        Initialize the database engine and session factory.

        Args:
            database_url: Async SQLAlchemy URL (postgresql+asyncpg or sqlite+aiosqlite)
            echo: Enable SQL query logging
            pool_size: Connection pool size
        """
        if self._engine is not None:
            logger.warning("Database already initialized, skipping re-initialization")
            return

        if database_url.startswith("sqlite"):
            # In-memory SQLite must share one connection across sessions
            self._engine = create_async_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self._engine = create_async_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=pool_size * 2,
                pool_pre_ping=True,  # Verify connections before use
                pool_timeout=10,  # Fail fast when the pool is saturated
                pool_recycle=300,
            )

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database connection initialized (%s)", self._engine.dialect.name)

    @property
    def dialect_name(self) -> str:
        return self._require_engine().dialect.name

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        if self._session_factory is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        async with self._session_factory() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    async def create_all(self) -> None:
        """Create tables directly; development and tests only, production uses Alembic."""
        # Import models so they register on Base.metadata
        import db.models  # noqa: F401

        async with self._require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def check_connection(self) -> bool:
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def close(self) -> None:
        """Close the database engine and dispose of connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine
