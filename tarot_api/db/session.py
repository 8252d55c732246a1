"""
Database Session Management - Async SQLAlchemy engine and session factory.

The Database object is built once from Settings, stored on app.state and
handed to request handlers through FastAPI dependencies.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tarot_api.config import Settings
from tarot_api.db.models import Base


def _engine_options(settings: Settings) -> dict[str, Any]:
    """Pool options appropriate for the configured backend."""
    if settings.is_sqlite:
        # Writers wait on the file lock instead of failing immediately
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_recycle": settings.database_pool_recycle,
    }


class Database:
    """Owns the async engine and session factory for one process."""

    def __init__(self, settings: Settings, engine: AsyncEngine | None = None) -> None:
        self.settings = settings
        self.engine = engine or create_async_engine(
            settings.database_url,
            echo=settings.log_level.upper() == "DEBUG",
            **_engine_options(settings),
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Get an async database session.

        Usage:
            async with database.session() as session:
                await session.execute(...)
                await session.commit()
        """
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    async def create_schema(self) -> None:
        """Create all tables (dev/tests; production uses Alembic)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """Return True when the database answers a trivial query."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        """Close all pooled connections (for graceful shutdown)."""
        await self.engine.dispose()
