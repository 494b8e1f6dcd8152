"""Async database engine and session management.

The engine and session factory live on a ``Database`` object that is built
once at startup and handed to the FastAPI app (``app.state.database``).
Nothing here holds a module-level connection, so tests can build their own
``Database`` against an in-memory SQLite URL.
"""

import logging

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


class Database:
    """Owns one async engine and its session factory."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.is_sqlite = "sqlite" in database_url

        connect_args = {}
        engine_kwargs = {"echo": echo, "connect_args": connect_args}
        if self.is_sqlite:
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = 30  # Wait up to 30s for write lock
        else:
            engine_kwargs["pool_size"] = 5
            engine_kwargs["max_overflow"] = 10

        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )

    async def init_models(self) -> None:
        """Create all tables (for local dev and tests)."""
        # Register every model with Base.metadata
        import printshop.domain.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        # WAL mode lets readers proceed while a pricing transaction holds the write lock
        if self.is_sqlite and ":memory:" not in self.database_url and not self.database_url.endswith("://"):
            async with self.engine.begin() as conn:
                await conn.execute(text("PRAGMA journal_mode=WAL"))
                await conn.execute(text("PRAGMA busy_timeout=30000"))
            logger.info("SQLite WAL mode enabled for %s", self.database_url)
        else:
            logger.info("Database tables ready")

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db(request: Request):
    """FastAPI dependency: yield an async session from the app's Database."""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
