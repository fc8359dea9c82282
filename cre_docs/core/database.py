"""Database engine, session dependency and lifecycle helpers.

Sessions are handed to request handlers through ``get_async_session``;
services build their repositories on that session.
"""

import time
from collections.abc import AsyncGenerator
from typing import Any, Dict, List

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from cre_docs.core.config import settings
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.database_echo,
    pool_pre_ping=True,
    # Disable prepared statement cache for PgBouncer compatibility
    connect_args={"statement_cache_size": 0},
)

async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with async_session_maker() as session:
        yield session


class DatabaseClient:
    """Owns the engine lifecycle and answers health probes."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._connected = False

    async def connect(self) -> bool:
        """Open one connection to prove the database is reachable.

        Raises:
            SQLAlchemyError: If the database cannot be reached
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            self._connected = False
            LOGGER.error("Database connection failed", exc_info=True)
            raise

        self._connected = True
        LOGGER.info("Database connection successful")
        return True

    async def disconnect(self) -> None:
        await self.engine.dispose()
        self._connected = False
        LOGGER.info("Database connection closed")

    async def create_tables(self) -> List[str]:
        """Create missing tables without touching existing ones.

        Returns:
            Names of the tables that did not exist before the call
        """
        # Register models on Base.metadata
        from cre_docs.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
            await conn.run_sync(Base.metadata.create_all)

        created = sorted(set(Base.metadata.tables) - existing)
        LOGGER.info(
            "Database tables created/verified successfully",
            extra={"created_tables": created},
        )
        return created

    async def health_check(self) -> Dict[str, Any]:
        """Round-trip a trivial query and report its latency."""
        started = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                await conn.scalar(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            self._connected = False
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}

        self._connected = True
        return {
            "status": "healthy",
            "connected": True,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    @property
    def is_connected(self) -> bool:
        return self._connected


db_client = DatabaseClient(engine)


async def init_database(create_tables: bool = False) -> None:
    """Connect and optionally create missing tables.

    Args:
        create_tables: Run ``create_all`` after connecting. Production schemas
            are managed with Alembic instead.
    """
    LOGGER.info("Initializing database connection...")
    await db_client.connect()
    if create_tables:
        await db_client.create_tables()
    LOGGER.info("Database initialization completed")


async def close_database() -> None:
    LOGGER.info("Closing database connection...")
    await db_client.disconnect()
