"""
Async engine and sessions.

PostgreSQL through asyncpg when deployed, SQLite through aiosqlite in the
test suite. Sessions keep attributes loaded after commit so a handler can
serialize the load it just wrote.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from roadhive.app.core.config import settings

logger = logging.getLogger("roadhive.db")


def _engine_options(database_url: str) -> dict:
    # SQLite pools do not accept sizing arguments
    if database_url.startswith("sqlite"):
        return {"echo": settings.db_echo}
    return {
        "echo": settings.db_echo,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def create_tables() -> None:
    """Create the loads, location history, bids, audit and notification tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")


async def get_db():
    """FastAPI dependency: one session per request, rolled back on a database error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except SQLAlchemyError:
            await session.rollback()
            raise
