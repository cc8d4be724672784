"""
Database Connection Module
Handles PostgreSQL connection using SQLAlchemy async engine.
"""

import logging
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from restaurant_orders.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,  # Logs all SQL queries in debug mode
    pool_size=5,  # Connection pool size
    max_overflow=10  # Extra connections when pool is full
)

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Hydrated orders stay readable after commit
)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Models must be registered on Base.metadata before create_all
    import restaurant_orders.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


def get_session_factory() -> async_sessionmaker:
    """
    Dependency for code that opens its own sessions outside a request,
    such as commands arriving over a long-lived WebSocket.
    """
    return async_session_maker
