"""Database utility functions: schema bootstrap, health and shutdown."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, AsyncSession

import structlog

from goldwatch.db.session import engine as default_engine, async_session_factory
from goldwatch.models.base import Base

logger = structlog.get_logger(__name__)


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables registered on Base.metadata if they are missing."""
    # Import models so they register with Base.metadata
    from goldwatch.models import price_record  # noqa: F401

    engine = engine or default_engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_tables_verified")


async def check_database_health(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> dict:
    """Check if database is accessible and responsive.

    Returns:
        dict with 'healthy' boolean and optional 'error' message
    """
    session_factory = session_factory or async_session_factory
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
            return {"healthy": True}
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        return {"healthy": False, "error": str(e)}


async def dispose_engine(engine: AsyncEngine | None = None) -> None:
    """Close every pooled connection. Call once at application shutdown."""
    engine = engine or default_engine
    await engine.dispose()
    logger.info("database_engine_disposed")
