"""
Async engine construction for the inventory database.

The engine is created and disposed by the application bootstrap and handed to
the inventory retriever; nothing here keeps module-level connection state.
"""

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from config import Settings

logger = structlog.get_logger(__name__)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    engine = create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,
        echo=settings.db_echo,
    )
    logger.info("database_engine_created", pool_size=settings.db_pool_size)
    return engine


async def check_connection(engine: AsyncEngine) -> bool:
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1
    except (SQLAlchemyError, OSError) as e:
        logger.error("database_connection_check_failed", error=str(e))
        return False
