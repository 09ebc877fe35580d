"""
Database engine and session factory construction with SQLAlchemy async
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from core.config import Settings, masked_url
from models.base import Base
import logging

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured store"""
    logger.info(f"Creating database engine for {masked_url(settings.DATABASE_URL)}")
    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        poolclass=NullPool,  # For async, connection pooling handled differently
        future=True
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create the session factory handed to the stores"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create tables and indexes if they do not exist yet"""
    # Import models so they are registered on the metadata
    import models.batch_metadata  # noqa: F401
    import models.weather_data  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
