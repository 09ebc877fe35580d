"""
Script to delete every observation and batch record
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import Settings, masked_url
from core.database import build_engine, build_session_maker
from core.logging import setup_logging
from storage.batch_store import BatchStore
from storage.point_store import PointStore

logger = logging.getLogger(__name__)


async def clear_all_tables(settings: Settings):
    """Delete all WeatherData rows, then all BatchMetadata records"""
    engine = build_engine(settings)
    session_maker = build_session_maker(engine)

    try:
        logger.info("Starting database cleanup")

        weather_deleted = await PointStore(session_maker).clear()
        logger.info(f"WeatherData deletion completed: {weather_deleted} rows")

        batches_deleted = await BatchStore(session_maker).clear()
        logger.info(f"BatchMetadata deletion completed: {batches_deleted} records")

        logger.info(
            f"Database cleanup completed successfully "
            f"(weather data: {weather_deleted}, batches: {batches_deleted})"
        )
    finally:
        await engine.dispose()


if __name__ == "__main__":
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info(f"Connecting to database {masked_url(settings.DATABASE_URL)}")
    try:
        asyncio.run(clear_all_tables(settings))
    except Exception as e:
        logger.error(f"Error during database cleanup: {str(e)}")
        sys.exit(1)
