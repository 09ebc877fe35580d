import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import Settings, masked_url
from core.database import build_engine, init_models

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def init_database():
    settings = Settings()
    logger.info(f"Connecting to database {masked_url(settings.DATABASE_URL)}...")
    engine = build_engine(settings)

    try:
        logger.info("Creating tables...")
        await init_models(engine)
        logger.info("Tables created successfully.")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_database())
