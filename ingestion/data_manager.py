"""
Data manager process: wires the ingestion stack and runs it until a
shutdown signal arrives.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from core.config import Settings, masked_url
from core.database import build_engine, build_session_maker, init_models
from core.logging import setup_logging
from ingestion.client import WeatherApiClient
from ingestion.engine import IngestionEngine
from ingestion.scheduler import IngestionScheduler
from storage.batch_store import BatchStore
from storage.point_store import PointStore

logger = logging.getLogger(__name__)


async def run_data_manager(settings: Settings, stop_event: Optional[asyncio.Event] = None):
    """Run ingestion cycles on a fixed interval until stop_event is set"""
    stop_event = stop_event or asyncio.Event()

    logger.info("Starting data manager main process")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Connecting to database {masked_url(settings.DATABASE_URL)}")

    db_engine = build_engine(settings)
    client = WeatherApiClient.from_settings(settings)
    scheduler = None

    try:
        await init_models(db_engine)
        session_maker = build_session_maker(db_engine)

        engine = IngestionEngine(
            client=client,
            batch_store=BatchStore(session_maker),
            point_store=PointStore(session_maker, chunk_size=settings.INSERT_CHUNK_SIZE),
            retention=settings.RETENTION_ACTIVE_BATCHES,
            duplicate_warning_ratio=settings.DUPLICATE_WARNING_RATIO
        )
        scheduler = IngestionScheduler(
            engine,
            interval_seconds=settings.POLL_INTERVAL_SECONDS,
            grace_seconds=settings.SHUTDOWN_GRACE_SECONDS
        )
        scheduler.start()
        logger.info(
            f"Data manager running, processing batches every "
            f"{settings.POLL_INTERVAL_SECONDS}s"
        )

        await stop_event.wait()
        logger.info("Shutting down gracefully...")

    finally:
        if scheduler is not None:
            await scheduler.shutdown()
        await client.aclose()
        await db_engine.dispose()
        logger.info("Database connections closed")


async def _main_async(settings: Settings):
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_stop(signame: str):
        if not stop_event.is_set():
            logger.info(f"Received {signame}, shutting down gracefully...")
            stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig.name)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(_request_stop, "signal"))

    await run_data_manager(settings, stop_event)


def main():
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)
    try:
        asyncio.run(_main_async(settings))
    except Exception:
        logger.exception("Error in data manager main")
        sys.exit(1)


if __name__ == "__main__":
    main()
