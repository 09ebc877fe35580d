"""
Scheduler for periodic ingestion cycles.

Uses APScheduler's AsyncIOScheduler: one cycle right at start, then one
every interval. Cycles never overlap, and shutdown drains the in-flight
cycle for a bounded grace period.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Set

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ingestion.engine import IngestionEngine

logger = logging.getLogger(__name__)

JOB_ID = "batch_ingestion"


class IngestionScheduler:
    def __init__(
        self,
        engine: IngestionEngine,
        interval_seconds: int = 300,
        grace_seconds: float = 30.0
    ):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.grace_seconds = grace_seconds
        self.scheduler = AsyncIOScheduler()
        self._in_flight: Set[asyncio.Task] = set()
        self._accepting = False

        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED)

    @property
    def running(self) -> bool:
        return self._accepting

    async def run_ingestion_job(self) -> Optional[dict]:
        """Job to run one ingestion cycle"""
        if not self._accepting:
            logger.info("Scheduler: shutting down, skipping ingestion cycle")
            return None

        logger.info("Scheduler: Starting ingestion cycle")

        # The executor cancels job futures on shutdown; the cycle itself
        # runs in its own task so shutdown can drain it
        cycle = asyncio.ensure_future(self.engine.run_cycle())
        self._in_flight.add(cycle)
        cycle.add_done_callback(self._in_flight.discard)

        try:
            return await asyncio.shield(cycle)
        except Exception as e:
            logger.exception(f"Scheduler: ingestion cycle failed - {e}")
            return None

    def start(self):
        """Start the scheduler; the first cycle fires immediately"""
        self._accepting = True
        self.scheduler.add_job(
            self.run_ingestion_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Weather batch ingestion",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"Ingestion scheduler started (every {self.interval_seconds}s)")

    async def shutdown(self) -> bool:
        """
        Stop accepting cycles, then wait up to grace_seconds for the
        in-flight cycle.

        Returns:
            True if in-flight work drained within the grace period
        """
        self._accepting = False
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Ingestion scheduler stopped accepting new cycles")

        pending = [task for task in self._in_flight if not task.done()]
        if not pending:
            return True

        logger.info(
            f"Waiting up to {self.grace_seconds}s for {len(pending)} in-flight cycle(s)"
        )
        done, not_done = await asyncio.wait(pending, timeout=self.grace_seconds)
        if not_done:
            logger.warning(
                f"Grace period of {self.grace_seconds}s lapsed with "
                f"{len(not_done)} cycle(s) still running, cancelling"
            )
            for task in not_done:
                task.cancel()
            return False
        return True

    def _on_job_event(self, event: JobExecutionEvent):
        if event.code == EVENT_JOB_ERROR:
            logger.error(f"Job {event.job_id} failed with exception: {event.exception}")
        elif event.code == EVENT_JOB_MISSED:
            logger.warning(f"Job {event.job_id} missed its run time {event.scheduled_run_time}")
        else:
            logger.debug(f"Job {event.job_id} executed at {datetime.now(timezone.utc)}")
