# ============================================================================
# File: ingestion/engine.py
# Description: Batch ingestion cycle with per-batch failure isolation
# ============================================================================
"""
Ingestion Engine - discovers upstream batches and ingests them page by page.

Each cycle:
1. List upstream batches (abort the cycle if unreachable)
2. Deactivate stored batches no longer reported upstream
3. Select batches not yet known to the Batch Store
4. Ingest every new batch concurrently; pages within a batch are sequential
5. On a batch's final page: mark it ACTIVE and enforce retention

Writes are idempotent (duplicate batch creation is a no-op, duplicate rows
are skipped and not counted), so the cycle is safe to repeat.
"""

from typing import Dict, Any, List, Iterable
from datetime import datetime
import asyncio
import enum
import logging
import time

from ingestion.client import WeatherApiClient
from models.base import BatchStatus
from schemas.upstream import BatchPage, UpstreamBatch
from storage.batch_store import BatchStore
from storage.point_store import PointStore
from core.exceptions import BatchUnavailableError, DatabaseError, ETLException

logger = logging.getLogger(__name__)


class BatchOutcome(str, enum.Enum):
    """How a single batch pipeline ended"""
    COMPLETED = "completed"
    UNAVAILABLE = "unavailable"
    INCOMPLETE = "incomplete"
    FAILED = "failed"


class IngestionEngine:
    """
    Ingestion orchestrator

    Responsibilities:
    - Discover new batches and skip already-known ones
    - Insert pages incrementally, counting only rows actually written
    - Track batch lifecycle (RUNNING -> ACTIVE -> INACTIVE)
    - Clean up batches that vanish upstream mid-ingest
    - Retire old batches beyond the retention window
    """

    def __init__(
        self,
        client: WeatherApiClient,
        batch_store: BatchStore,
        point_store: PointStore,
        retention: int = 3,
        duplicate_warning_ratio: float = 0.1
    ):
        self.client = client
        self.batch_store = batch_store
        self.point_store = point_store
        self.retention = retention
        self.duplicate_warning_ratio = duplicate_warning_ratio

    async def run_cycle(self) -> Dict[str, Any]:
        """
        Run one full ingestion cycle.

        Never raises for upstream or store faults: a failed cycle is logged
        and reported in the result, and the next scheduled tick retries.

        Returns:
            Dictionary with cycle statistics:
            - status: "success", "partial_success" or "failed"
            - batches_reported: Batches listed upstream
            - batches_new: Batches ingested this cycle
            - batches_deactivated: Stored batches set INACTIVE
            - outcomes: Count of batches per BatchOutcome
            - duration_seconds: Wall time of the cycle
        """
        start_time = time.perf_counter()

        try:
            # --------------------------------------------------
            # PHASE 1: DISCOVERY
            # --------------------------------------------------
            batches = await self.client.list_batches()
            reported_ids = [batch.batch_id for batch in batches]
            logger.info(f"Upstream reports {len(batches)} batches")

            # --------------------------------------------------
            # PHASE 2: DEACTIVATE UNREPORTED BATCHES
            # --------------------------------------------------
            deactivated = await self.deactivate_unreported(reported_ids)

            # --------------------------------------------------
            # PHASE 3: SELECT NEW BATCHES
            # --------------------------------------------------
            known_ids = set(await self.batch_store.find_existing_ids(reported_ids))
            new_batches = self._new_batches(batches, known_ids)
            logger.info(
                f"{len(new_batches)} new batches to process "
                f"({len(known_ids)} already known)"
            )

        except ETLException as e:
            logger.error(
                f"Batch processing cycle aborted: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return self._cycle_result("failed", start_time, error=e.message)

        except Exception as e:
            logger.exception("Unexpected error while preparing batch processing cycle")
            return self._cycle_result("failed", start_time, error=str(e))

        # --------------------------------------------------
        # PHASE 4: INGEST NEW BATCHES CONCURRENTLY
        # --------------------------------------------------
        outcomes = await self.process_all(new_batches)

        counts = {outcome.value: 0 for outcome in BatchOutcome}
        for outcome in outcomes.values():
            counts[outcome.value] += 1

        status = "success" if counts[BatchOutcome.FAILED.value] == 0 else "partial_success"
        result = self._cycle_result(
            status,
            start_time,
            batches_reported=len(batches),
            batches_new=len(new_batches),
            batches_deactivated=deactivated,
            outcomes=counts
        )

        logger.info(
            f"Batch processing cycle completed: {status} - "
            f"Reported: {len(batches)}, New: {len(new_batches)}, "
            f"Deactivated: {deactivated}, Outcomes: {counts}"
        )
        return result

    async def process_all(self, batches: List[UpstreamBatch]) -> Dict[str, BatchOutcome]:
        """
        Ingest batches concurrently; one batch's failure never affects another.
        """
        if not batches:
            return {}

        results = await asyncio.gather(
            *(self.process_batch(batch) for batch in batches),
            return_exceptions=True
        )

        outcomes = {}
        for batch, result in zip(batches, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result

                context = self._error_context(result)
                logger.error(
                    f"Batch processing failed for {batch.batch_id}: {result}",
                    extra={"error_context": context},
                    exc_info=not isinstance(result, ETLException)
                )
                outcomes[batch.batch_id] = BatchOutcome.FAILED
            else:
                outcomes[batch.batch_id] = result
        return outcomes

    async def process_batch(self, batch: UpstreamBatch) -> BatchOutcome:
        """
        Ingest a single batch from page 0 to its final page.

        A 404 at any point cleans up the batch's partial state and ends
        this batch only. Any other error propagates to process_all.
        """
        batch_id = batch.batch_id
        logger.info(
            f"Processing batch {batch_id} "
            f"(forecast_time={batch.forecast_time.isoformat()})"
        )

        try:
            first_page = await self.client.fetch_page(batch_id, 0)
        except BatchUnavailableError:
            logger.warning(f"Batch {batch_id} not found (404) when getting batch data")
            await self.cleanup_failed_batch(batch_id)
            return BatchOutcome.UNAVAILABLE

        created = await self.batch_store.create_if_absent(
            batch_id,
            batch.forecast_time,
            raw_data=first_page.raw_metadata()
        )
        if created:
            logger.info(f"Batch metadata created for {batch_id}")
        else:
            logger.info(f"Batch metadata already exists for {batch_id} (duplicate key)")

        completed = False
        try:
            async for page in self.client.iter_pages(batch_id, first_page=first_page):
                await self.insert_page(batch_id, batch.forecast_time, page)
                if page.metadata.is_last_page:
                    await self.on_last_page(batch_id)
                    completed = True
        except BatchUnavailableError as e:
            logger.warning(
                f"Batch {batch_id} became unavailable (404) during page processing",
                extra={"error_context": e.to_dict()}
            )
            await self.cleanup_failed_batch(batch_id)
            return BatchOutcome.UNAVAILABLE

        if not completed:
            logger.warning(f"Pagination for batch {batch_id} ended without a final page")
            return BatchOutcome.INCOMPLETE

        return BatchOutcome.COMPLETED

    async def insert_page(self, batch_id: str, forecast_time: datetime, page: BatchPage) -> int:
        """
        Insert one page's rows and record the successful insertions.

        Returns:
            Number of rows actually inserted
        """
        try:
            result = await self.point_store.insert_many(batch_id, forecast_time, page.data)
        except DatabaseError as e:
            committed = e.context.get("rows_inserted", 0)
            if committed > 0:
                await self.batch_store.increment_rows(batch_id, committed)
                logger.warning(
                    f"Insert failed part-way for batch {batch_id} page {page.metadata.page}: "
                    f"{committed} rows committed before the failure"
                )
            raise

        if result.inserted > 0:
            await self.batch_store.increment_rows(batch_id, result.inserted)

        if result.attempted and result.skipped_ratio > self.duplicate_warning_ratio:
            logger.warning(
                f"Many duplicates skipped for batch {batch_id} page {page.metadata.page}: "
                f"inserted={result.inserted}, skipped={result.skipped}, total={result.attempted}"
            )

        logger.debug(
            f"Page {page.metadata.page + 1}/{page.metadata.total_pages} of batch {batch_id}: "
            f"{result.inserted} rows inserted"
        )
        return result.inserted

    async def on_last_page(self, batch_id: str):
        """Mark the batch ACTIVE, then enforce the retention window"""
        if await self.batch_store.mark_completed(batch_id):
            logger.info(f"Batch {batch_id} completed and marked ACTIVE")
        else:
            logger.error(f"Failed to update batch {batch_id} on last page")
        await self.enforce_retention()

    async def enforce_retention(self) -> List[str]:
        """
        Keep only the newest ACTIVE batches; purge rows of every older one.

        Only ACTIVE batches are ranked, so a RUNNING batch with a newer
        forecast time does not count towards the window.

        Returns:
            Ids of batches whose rows were purged
        """
        active = await self.batch_store.find_by_status(BatchStatus.ACTIVE)
        stale = [batch.batch_id for batch in active[self.retention:] if not batch.is_deleted]
        if not stale:
            return []

        logger.info(f"Retiring {len(stale)} batches beyond the retention window: {stale}")
        results = await asyncio.gather(
            *(self.purge_batch_rows(batch_id) for batch_id in stale),
            return_exceptions=True
        )

        purged = []
        for batch_id, result in zip(stale, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                context = self._error_context(result)
                logger.error(
                    f"Failed to purge rows of retired batch {batch_id}: {result}",
                    extra={"error_context": context},
                    exc_info=not isinstance(result, ETLException)
                )
            else:
                purged.append(batch_id)
        return purged

    async def purge_batch_rows(self, batch_id: str) -> int:
        """Delete a retired batch's rows and flag its record; the record stays"""
        deleted = await self.point_store.delete_by_batch(batch_id)
        if not await self.batch_store.mark_deleted(batch_id):
            logger.error(f"Failed to update batch metadata for {batch_id}")
            return deleted

        if deleted == 0:
            logger.warning(f"No weather data found to delete for {batch_id} (may have been already deleted)")
        else:
            logger.info(f"Deleted {deleted} weather data rows for batch {batch_id}")
        return deleted

    async def cleanup_failed_batch(self, batch_id: str) -> int:
        """Delete any partial rows and mark the batch INACTIVE + deleted"""
        deleted = await self.point_store.delete_by_batch(batch_id)
        if not await self.batch_store.mark_failed(batch_id):
            logger.warning(f"Batch metadata not found for cleanup of {batch_id}")
            return deleted

        logger.info(f"Cleaned up failed batch {batch_id}: {deleted} rows deleted")
        return deleted

    async def deactivate_unreported(self, reported_ids: Iterable[str]) -> int:
        """Set INACTIVE every stored batch absent from the upstream listing"""
        unreported = await self.batch_store.find_not_in(reported_ids)
        batch_ids = [
            batch.batch_id for batch in unreported
            if batch.status != BatchStatus.INACTIVE
        ]
        if not batch_ids:
            return 0

        count = await self.batch_store.deactivate(batch_ids)
        logger.info(f"Deactivated {count} batches no longer reported upstream: {batch_ids}")
        return count

    @staticmethod
    def _new_batches(batches: List[UpstreamBatch], known_ids: set) -> List[UpstreamBatch]:
        # Upstream may list an id twice; one pipeline per batch_id
        seen = set(known_ids)
        new_batches = []
        for batch in batches:
            if batch.batch_id in seen:
                continue
            seen.add(batch.batch_id)
            new_batches.append(batch)
        return new_batches

    @staticmethod
    def _cycle_result(status: str, start_time: float, **fields) -> Dict[str, Any]:
        result = {
            "status": status,
            "batches_reported": 0,
            "batches_new": 0,
            "batches_deactivated": 0,
            "outcomes": {},
        }
        result.update(fields)
        result["duration_seconds"] = round(time.perf_counter() - start_time, 3)
        return result

    @staticmethod
    def _error_context(error: Exception) -> Dict[str, Any]:
        if isinstance(error, ETLException):
            return error.to_dict()
        return {"error_type": type(error).__name__, "message": str(error)}
