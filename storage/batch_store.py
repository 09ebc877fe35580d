"""
Batch Store: persisted batch lifecycle records
"""

from typing import List, Optional, Iterable, Dict, Any
from datetime import datetime, timezone
from sqlalchemy import select, update, delete, func
from models.batch_metadata import BatchMetadata
from models.base import BatchStatus
from storage.base import BaseStore
import logging

logger = logging.getLogger(__name__)


class BatchStore(BaseStore):
    """
    Batch metadata persistence.

    Ensures:
    - batch_id uniqueness; a duplicate create is a no-op, not an error
    - Row count increments are atomic (single UPDATE ... SET n = n + k)
    - Records are never deleted by the lifecycle, only flagged
    """

    table_name = "batch_metadata"

    async def create_if_absent(
        self,
        batch_id: str,
        forecast_time: datetime,
        raw_data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Create a RUNNING batch record unless one already exists.

        Returns:
            True if the record was created, False if batch_id was already known
        """
        now = datetime.now(timezone.utc)
        async with self._session("INSERT", batch_id=batch_id) as session:
            stmt = self._insert(session, BatchMetadata).values(
                batch_id=batch_id,
                forecast_time=forecast_time,
                number_of_rows=0,
                start_ingest_time=now,
                end_ingest_time=None,
                status=BatchStatus.RUNNING,
                is_deleted=False,
                raw_data=raw_data,
                created_at=now,
                updated_at=now
            )
            stmt = stmt.on_conflict_do_nothing(index_elements=["batch_id"]).returning(BatchMetadata.id)
            result = await session.execute(stmt)
            created = result.first() is not None

        return created

    async def get(self, batch_id: str) -> Optional[BatchMetadata]:
        async with self._session("SELECT", batch_id=batch_id) as session:
            result = await session.execute(
                select(BatchMetadata).where(BatchMetadata.batch_id == batch_id)
            )
            return result.scalar_one_or_none()

    async def find_existing_ids(self, batch_ids: Iterable[str]) -> List[str]:
        """Subset of batch_ids that already have a record"""
        batch_ids = list(batch_ids)
        if not batch_ids:
            return []
        async with self._session("SELECT") as session:
            result = await session.execute(
                select(BatchMetadata.batch_id).where(BatchMetadata.batch_id.in_(batch_ids))
            )
            return list(result.scalars().all())

    async def find_by_status(
        self,
        status: BatchStatus,
        limit: Optional[int] = None,
        include_deleted: bool = True
    ) -> List[BatchMetadata]:
        """Batches with the given status, newest forecast first"""
        query = select(BatchMetadata).where(BatchMetadata.status == status)
        if not include_deleted:
            query = query.where(BatchMetadata.is_deleted.is_(False))
        query = query.order_by(BatchMetadata.forecast_time.desc())
        if limit is not None:
            query = query.limit(limit)

        async with self._session("SELECT", status=status.value) as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_not_in(self, batch_ids: Iterable[str]) -> List[BatchMetadata]:
        """Stored batches whose id is absent from batch_ids"""
        batch_ids = list(batch_ids)
        query = select(BatchMetadata)
        if batch_ids:
            query = query.where(BatchMetadata.batch_id.not_in(batch_ids))

        async with self._session("SELECT") as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def increment_rows(self, batch_id: str, count: int) -> bool:
        """Atomically add count to number_of_rows"""
        return await self._update_one(
            batch_id,
            number_of_rows=BatchMetadata.number_of_rows + count
        )

    async def mark_completed(self, batch_id: str) -> bool:
        """Final page processed: RUNNING -> ACTIVE"""
        return await self._update_one(
            batch_id,
            status=BatchStatus.ACTIVE,
            end_ingest_time=datetime.now(timezone.utc)
        )

    async def mark_deleted(self, batch_id: str) -> bool:
        """Rows purged by retention; status is left as-is"""
        return await self._update_one(batch_id, is_deleted=True)

    async def mark_failed(self, batch_id: str) -> bool:
        """Batch vanished upstream: terminal INACTIVE + deleted"""
        return await self._update_one(
            batch_id,
            status=BatchStatus.INACTIVE,
            is_deleted=True,
            end_ingest_time=datetime.now(timezone.utc)
        )

    async def deactivate(self, batch_ids: Iterable[str]) -> int:
        """Bulk status update to INACTIVE; returns the number of records changed"""
        batch_ids = list(batch_ids)
        if not batch_ids:
            return 0
        async with self._session("UPDATE", batch_ids=batch_ids) as session:
            result = await session.execute(
                update(BatchMetadata)
                .where(BatchMetadata.batch_id.in_(batch_ids))
                .values(status=BatchStatus.INACTIVE, updated_at=datetime.now(timezone.utc))
            )
            return result.rowcount

    async def list_all(self) -> List[BatchMetadata]:
        """Every batch record, newest forecast first"""
        async with self._session("SELECT") as session:
            result = await session.execute(
                select(BatchMetadata).order_by(BatchMetadata.forecast_time.desc())
            )
            return list(result.scalars().all())

    async def latest_active_ids(self, limit: int = 3) -> List[str]:
        """Ids of the most recently forecast ACTIVE batches"""
        async with self._session("SELECT") as session:
            result = await session.execute(
                select(BatchMetadata.batch_id)
                .where(BatchMetadata.status == BatchStatus.ACTIVE)
                .order_by(BatchMetadata.forecast_time.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def count_by_status(self) -> Dict[str, int]:
        async with self._session("SELECT") as session:
            result = await session.execute(
                select(BatchMetadata.status, func.count()).group_by(BatchMetadata.status)
            )
            return {status.value: count for status, count in result.all()}

    async def clear(self) -> int:
        async with self._session("DELETE") as session:
            result = await session.execute(delete(BatchMetadata))
            return result.rowcount

    async def _update_one(self, batch_id: str, **values) -> bool:
        values.setdefault("updated_at", datetime.now(timezone.utc))
        async with self._session("UPDATE", batch_id=batch_id) as session:
            result = await session.execute(
                update(BatchMetadata)
                .where(BatchMetadata.batch_id == batch_id)
                .values(**values)
            )
            found = result.rowcount > 0

        if not found:
            logger.warning(f"No batch record to update (batch_id={batch_id}, fields={sorted(values)})")
        return found
