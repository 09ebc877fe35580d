"""
Point Store: forecast observations keyed by batch, location and forecast time
"""

from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Iterable
from datetime import datetime
from sqlalchemy import select, delete, func, and_
from models.weather_data import WeatherData
from schemas.upstream import WeatherPoint
from core.exceptions import DatabaseError
from storage.base import BaseStore
import logging

logger = logging.getLogger(__name__)

# Half-width of the lat/lon box matched around a query coordinate (degrees)
TOLERANCE = 0.01


@dataclass
class InsertResult:
    attempted: int
    inserted: int

    @property
    def skipped(self) -> int:
        return self.attempted - self.inserted

    @property
    def skipped_ratio(self) -> float:
        return self.skipped / self.attempted if self.attempted else 0.0


def tolerance_box(latitude: float, longitude: float, tolerance: float = TOLERANCE) -> Dict[str, float]:
    """Inclusive bounds of the window matched around a coordinate"""
    return {
        "min_lat": latitude - tolerance,
        "max_lat": latitude + tolerance,
        "min_lon": longitude - tolerance,
        "max_lon": longitude + tolerance,
    }


class PointStore(BaseStore):
    """
    Observation persistence with duplicate-tolerant bulk inserts.

    Rows that collide on (latitude, longitude, batch_id) are skipped by
    the database (ON CONFLICT DO NOTHING); only rows actually written are
    counted, so re-sent pages never double-count.
    """

    table_name = "weather_data"

    def __init__(self, session_maker, chunk_size: int = 500):
        super().__init__(session_maker)
        self.chunk_size = chunk_size

    async def insert_many(
        self,
        batch_id: str,
        forecast_time: datetime,
        points: List[WeatherPoint]
    ) -> InsertResult:
        """
        Insert a page of observations for one batch.

        Rows are written in chunks; each chunk is its own statement so a
        failure leaves earlier chunks in place (they are safe to resend).

        Returns:
            InsertResult with the number of rows attempted and actually inserted

        Raises:
            DatabaseError: A chunk failed; context["rows_inserted"] counts the
                rows committed by the chunks before it
        """
        if not points:
            return InsertResult(attempted=0, inserted=0)

        rows = [
            {
                "batch_id": batch_id,
                "forecast_time": forecast_time,
                "latitude": point.latitude,
                "longitude": point.longitude,
                "temperature": point.temperature,
                "humidity": point.humidity,
                "precipitation_rate": point.precipitation_rate,
            }
            for point in points
        ]

        inserted = 0
        try:
            for i in range(0, len(rows), self.chunk_size):
                chunk = rows[i:i + self.chunk_size]
                async with self._session("INSERT", batch_id=batch_id, chunk_start=i) as session:
                    stmt = self._insert(session, WeatherData).values(chunk)
                    stmt = stmt.on_conflict_do_nothing(
                        index_elements=["latitude", "longitude", "batch_id"]
                    ).returning(WeatherData.id)
                    result = await session.execute(stmt)
                    inserted += len(result.all())
        except DatabaseError as e:
            # Earlier chunks are already committed
            e.context["rows_inserted"] = inserted
            raise

        logger.debug(f"Inserted {inserted}/{len(rows)} rows for batch {batch_id}")
        return InsertResult(attempted=len(rows), inserted=inserted)

    async def delete_by_batch(self, batch_id: str) -> int:
        async with self._session("DELETE", batch_id=batch_id) as session:
            result = await session.execute(
                delete(WeatherData).where(WeatherData.batch_id == batch_id)
            )
            return result.rowcount

    async def count_by_batch(self, batch_id: str) -> int:
        async with self._session("SELECT", batch_id=batch_id) as session:
            result = await session.execute(
                select(func.count()).select_from(WeatherData).where(WeatherData.batch_id == batch_id)
            )
            return result.scalar() or 0

    async def find_near(
        self,
        latitude: float,
        longitude: float,
        batch_ids: Iterable[str],
        tolerance: float = TOLERANCE
    ) -> List[WeatherData]:
        """Observations within the tolerance box, restricted to batch_ids"""
        batch_ids = list(batch_ids)
        if not batch_ids:
            return []

        async with self._session("SELECT") as session:
            result = await session.execute(
                select(WeatherData)
                .where(self._window(latitude, longitude, batch_ids, tolerance))
                .order_by(WeatherData.forecast_time.asc(), WeatherData.id.asc())
            )
            return list(result.scalars().all())

    async def summarize(
        self,
        latitude: float,
        longitude: float,
        batch_ids: Iterable[str],
        tolerance: float = TOLERANCE
    ) -> Optional[Dict[str, Any]]:
        """
        Max/min/avg of temperature, precipitation rate and humidity over the
        tolerance box.

        Returns:
            Dict keyed "<max|min|avg>_<measure>", or None when nothing matches
        """
        batch_ids = list(batch_ids)
        if not batch_ids:
            return None

        measures = {
            "temperature": WeatherData.temperature,
            "precipitation_rate": WeatherData.precipitation_rate,
            "humidity": WeatherData.humidity,
        }
        columns = [func.count().label("matched")]
        for name, column in measures.items():
            columns.append(func.max(column).label(f"max_{name}"))
            columns.append(func.min(column).label(f"min_{name}"))
            columns.append(func.avg(column).label(f"avg_{name}"))

        async with self._session("SELECT") as session:
            result = await session.execute(
                select(*columns).where(self._window(latitude, longitude, batch_ids, tolerance))
            )
            row = result.mappings().one()

        if not row["matched"]:
            return None
        return {key: float(value) for key, value in row.items() if key != "matched"}

    async def clear(self) -> int:
        async with self._session("DELETE") as session:
            result = await session.execute(delete(WeatherData))
            return result.rowcount

    @staticmethod
    def _window(latitude: float, longitude: float, batch_ids: List[str], tolerance: float):
        box = tolerance_box(latitude, longitude, tolerance)
        return and_(
            WeatherData.batch_id.in_(batch_ids),
            WeatherData.latitude >= box["min_lat"],
            WeatherData.latitude <= box["max_lat"],
            WeatherData.longitude >= box["min_lon"],
            WeatherData.longitude <= box["max_lon"],
        )
