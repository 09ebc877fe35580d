"""
Unit tests for the batch and point stores
"""

import pytest
from datetime import timedelta
from sqlalchemy.exc import OperationalError
from core.exceptions import DatabaseError
from models.base import BatchStatus
from schemas.upstream import WeatherPoint
from storage.point_store import InsertResult, tolerance_box


def to_points(rows):
    return [WeatherPoint.model_validate(row) for row in rows]


class TestBatchStore:
    """Test batch lifecycle persistence"""

    @pytest.mark.asyncio
    async def test_duplicate_create_is_noop(self, batch_store, forecast_time):
        created = await batch_store.create_if_absent("a", forecast_time, raw_data={"page": 0})
        duplicate = await batch_store.create_if_absent("a", forecast_time)

        assert created is True
        assert duplicate is False

        record = await batch_store.get("a")
        assert record.status == BatchStatus.RUNNING
        assert record.number_of_rows == 0
        assert record.is_deleted is False
        assert record.end_ingest_time is None
        assert record.raw_data == {"page": 0}

    @pytest.mark.asyncio
    async def test_increment_rows_accumulates(self, batch_store, forecast_time):
        await batch_store.create_if_absent("a", forecast_time)

        await batch_store.increment_rows("a", 45)
        await batch_store.increment_rows("a", 5)

        record = await batch_store.get("a")
        assert record.number_of_rows == 50

    @pytest.mark.asyncio
    async def test_update_of_unknown_batch_returns_false(self, batch_store):
        assert await batch_store.mark_completed("missing") is False
        assert await batch_store.mark_failed("missing") is False

    @pytest.mark.asyncio
    async def test_lifecycle_transitions(self, batch_store, forecast_time):
        await batch_store.create_if_absent("a", forecast_time)
        await batch_store.create_if_absent("b", forecast_time)

        await batch_store.mark_completed("a")
        await batch_store.mark_failed("b")

        completed = await batch_store.get("a")
        failed = await batch_store.get("b")

        assert completed.status == BatchStatus.ACTIVE
        assert completed.end_ingest_time is not None
        assert completed.is_deleted is False
        assert failed.status == BatchStatus.INACTIVE
        assert failed.is_deleted is True
        assert failed.end_ingest_time is not None

    @pytest.mark.asyncio
    async def test_active_batches_ordered_newest_first(self, batch_store, forecast_time):
        for offset, batch_id in enumerate(["oldest", "middle", "newest", "latest"]):
            await batch_store.create_if_absent(batch_id, forecast_time + timedelta(hours=offset))
            await batch_store.mark_completed(batch_id)
        await batch_store.create_if_absent("running", forecast_time + timedelta(hours=10))

        active = await batch_store.find_by_status(BatchStatus.ACTIVE)
        latest = await batch_store.latest_active_ids(3)

        assert [batch.batch_id for batch in active] == ["latest", "newest", "middle", "oldest"]
        assert latest == ["latest", "newest", "middle"]

    @pytest.mark.asyncio
    async def test_deactivate_and_find_not_in(self, batch_store, forecast_time):
        for batch_id in ("a", "b", "c"):
            await batch_store.create_if_absent(batch_id, forecast_time)

        unreported = await batch_store.find_not_in(["b"])
        changed = await batch_store.deactivate([batch.batch_id for batch in unreported])

        assert sorted(batch.batch_id for batch in unreported) == ["a", "c"]
        assert changed == 2
        assert await batch_store.count_by_status() == {"INACTIVE": 2, "RUNNING": 1}

    @pytest.mark.asyncio
    async def test_find_existing_ids(self, batch_store, forecast_time):
        await batch_store.create_if_absent("a", forecast_time)

        assert await batch_store.find_existing_ids(["a", "b"]) == ["a"]
        assert await batch_store.find_existing_ids([]) == []


class TestPointStore:
    """Test observation persistence"""

    @pytest.mark.asyncio
    async def test_duplicates_are_skipped_and_not_counted(self, point_store, forecast_time, row_factory):
        rows = row_factory(50)
        await point_store.insert_many("a", forecast_time, to_points(rows[:5]))

        # Chunk size 20 spreads the page over three statements
        result = await point_store.insert_many("a", forecast_time, to_points(rows))

        assert result == InsertResult(attempted=50, inserted=45)
        assert result.skipped == 5
        assert result.skipped_ratio == pytest.approx(0.1)
        assert await point_store.count_by_batch("a") == 50

    @pytest.mark.asyncio
    async def test_same_location_in_other_batch_is_not_duplicate(self, point_store, forecast_time, row_factory):
        points = to_points(row_factory(3))

        first = await point_store.insert_many("a", forecast_time, points)
        second = await point_store.insert_many("b", forecast_time, points)

        assert first.inserted == 3
        assert second.inserted == 3

    @pytest.mark.asyncio
    async def test_empty_insert(self, point_store, forecast_time):
        result = await point_store.insert_many("a", forecast_time, [])

        assert result.attempted == 0
        assert result.skipped_ratio == 0.0

    @pytest.mark.asyncio
    async def test_failed_chunk_reports_committed_rows(self, point_store, forecast_time, row_factory, monkeypatch):
        insert = point_store._insert
        calls = []

        def insert_failing_on_second_chunk(session, model):
            calls.append(model)
            if len(calls) == 2:
                raise OperationalError("INSERT INTO weather_data", {}, Exception("disk I/O error"))
            return insert(session, model)

        monkeypatch.setattr(point_store, "_insert", insert_failing_on_second_chunk)

        with pytest.raises(DatabaseError) as exc_info:
            await point_store.insert_many("a", forecast_time, to_points(row_factory(30)))

        # The first chunk of 20 stays committed
        assert exc_info.value.context["rows_inserted"] == 20
        assert await point_store.count_by_batch("a") == 20

    @pytest.mark.asyncio
    async def test_delete_by_batch(self, point_store, forecast_time, row_factory):
        await point_store.insert_many("a", forecast_time, to_points(row_factory(4)))
        await point_store.insert_many("b", forecast_time, to_points(row_factory(2)))

        deleted = await point_store.delete_by_batch("a")

        assert deleted == 4
        assert await point_store.count_by_batch("a") == 0
        assert await point_store.count_by_batch("b") == 2

    @pytest.mark.asyncio
    async def test_find_near_uses_tolerance_box(self, point_store, forecast_time, row_factory):
        rows = [
            dict(row_factory(1)[0], latitude=10.0, longitude=20.0),
            dict(row_factory(1)[0], latitude=10.005, longitude=19.995),
            dict(row_factory(1)[0], latitude=10.02, longitude=20.0),
            dict(row_factory(1)[0], latitude=10.0, longitude=20.03),
        ]
        await point_store.insert_many("a", forecast_time, to_points(rows))
        await point_store.insert_many("other", forecast_time, to_points(rows[:1]))

        points = await point_store.find_near(10.0, 20.0, ["a"])

        assert sorted((point.latitude, point.longitude) for point in points) == [
            (10.0, 20.0),
            (10.005, 19.995),
        ]
        assert await point_store.find_near(10.0, 20.0, []) == []

    @pytest.mark.asyncio
    async def test_summarize(self, point_store, forecast_time):
        points = to_points([
            {"latitude": 10.0, "longitude": 20.0, "temperature": 10.0, "humidity": 50.0, "precipitation_rate": 0.0},
            {"latitude": 10.001, "longitude": 20.0, "temperature": 20.0, "humidity": 70.0, "precipitation_rate": 1.0},
        ])
        await point_store.insert_many("a", forecast_time, points)

        summary = await point_store.summarize(10.0, 20.0, ["a"])

        assert summary["max_temperature"] == 20.0
        assert summary["min_temperature"] == 10.0
        assert summary["avg_temperature"] == pytest.approx(15.0)
        assert summary["avg_humidity"] == pytest.approx(60.0)
        assert summary["max_precipitation_rate"] == 1.0

    @pytest.mark.asyncio
    async def test_summarize_without_match_returns_none(self, point_store):
        assert await point_store.summarize(0.0, 0.0, ["a"]) is None
        assert await point_store.summarize(0.0, 0.0, []) is None

    def test_tolerance_box(self):
        box = tolerance_box(45.0, -73.5)

        assert box["min_lat"] == pytest.approx(44.99)
        assert box["max_lat"] == pytest.approx(45.01)
        assert box["min_lon"] == pytest.approx(-73.51)
        assert box["max_lon"] == pytest.approx(-73.49)


@pytest.mark.asyncio
async def test_clear_removes_everything(batch_store, point_store, forecast_time, row_factory):
    await batch_store.create_if_absent("a", forecast_time)
    await point_store.insert_many("a", forecast_time, to_points(row_factory(3)))

    assert await point_store.clear() == 3
    assert await batch_store.clear() == 1
    assert await batch_store.list_all() == []
