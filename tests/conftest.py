"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
import httpx
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from core.database import build_session_maker, init_models
from ingestion.client import WeatherApiClient
from storage.batch_store import BatchStore
from storage.point_store import PointStore

UPSTREAM_URL = "https://weather.test"


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite database, one per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'weather_test.db'}",
        echo=False,
        poolclass=NullPool,  # Every session opens its own connection
    )

    # Create all tables
    await init_models(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return build_session_maker(test_engine)


@pytest.fixture
def batch_store(session_maker):
    return BatchStore(session_maker)


@pytest.fixture
def point_store(session_maker):
    return PointStore(session_maker, chunk_size=20)


def make_rows(count: int, start: int = 0) -> List[dict]:
    """Distinct observation rows on a 0.1 degree grid"""
    return [
        {
            "latitude": round(10 + (start + i) * 0.1, 4),
            "longitude": round(20 + (start + i) * 0.1, 4),
            "temperature": 15.0 + i,
            "humidity": 40.0 + i,
            "precipitation_rate": 0.5 * i,
        }
        for i in range(count)
    ]


class FakeUpstream:
    """
    In-memory upstream weather API served through httpx.MockTransport.

    Batches are registered with their pages of rows. A (batch_id, page)
    pair listed in `gone` answers 404; `listing_status` forces an error
    status on GET /batches.
    """

    def __init__(self):
        self.batches: List[dict] = []
        self.pages: Dict[str, List[List[dict]]] = {}
        self.gone: Set[Tuple[str, int]] = set()
        self.malformed: Set[str] = set()
        self.listing_status: Optional[int] = None
        self.requests: List[Tuple[str, Optional[int]]] = []

    def add_batch(self, batch_id: str, forecast_time: datetime, pages: List[List[dict]]):
        self.batches.append({"batch_id": batch_id, "forecast_time": forecast_time.isoformat()})
        self.pages[batch_id] = pages

    def remove_batch(self, batch_id: str):
        self.batches = [batch for batch in self.batches if batch["batch_id"] != batch_id]

    def page_requests(self, batch_id: str) -> List[int]:
        return [page for path, page in self.requests if path == f"/batches/{batch_id}"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        page = request.url.params.get("page")
        page = int(page) if page is not None else None
        self.requests.append((path, page))

        if path == "/batches":
            if self.listing_status is not None:
                return httpx.Response(self.listing_status, json={"error": "unavailable"})
            return httpx.Response(200, json=self.batches)

        batch_id = path.rsplit("/", 1)[-1]
        if batch_id not in self.pages or (batch_id, page) in self.gone:
            return httpx.Response(404, json={"error": "not found"})
        if batch_id in self.malformed:
            return httpx.Response(200, json={"data": []})

        pages = self.pages[batch_id]
        return httpx.Response(
            200,
            json={
                "metadata": {
                    "batch_id": batch_id,
                    "page": page,
                    "total_pages": len(pages),
                    "count": len(pages[page]),
                    "total_items": sum(len(rows) for rows in pages),
                },
                "data": pages[page],
            },
        )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest_asyncio.fixture
async def weather_client(upstream):
    """Real client wired to the in-memory upstream, without retry delays"""
    client = WeatherApiClient(
        UPSTREAM_URL,
        max_retries=3,
        retry_delay=0,
        timeout=5.0,
        transport=httpx.MockTransport(upstream.handler),
    )
    yield client
    await client.aclose()


@pytest.fixture
def forecast_time():
    return datetime(2024, 11, 1, 13, 5, tzinfo=timezone.utc)


@pytest.fixture
def row_factory():
    return make_rows
