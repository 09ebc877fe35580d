"""
Unit tests for the upstream weather API client
"""

import pytest
import httpx
from ingestion.client import WeatherApiClient
from core.exceptions import BatchUnavailableError, DataFormatError, NetworkError


def make_client(handler, max_retries=3):
    return WeatherApiClient(
        "https://weather.test",
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler)
    )


class TestRetryPolicy:
    """Test bounded fixed-delay retry"""

    @pytest.mark.asyncio
    async def test_retries_error_status_then_succeeds(self):
        """Transient 5xx responses are retried until a success arrives"""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[])

        async with make_client(handler, max_retries=5) as client:
            batches = await client.list_batches()

        assert batches == []
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_retries_connection_errors(self):
        """Connection failures are retried like error statuses"""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json=[])

        async with make_client(handler) as client:
            await client.list_batches()

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_404_is_not_retried(self):
        """A missing batch surfaces immediately as BatchUnavailableError"""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        async with make_client(handler) as client:
            with pytest.raises(BatchUnavailableError) as exc_info:
                await client.fetch_page("batch-a", 2)

        assert len(calls) == 1
        assert exc_info.value.batch_id == "batch-a"

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_network_error(self):
        """The attempt counter bounds the loop"""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with make_client(handler, max_retries=4) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.list_batches()

        assert len(calls) == 4
        assert exc_info.value.context["status_code"] == 500
        assert exc_info.value.context["retry_count"] == 4


class TestPayloads:
    """Test listing and page parsing"""

    @pytest.mark.asyncio
    async def test_list_batches_skips_malformed_entries(self):
        def handler(request):
            return httpx.Response(200, json=[
                {"batch_id": "a", "forecast_time": "2024-11-01T13:05:00Z"},
                {"batch_id": "b"},
                {"batch_id": "c", "forecast_time": "2024-11-01T14:05:00Z"},
            ])

        async with make_client(handler) as client:
            batches = await client.list_batches()

        # Upstream order is preserved
        assert [batch.batch_id for batch in batches] == ["a", "c"]

    @pytest.mark.asyncio
    async def test_invalid_json_raises_data_format_error(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        async with make_client(handler) as client:
            with pytest.raises(DataFormatError):
                await client.list_batches()

    @pytest.mark.asyncio
    async def test_fetch_page_sends_page_parameter(self):
        seen = []

        def handler(request):
            seen.append((request.url.path, request.url.params.get("page")))
            return httpx.Response(200, json={
                "metadata": {"batch_id": "a", "page": 1, "total_pages": 2},
                "data": [{
                    "latitude": 1.0,
                    "longitude": 2.0,
                    "temperature": 20.5,
                    "humidity": 55.0,
                    "precipitation_rate": 0.0
                }]
            })

        async with make_client(handler) as client:
            page = await client.fetch_page("a", 1)

        assert seen == [("/batches/a", "1")]
        assert page.metadata.is_last_page
        assert len(page.data) == 1


class TestPagination:
    """Test sequential page iteration"""

    @pytest.mark.asyncio
    async def test_iter_pages_reuses_first_page(self, upstream, weather_client, forecast_time, row_factory):
        upstream.add_batch("a", forecast_time, [row_factory(2), row_factory(2, 2), row_factory(1, 4)])

        first_page = await weather_client.fetch_page("a", 0)
        pages = [page async for page in weather_client.iter_pages("a", first_page=first_page)]

        assert [page.metadata.page for page in pages] == [0, 1, 2]
        # Page 0 is fetched once only
        assert upstream.page_requests("a") == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_iter_pages_stops_at_404(self, upstream, weather_client, forecast_time, row_factory):
        upstream.add_batch("a", forecast_time, [row_factory(1), row_factory(1, 1), row_factory(1, 2)])
        upstream.gone.add(("a", 1))

        received = []
        with pytest.raises(BatchUnavailableError):
            async for page in weather_client.iter_pages("a"):
                received.append(page.metadata.page)

        assert received == [0]
        assert upstream.page_requests("a") == [0, 1]
