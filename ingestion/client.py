"""
Upstream weather API client with bounded retry logic.

This module provides:
- Batch listing and paginated batch page fetching
- Fixed-delay retry on connection failures, timeouts and error statuses
- A distinct, non-retried BatchUnavailableError for HTTP 404
- Payload validation at the boundary (see schemas.upstream)
"""

import httpx
import asyncio
from typing import List, Dict, Any, Optional, AsyncIterator
from core.config import Settings
from core.exceptions import (
    BatchUnavailableError,
    DataFormatError,
    NetworkError,
)
from schemas.upstream import BatchPage, UpstreamBatch, parse_batch_list
import logging

logger = logging.getLogger(__name__)


class WeatherApiClient:
    """
    Client for the upstream weather-data API.

    Endpoints:
    - GET /batches                 -> [{batch_id, forecast_time}]
    - GET /batches/{id}?page=N     -> {metadata: {...}, data: [...]}

    Attributes:
        max_retries: Retry ceiling per call (default: 120)
        retry_delay: Fixed delay between attempts in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 30.0)
    """

    def __init__(
        self,
        base_url: str,
        max_retries: int = 120,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "WeatherApiClient":
        return cls(
            base_url=settings.WEATHER_API_URL,
            max_retries=settings.UPSTREAM_MAX_RETRIES,
            retry_delay=settings.UPSTREAM_RETRY_DELAY,
            timeout=settings.UPSTREAM_TIMEOUT,
            **kwargs
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "WeatherApiClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request_with_retry(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        batch_id: Optional[str] = None
    ) -> httpx.Response:
        """
        GET path, retrying transient failures with a fixed delay.

        The attempt counter bounds the loop; nothing recurses.

        Returns:
            The successful (2xx) HTTP response

        Raises:
            BatchUnavailableError: On HTTP 404, without retrying
            NetworkError: When every attempt hit a transient failure
        """
        last_exception: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.get(path, params=params)

                if response.status_code == 404:
                    raise BatchUnavailableError(
                        batch_id or path,
                        context={
                            "status_code": 404,
                            "api_url": f"{self.base_url}{path}",
                            "params": params
                        }
                    )

                if response.is_success:
                    if attempt > 1:
                        logger.info(f"Request to {path} succeeded after {attempt} attempts")
                    return response

                # Every other status is transient
                last_status = response.status_code
                last_exception = None
                logger.debug(
                    f"Upstream returned {response.status_code} for {path} "
                    f"(attempt {attempt}/{self.max_retries})"
                )

            except httpx.TransportError as e:
                last_exception = e
                last_status = None
                logger.debug(
                    f"{type(e).__name__} calling {path} (attempt {attempt}/{self.max_retries})"
                )

            if attempt < self.max_retries:
                if attempt == self.max_retries - 1:
                    logger.warning(f"Retrying {path}... 1 attempt left")
                await asyncio.sleep(self.retry_delay)

        raise NetworkError(
            f"Upstream request failed after {self.max_retries} attempts",
            context={
                "api_url": f"{self.base_url}{path}",
                "params": params,
                "status_code": last_status,
                "retry_count": self.max_retries
            },
            original_exception=last_exception
        )

    @staticmethod
    def _json(response: httpx.Response, **context) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DataFormatError(
                "Failed to parse JSON response",
                context={"response_body": response.text[:500], **context},
                original_exception=e
            )

    async def list_batches(self) -> List[UpstreamBatch]:
        """
        Fetch the batches currently reported upstream, in upstream order.

        Raises:
            NetworkError: Upstream unreachable after retries
            DataFormatError: Listing is not a list
        """
        logger.info("Fetching batches from weather API")
        response = await self._request_with_retry("/batches")
        return parse_batch_list(self._json(response, path="/batches"))

    async def fetch_page(self, batch_id: str, page: int = 0) -> BatchPage:
        """
        Fetch and validate one page of a batch.

        Raises:
            BatchUnavailableError: The batch vanished upstream (404)
            NetworkError: Upstream unreachable after retries
            DataFormatError: Page envelope malformed
        """
        response = await self._request_with_retry(
            f"/batches/{batch_id}",
            params={"page": page},
            batch_id=batch_id
        )
        payload = self._json(response, batch_id=batch_id, page=page)
        return BatchPage.parse_payload(payload, batch_id)

    async def iter_pages(
        self,
        batch_id: str,
        first_page: Optional[BatchPage] = None
    ) -> AsyncIterator[BatchPage]:
        """
        Yield every page of a batch strictly in order.

        total_pages is re-read from each page as it arrives; page N+1 is
        only requested after the consumer has finished with page N.

        Args:
            batch_id: Upstream batch id
            first_page: Already-fetched page 0, reused instead of refetched
        """
        current = 0
        total_pages = 1

        while current < total_pages:
            if current == 0 and first_page is not None:
                page = first_page
            else:
                page = await self.fetch_page(batch_id, current)

            total_pages = page.metadata.total_pages
            yield page

            if page.metadata.is_last_page:
                break
            current += 1
