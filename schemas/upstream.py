"""
Pydantic schemas for payloads received from the upstream weather API.

Payloads are validated at the ingestion boundary. A malformed page
envelope is rejected as a whole; malformed rows inside a valid page are
quarantined (dropped and counted) so one bad row never blocks the rest.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime
import logging

from core.exceptions import DataFormatError

logger = logging.getLogger(__name__)


class UpstreamBatch(BaseModel):
    """Entry of GET /batches"""
    batch_id: str = Field(..., min_length=1)
    forecast_time: datetime


class PageMetadata(BaseModel):
    """Metadata block of GET /batches/{id}?page=N"""
    batch_id: str = Field(..., min_length=1)
    page: int = Field(..., ge=0)
    total_pages: int = Field(..., ge=0)
    count: Optional[int] = None
    total_items: Optional[int] = None

    # Upstream may add fields; they are tolerated
    model_config = ConfigDict(extra="allow")

    @property
    def is_last_page(self) -> bool:
        return self.page == self.total_pages - 1


class WeatherPoint(BaseModel):
    """A single observation row as sent upstream"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    temperature: float
    humidity: float
    precipitation_rate: float


class BatchPage(BaseModel):
    """A validated page: metadata plus the rows that passed validation"""
    metadata: PageMetadata
    data: List[WeatherPoint] = Field(default_factory=list)
    rejected_rows: int = 0
    # Metadata block as received, before coercion
    source_metadata: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def parse_payload(cls, payload: Any, batch_id: str) -> "BatchPage":
        """
        Validate a raw page payload.

        Raises:
            DataFormatError: If the envelope or its metadata is malformed
        """
        if not isinstance(payload, dict):
            raise DataFormatError(
                "Page payload is not an object",
                context={"batch_id": batch_id, "payload_type": type(payload).__name__}
            )

        try:
            metadata = PageMetadata.model_validate(payload.get("metadata"))
        except ValidationError as e:
            raise DataFormatError(
                "Invalid page metadata",
                context={"batch_id": batch_id},
                original_exception=e
            )

        rows = payload.get("data")
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise DataFormatError(
                "Page data is not a list",
                context={"batch_id": batch_id, "page": metadata.page}
            )

        points, rejected = _validate_rows(rows)
        if rejected:
            logger.warning(
                f"Quarantined {rejected} malformed rows "
                f"(batch_id={batch_id}, page={metadata.page}, total={len(rows)})"
            )

        return cls(
            metadata=metadata,
            data=points,
            rejected_rows=rejected,
            source_metadata=dict(payload["metadata"])
        )

    def raw_metadata(self) -> Dict[str, Any]:
        """Metadata exactly as received, for the batch raw_data snapshot"""
        return dict(self.source_metadata)


def _validate_rows(rows: List[Any]) -> Tuple[List[WeatherPoint], int]:
    points = []
    rejected = 0
    for row in rows:
        try:
            points.append(WeatherPoint.model_validate(row))
        except ValidationError:
            rejected += 1
    return points, rejected


def parse_batch_list(payload: Any) -> List[UpstreamBatch]:
    """
    Validate the batch listing, skipping malformed entries.

    Raises:
        DataFormatError: If the listing itself is not a list
    """
    if not isinstance(payload, list):
        raise DataFormatError(
            "Batch listing is not a list",
            context={"payload_type": type(payload).__name__}
        )

    batches = []
    for entry in payload:
        try:
            batches.append(UpstreamBatch.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed batch entry {entry!r}: {e.error_count()} errors")
    return batches
