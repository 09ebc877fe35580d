"""
Pydantic schemas for read API responses
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime, timezone
import math
from models.base import BatchStatus


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string in UTC; naive datetimes are stored as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def round_half_up(value: float) -> float:
    """One decimal place, halves rounded up (2.25 -> 2.3)"""
    return math.floor(value * 10 + 0.5) / 10


# ============================================================================
# Weather Schemas
# ============================================================================

class WeatherDataPoint(BaseModel):
    """Single forecast observation near the requested coordinate"""
    forecast_time: str = Field(..., alias="forecastTime")
    temperature: float = Field(..., alias="Temperature")
    precipitation_rate: float = Field(..., alias="Precipitation_rate")
    humidity: float = Field(..., alias="Humidity")

    class Config:
        populate_by_name = True

    @classmethod
    def from_record(cls, record) -> "WeatherDataPoint":
        return cls(
            forecast_time=to_iso(record.forecast_time),
            temperature=record.temperature,
            precipitation_rate=record.precipitation_rate,
            humidity=record.humidity
        )


class WeatherMeasures(BaseModel):
    temperature: float = Field(0, alias="Temperature")
    precipitation_rate: float = Field(0, alias="Precipitation_rate")
    humidity: float = Field(0, alias="Humidity")

    class Config:
        populate_by_name = True


class WeatherSummary(BaseModel):
    """Min, max and average over every observation in the tolerance box"""
    max: WeatherMeasures = Field(default_factory=WeatherMeasures)
    min: WeatherMeasures = Field(default_factory=WeatherMeasures)
    avg: WeatherMeasures = Field(default_factory=WeatherMeasures)

    @classmethod
    def from_aggregate(cls, aggregate: Dict[str, float]) -> "WeatherSummary":
        """Build from the store aggregate, rounding every value to one decimal"""
        def measures(prefix: str) -> WeatherMeasures:
            return WeatherMeasures(
                temperature=round_half_up(aggregate[f"{prefix}_temperature"]),
                precipitation_rate=round_half_up(aggregate[f"{prefix}_precipitation_rate"]),
                humidity=round_half_up(aggregate[f"{prefix}_humidity"])
            )

        return cls(max=measures("max"), min=measures("min"), avg=measures("avg"))


# ============================================================================
# Batch Schemas
# ============================================================================

class BatchMetadataResponse(BaseModel):
    """Batch metadata as exposed by GET /batches"""
    batch_id: str = Field(..., alias="batchId")
    forecast_time: str = Field(..., alias="forecastTime")
    number_of_rows: int = Field(..., alias="numberOfRows")
    start_ingest_time: str = Field(..., alias="startIngestTime")
    end_ingest_time: Optional[str] = Field(None, alias="endIngestTime")
    status: BatchStatus
    is_deleted: bool = Field(False, alias="isDeleted")

    class Config:
        populate_by_name = True
        use_enum_values = True
        json_schema_extra = {
            "example": {
                "batchId": "d83bb2d7976eba5dd4cc32635630cd9b",
                "forecastTime": "2024-11-01T13:05:00+00:00",
                "numberOfRows": 25300,
                "startIngestTime": "2024-11-01T13:22:00+00:00",
                "endIngestTime": "2024-11-01T13:52:00+00:00",
                "status": "ACTIVE",
                "isDeleted": False
            }
        }

    @classmethod
    def from_record(cls, record) -> "BatchMetadataResponse":
        return cls(
            batch_id=record.batch_id,
            forecast_time=to_iso(record.forecast_time),
            number_of_rows=record.number_of_rows or 0,
            start_ingest_time=to_iso(record.start_ingest_time),
            end_ingest_time=to_iso(record.end_ingest_time),
            status=record.status,
            is_deleted=bool(record.is_deleted)
        )


# ============================================================================
# Health / Error Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy or unhealthy")
    timestamp: datetime
    database_connected: bool
    batches_by_status: Dict[str, int] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    message: str
    request_id: Optional[str] = Field(None, alias="requestId")
    error: Optional[Any] = None

    class Config:
        populate_by_name = True


class NotFoundResponse(ErrorResponse):
    lat: Optional[float] = None
    lon: Optional[float] = None

