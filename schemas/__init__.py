"""
Pydantic schemas for data validation and serialization.

Schemas:
    upstream: Payloads received from the upstream weather API
        (batch listing, page metadata, observation rows)
    api: Read API response models

Validation:
    Upstream payloads are validated at the ingestion boundary. A page
    with a malformed envelope is rejected as a whole, while individual
    malformed rows are quarantined and counted.

Usage:
    from schemas.upstream import BatchPage, parse_batch_list
    from schemas.api import WeatherSummary, BatchMetadataResponse
"""

__all__ = [
    "UpstreamBatch",
    "PageMetadata",
    "WeatherPoint",
    "BatchPage",
    "WeatherDataPoint",
    "WeatherSummary",
    "BatchMetadataResponse",
    "HealthCheckResponse",
]
