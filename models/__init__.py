"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, the portable JSON column type and BatchStatus
    batch_metadata: One lifecycle record per upstream batch
    weather_data: Individual forecast observations keyed by batch and location

Usage:
    from models.batch_metadata import BatchMetadata
    from models.weather_data import WeatherData
    from models.base import BatchStatus

Relationships:
    - BatchMetadata → WeatherData (one-to-many by batch_id value, no FK;
      the ingestion engine owns cascading deletes)
"""

__all__ = [
    "Base",
    "BatchStatus",
    "BatchMetadata",
    "WeatherData",
]
