from sqlalchemy import Column, BigInteger, String, DateTime, Float, Integer, Index, UniqueConstraint
from models.base import Base
from models.batch_metadata import utcnow


class WeatherData(Base):
    """
    A single forecast observation for one location within one batch.
    
    batch_id references the owning batch by value; the batch lifecycle
    decides when rows are deleted. The (latitude, longitude, batch_id)
    unique constraint lets re-sent rows be rejected as no-ops.
    """
    __tablename__ = "weather_data"
    
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    batch_id = Column(String(255), nullable=False, index=True)
    
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    forecast_time = Column(DateTime(timezone=True), nullable=False, index=True)
    
    temperature = Column(Float, nullable=False)
    humidity = Column(Float, nullable=False)
    precipitation_rate = Column(Float, nullable=False)
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    
    __table_args__ = (
        UniqueConstraint("latitude", "longitude", "batch_id", name="uq_weather_location_batch"),
        Index("idx_weather_batch_forecast", "batch_id", "forecast_time"),
    )
