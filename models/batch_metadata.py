from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Integer, Boolean, Index
from datetime import datetime, timezone
from models.base import Base, BatchStatus, JSONType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchMetadata(Base):
    """
    One record per upstream batch.
    
    Purpose:
    - Lifecycle tracking (RUNNING -> ACTIVE -> INACTIVE)
    - Row accounting for incremental page inserts
    - Audit trail: the record survives after its rows are purged
    
    Design Decisions:
    - batch_id is unique; a second create for the same id is a no-op
    - raw_data keeps the upstream metadata snapshot verbatim
    - is_deleted marks that the observation rows are gone
    """
    __tablename__ = "batch_metadata"
    
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    batch_id = Column(String(255), nullable=False, unique=True, index=True)
    
    forecast_time = Column(DateTime(timezone=True), nullable=False, index=True)
    number_of_rows = Column(Integer, nullable=False, default=0)
    
    start_ingest_time = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    end_ingest_time = Column(DateTime(timezone=True), nullable=True)
    
    status = Column(Enum(BatchStatus), nullable=False, default=BatchStatus.RUNNING, index=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    
    raw_data = Column(JSONType, nullable=True)
    
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    
    __table_args__ = (
        Index("idx_batch_status_forecast", "status", "forecast_time"),
    )

    def __repr__(self) -> str:
        return f"<BatchMetadata {self.batch_id} {self.status.value if self.status else None}>"
