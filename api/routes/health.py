"""
Health check endpoint with database and batch status
"""

from fastapi import APIRouter, Depends
from datetime import datetime, timezone
from api.dependencies import get_batch_store
from core.exceptions import DatabaseError
from schemas.api import HealthCheckResponse
from storage.batch_store import BatchStore
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(batch_store: BatchStore = Depends(get_batch_store)):
    """
    Health check endpoint.
    
    Returns:
    - Database connectivity status
    - Number of batch records per lifecycle status
    """
    db_connected = False
    batches_by_status = {}

    try:
        batches_by_status = await batch_store.count_by_status()
        db_connected = True
    except DatabaseError as e:
        logger.error(f"Database connection failed: {e.message}", extra={"error_context": e.to_dict()})

    return HealthCheckResponse(
        status="healthy" if db_connected else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        database_connected=db_connected,
        batches_by_status=batches_by_status
    )
