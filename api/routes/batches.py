"""
Batch metadata listing endpoint
"""

from fastapi import APIRouter, Depends
from typing import List
from api.dependencies import get_batch_store
from schemas.api import BatchMetadataResponse
from storage.batch_store import BatchStore
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Batches"])


@router.get("/batches", response_model=List[BatchMetadataResponse])
async def get_all_batches(batch_store: BatchStore = Depends(get_batch_store)):
    """Every batch record with its lifecycle status, newest forecast first"""
    batches = await batch_store.list_all()
    logger.debug(f"Returning {len(batches)} batches")
    return [BatchMetadataResponse.from_record(batch) for batch in batches]
