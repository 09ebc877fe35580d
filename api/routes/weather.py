"""
Weather point-query and summary endpoints
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from typing import List
from api.dependencies import get_batch_store, get_point_store
from schemas.api import WeatherDataPoint, WeatherSummary, NotFoundResponse
from storage.batch_store import BatchStore
from storage.point_store import PointStore
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/weather", tags=["Weather"])

# Only the newest ACTIVE batches are eligible for reads
ELIGIBLE_BATCHES = 3


def _not_found(request: Request, lat: float, lon: float) -> JSONResponse:
    body = NotFoundResponse(
        message="No weather data points found for location",
        lat=lat,
        lon=lon,
        request_id=getattr(request.state, "request_id", None)
    )
    return JSONResponse(status_code=404, content=body.model_dump(by_alias=True, exclude_none=True))


@router.get(
    "/data",
    response_model=List[WeatherDataPoint],
    responses={404: {"model": NotFoundResponse}}
)
async def get_weather_data(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, allow_inf_nan=False, description="Latitude (-90 to 90)"),
    lon: float = Query(..., ge=-180, le=180, allow_inf_nan=False, description="Longitude (-180 to 180)"),
    batch_store: BatchStore = Depends(get_batch_store),
    point_store: PointStore = Depends(get_point_store)
):
    """
    Forecast observations within ±0.01° of the coordinate, taken from the
    three most recent ACTIVE batches.
    """
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] Getting weather data lat={lat} lon={lon}")

    batch_ids = await batch_store.latest_active_ids(ELIGIBLE_BATCHES)
    if not batch_ids:
        logger.warning(f"[{request_id}] No active batches found")
        return []

    points = await point_store.find_near(lat, lon, batch_ids)
    if not points:
        return _not_found(request, lat, lon)

    return [WeatherDataPoint.from_record(point) for point in points]


@router.get(
    "/summarize",
    response_model=WeatherSummary,
    responses={404: {"model": NotFoundResponse}}
)
async def get_weather_summary(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, allow_inf_nan=False, description="Latitude (-90 to 90)"),
    lon: float = Query(..., ge=-180, le=180, allow_inf_nan=False, description="Longitude (-180 to 180)"),
    batch_store: BatchStore = Depends(get_batch_store),
    point_store: PointStore = Depends(get_point_store)
):
    """
    Max, min and average temperature, precipitation rate and humidity
    within ±0.01° of the coordinate, rounded to one decimal place.
    """
    request_id = getattr(request.state, "request_id", None)
    logger.debug(f"[{request_id}] Getting weather summary lat={lat} lon={lon}")

    batch_ids = await batch_store.latest_active_ids(ELIGIBLE_BATCHES)
    if not batch_ids:
        logger.warning(f"[{request_id}] No active batches found for summary")
        return WeatherSummary()

    aggregate = await point_store.summarize(lat, lon, batch_ids)
    if aggregate is None:
        return _not_found(request, lat, lon)

    return WeatherSummary.from_aggregate(aggregate)
