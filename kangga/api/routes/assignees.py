"""
Driver / courier endpoints
==========================

PUT /api/v1/assignees/{assignee_id}/location  -- report a position (broadcast live)
GET /api/v1/assignees/{assignee_id}/eta       -- ETA from the last position to a point
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from kangga.api.dependencies import get_tracking_service
from kangga.api.middleware import limiter
from kangga.api.schemas import EtaResponse, LocationResponse, LocationUpdateRequest
from kangga.config import settings
from kangga.domain.distance import calculate_eta_between
from kangga.domain.entities import LocationSample
from kangga.domain.exceptions import AssigneeNotFound
from kangga.services.tracking import TrackingService

router = APIRouter(prefix="/assignees", tags=["assignees"])


@router.put(
    "/{assignee_id}/location",
    response_model=LocationResponse,
    summary="Update live location",
)
@limiter.limit("600/minute")
async def update_location(
    request: Request,
    assignee_id: int,
    body: LocationUpdateRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    assignee = await service.update_location(
        assignee_id,
        LocationSample(
            latitude=body.lat,
            longitude=body.lng,
            accuracy_m=body.accuracy_m,
            recorded_at=body.recorded_at,
        ),
    )
    return LocationResponse(
        assignee_id=assignee.id,
        lat=assignee.current_lat,
        lng=assignee.current_lng,
        accuracy_m=assignee.location_accuracy_m,
        h3_cell=assignee.h3_cell,
        updated_at=assignee.location_updated_at,
    )


@router.get("/{assignee_id}/eta", response_model=EtaResponse, summary="ETA to a point")
@limiter.limit("100/minute")
async def eta(
    request: Request,
    assignee_id: int,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    service: TrackingService = Depends(get_tracking_service),
):
    assignee = await service.assignees.get_by_id(assignee_id)
    if assignee is None:
        raise AssigneeNotFound(f"Assignee {assignee_id} not found")
    if assignee.current_lat is None or assignee.current_lng is None:
        raise HTTPException(status_code=409, detail="Location not shared yet")
    result = calculate_eta_between(
        assignee.current_lat, assignee.current_lng, lat, lng, settings.average_speed_kmh
    )
    return EtaResponse(
        distance_km=result.distance_km,
        duration_minutes=result.duration_minutes,
        eta_text=result.eta_text,
    )
