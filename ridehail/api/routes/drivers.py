"""
Driver endpoints
================

GET /api/v1/drivers/nearby                     -- best drivers around a point
PUT /api/v1/drivers/{driver_id}/location       -- GPS report
PUT /api/v1/drivers/{driver_id}/availability   -- go online / offline
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridehail.api.dependencies import get_fleet
from ridehail.api.middleware import limiter
from ridehail.api.schemas import (
    AvailabilityRequest,
    DriverResponse,
    LocationSchema,
    NearbyDriverResponse,
)
from ridehail.domain.distance import haversine_km
from ridehail.domain.entities import Location
from ridehail.domain.enums import DriverStatus
from ridehail.services.fleet import FleetService

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get(
    "/nearby",
    response_model=list[NearbyDriverResponse],
    summary="Find online, approved drivers near a point",
)
@limiter.limit("100/minute")
async def find_nearby(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: Optional[float] = Query(None, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    fleet: FleetService = Depends(get_fleet),
):
    center = Location(latitude, longitude)
    drivers = await fleet.find_nearby(center, radius_km, limit)
    return [
        NearbyDriverResponse(
            **DriverResponse.from_entity(d).model_dump(),
            distance_km=round(haversine_km(center, d.location), 3),
        )
        for d in drivers
    ]


@router.put(
    "/{driver_id}/location",
    response_model=DriverResponse,
    summary="Report the driver's current location",
)
@limiter.limit("600/minute")
async def update_location(
    request: Request,
    driver_id: int,
    body: LocationSchema,
    fleet: FleetService = Depends(get_fleet),
):
    driver = await fleet.update_location(
        driver_id, Location(body.latitude, body.longitude)
    )
    return DriverResponse.from_entity(driver)


@router.put(
    "/{driver_id}/availability",
    response_model=DriverResponse,
    summary="Go online or offline",
)
@limiter.limit("100/minute")
async def set_availability(
    request: Request,
    driver_id: int,
    body: AvailabilityRequest,
    fleet: FleetService = Depends(get_fleet),
):
    status = DriverStatus.ONLINE if body.online else DriverStatus.OFFLINE
    return DriverResponse.from_entity(await fleet.set_availability(driver_id, status))
