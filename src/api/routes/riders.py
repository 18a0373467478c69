"""
Rider endpoints
===============

GET   /api/v1/riders/nearby                   -- available riders around a point
GET   /api/v1/riders/{rider_id}/incentives    -- points, tier and progress
POST  /api/v1/riders/{rider_id}/redeem        -- convert points to cash
PATCH /api/v1/riders/{rider_id}/status        -- go online / offline, report position
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import (
    get_incentive_service,
    get_rider_repository,
    get_rider_service,
)
from src.api.middleware import limiter
from src.api.schemas import (
    IncentiveSummaryResponse,
    NearbyRiderResponse,
    RedeemRequest,
    RedemptionResponse,
    RiderStatusRequest,
    RiderStatusResponse,
)
from src.config import settings
from src.domain.dispatch import nearby_riders, search_cells, search_radius_for
from src.domain.distance import Coordinate, normalize_coordinate
from src.domain.enums import OrderType
from src.domain.ports import RiderRepository
from src.services.incentives import IncentiveService
from src.services.riders import RiderService

router = APIRouter(prefix="/riders", tags=["riders"])


async def find_nearby(
    riders: RiderRepository, target: Coordinate, order_type: OrderType
) -> list[NearbyRiderResponse]:
    """H3 pre-filter in the database, exact Haversine filter in memory."""
    radius = search_radius_for(
        order_type,
        settings.rider_search_radius_km,
        settings.errand_rider_search_radius_km,
    )
    cells = search_cells(target, radius, settings.h3_resolution)
    candidates = await riders.list_available(cells)
    return [
        NearbyRiderResponse.from_domain(rider, distance)
        for rider, distance in nearby_riders(candidates, target, radius)
    ]


@router.get(
    "/nearby",
    response_model=list[NearbyRiderResponse],
    summary="Available riders near a point",
)
@limiter.limit("100/minute")
async def get_nearby_riders(
    request: Request,
    lat: float = Query(...),
    lng: float = Query(...),
    order_type: OrderType = Query(OrderType.DELIVERY),
    riders: RiderRepository = Depends(get_rider_repository),
):
    target = normalize_coordinate({"lat": lat, "lng": lng})
    return await find_nearby(riders, target, order_type)


@router.get(
    "/{rider_id}/incentives",
    response_model=IncentiveSummaryResponse,
    summary="Incentive summary",
)
@limiter.limit("100/minute")
async def get_incentives(
    request: Request,
    rider_id: int,
    service: IncentiveService = Depends(get_incentive_service),
):
    summary = await service.summary(rider_id)
    return IncentiveSummaryResponse.model_validate(summary, from_attributes=True)


@router.post(
    "/{rider_id}/redeem",
    response_model=RedemptionResponse,
    summary="Redeem points for cash",
    description="100 points = 1.00; the minimum redemption is 100 points.",
)
@limiter.limit("100/minute")
async def redeem_points(
    request: Request,
    rider_id: int,
    body: RedeemRequest,
    service: IncentiveService = Depends(get_incentive_service),
):
    redemption = await service.redeem_points(rider_id, body.points)
    return RedemptionResponse.model_validate(redemption)


@router.patch(
    "/{rider_id}/status",
    response_model=RiderStatusResponse,
    summary="Update rider status and location",
    description="Location uses the order location shapes; required to go ONLINE "
    "unless one was reported before.",
)
@limiter.limit("100/minute")
async def update_rider_status(
    request: Request,
    rider_id: int,
    body: RiderStatusRequest,
    service: RiderService = Depends(get_rider_service),
):
    rider = await service.update_status(rider_id, body.status, body.location)
    return RiderStatusResponse.from_domain(rider)
