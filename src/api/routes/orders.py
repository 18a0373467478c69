"""
Order endpoints
===============

POST  /api/v1/orders/quote                      -- price a prospective order
POST  /api/v1/orders                            -- create an order (PENDING, unpaid)
GET   /api/v1/orders/{order_id}                 -- order detail
POST  /api/v1/orders/{order_id}/assign          -- assign an available rider
POST  /api/v1/orders/{order_id}/advance         -- step along the forward path
POST  /api/v1/orders/{order_id}/deliver         -- mark delivered, reward rider
POST  /api/v1/orders/{order_id}/cancel          -- cancel a non-terminal order
PATCH /api/v1/orders/{order_id}/payment         -- payment collaborator callback
PATCH /api/v1/orders/{order_id}/processing      -- vendor processing status
POST  /api/v1/orders/{order_id}/rating          -- customer rating (1-5)
GET   /api/v1/orders/{order_id}/cleanup-status  -- payment-timeout countdown
GET   /api/v1/orders/{order_id}/tracking        -- progress, ETA, rider position
GET   /api/v1/orders/{order_id}/available-riders -- riders near the order

Domain errors propagate to the handler registered in ``src.api.app``.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Request

from src.api.dependencies import get_lifecycle, get_rider_repository
from src.api.middleware import limiter
from src.api.routes.riders import find_nearby
from src.api.schemas import (
    AdvanceRequest,
    AssignRiderRequest,
    CancelRequest,
    CleanupStatusResponse,
    DeliveryResponse,
    ErrorResponse,
    LocationOut,
    NearbyRiderResponse,
    OrderCreateRequest,
    OrderResponse,
    PaymentUpdateRequest,
    ProcessingUpdateRequest,
    QuoteRequest,
    QuoteResponse,
    RatingRequest,
    RatingResponse,
    TrackingResponse,
)
from src.config import settings
from src.domain.enums import OrderType
from src.infrastructure.repositories import SqlRiderRepository
from src.services.lifecycle import OrderLifecycle

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/quote", response_model=QuoteResponse, summary="Price an order")
@limiter.limit("100/minute")
async def quote_order(
    request: Request,
    body: QuoteRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    quote = lifecycle.quote(
        body.type, body.delivery_location, body.pickup_location, body.package.to_domain()
    )
    return QuoteResponse(
        distance_km=quote.fee_breakdown.distance,
        fee_breakdown=quote.fee_breakdown.to_dict(),
    )


@router.post(
    "",
    status_code=201,
    response_model=OrderResponse,
    summary="Create an order",
)
@limiter.limit("100/minute")
async def create_order(
    request: Request,
    body: OrderCreateRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = await lifecycle.create(
        user_id=body.user_id,
        order_type=body.type,
        delivery_location=body.delivery_location,
        pickup_location=body.pickup_location,
        package=body.package.to_domain(),
    )
    return OrderResponse.from_domain(order)


@router.get("/{order_id}", response_model=OrderResponse, summary="Get an order")
@limiter.limit("100/minute")
async def get_order(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.from_domain(await lifecycle.get(order_id))


@router.post(
    "/{order_id}/assign",
    response_model=OrderResponse,
    summary="Assign a rider",
    responses={409: {"model": ErrorResponse, "description": "Already taken"}},
    description=(
        "Only PENDING orders without a rider can be assigned; of two "
        "concurrent assignments exactly one succeeds, the other gets 409."
    ),
)
@limiter.limit("100/minute")
async def assign_rider(
    request: Request,
    order_id: int,
    body: AssignRiderRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.from_domain(
        await lifecycle.assign_rider(order_id, body.rider_id)
    )


@router.post(
    "/{order_id}/advance",
    response_model=OrderResponse,
    summary="Advance the order status",
)
@limiter.limit("100/minute")
async def advance_order(
    request: Request,
    order_id: int,
    body: AdvanceRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.from_domain(await lifecycle.advance(order_id, body.status))


@router.post(
    "/{order_id}/deliver",
    response_model=DeliveryResponse,
    summary="Mark an order delivered",
)
@limiter.limit("100/minute")
async def deliver_order(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    result = await lifecycle.mark_delivered(order_id)
    return DeliveryResponse(
        order=OrderResponse.from_domain(result.order),
        points_awarded=result.points_awarded,
        bonus_reasons=list(result.bonus_reasons),
    )


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel")
@limiter.limit("100/minute")
async def cancel_order(
    request: Request,
    order_id: int,
    body: CancelRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.from_domain(await lifecycle.cancel(order_id, body.reason))


@router.patch(
    "/{order_id}/payment",
    response_model=OrderResponse,
    summary="Record a payment status change",
)
@limiter.limit("100/minute")
async def update_payment(
    request: Request,
    order_id: int,
    body: PaymentUpdateRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.from_domain(
        await lifecycle.record_payment(order_id, body.payment_status)
    )


@router.patch(
    "/{order_id}/processing",
    response_model=OrderResponse,
    summary="Update the vendor processing status",
)
@limiter.limit("100/minute")
async def update_processing(
    request: Request,
    order_id: int,
    body: ProcessingUpdateRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return OrderResponse.from_domain(
        await lifecycle.update_processing_status(order_id, body.processing_status)
    )


@router.post("/{order_id}/rating", response_model=RatingResponse, summary="Rate")
@limiter.limit("100/minute")
async def rate_order(
    request: Request,
    order_id: int,
    body: RatingRequest,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    points = await lifecycle.rate_delivery(order_id, body.rating)
    return RatingResponse(order_id=order_id, rating=body.rating, points_awarded=points)


@router.get(
    "/{order_id}/cleanup-status",
    response_model=CleanupStatusResponse,
    summary="When an unpaid order will be auto-cancelled",
)
@limiter.limit("100/minute")
async def cleanup_status(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    status = await lifecycle.cleanup_status(
        order_id, timedelta(hours=settings.unpaid_order_expiry_hours)
    )
    return CleanupStatusResponse(order_id=order_id, **status)


@router.get(
    "/{order_id}/tracking",
    response_model=TrackingResponse,
    summary="Track progress and ETA",
)
@limiter.limit("100/minute")
async def track_order(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    tracking = await lifecycle.track(order_id)
    tracking["rider_location"] = LocationOut.from_domain(tracking["rider_location"])
    return TrackingResponse(**tracking)


@router.get(
    "/{order_id}/available-riders",
    response_model=list[NearbyRiderResponse],
    summary="Available riders near the order",
    description=(
        "Searches around the pickup point (3 km), or around the delivery "
        "point for errands (5 km)."
    ),
)
@limiter.limit("100/minute")
async def available_riders(
    request: Request,
    order_id: int,
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
    riders: SqlRiderRepository = Depends(get_rider_repository),
):
    order = await lifecycle.get(order_id)
    target = order.pickup_location
    if order.type is OrderType.ERRAND or target is None:
        target = order.delivery_location
    return await find_nearby(riders, target, order.type)
