"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.domain.distance import Coordinate
from src.domain.entities import Order, Rider
from src.domain.enums import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    ProcessingStatus,
    RiderStatus,
    Tier,
)
from src.domain.fees import LineItem, PackageAttributes


# ── Requests ──────────────────────────────────────────────────────────


class LineItemIn(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=0)


class PackageIn(BaseModel):
    weight: float = Field(0.0, ge=0)
    fragile: bool = False
    express: bool = False
    items: list[LineItemIn] = []

    def to_domain(self) -> PackageAttributes:
        return PackageAttributes(
            weight_kg=self.weight,
            fragile=self.fragile,
            express=self.express,
            items=tuple(LineItem(i.name, i.price, i.quantity) for i in self.items),
        )


class QuoteRequest(BaseModel):
    type: OrderType = OrderType.DELIVERY
    # [lng, lat], {"lat", "lng"} or GeoJSON-ish {"coordinates": ...}
    delivery_location: Any
    pickup_location: Any = None
    package: PackageIn = Field(default_factory=PackageIn)


class OrderCreateRequest(QuoteRequest):
    user_id: int


class AssignRiderRequest(BaseModel):
    rider_id: int


class AdvanceRequest(BaseModel):
    status: OrderStatus


class CancelRequest(BaseModel):
    reason: str = Field("Cancelled by customer", min_length=1, max_length=255)


class PaymentUpdateRequest(BaseModel):
    payment_status: PaymentStatus


class ProcessingUpdateRequest(BaseModel):
    processing_status: ProcessingStatus


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


class RedeemRequest(BaseModel):
    points: int = Field(..., gt=0)


class RiderStatusRequest(BaseModel):
    status: RiderStatus
    # Same shapes as order locations; optional when only the status changes
    location: Any = None


# ── Responses ─────────────────────────────────────────────────────────


class LocationOut(BaseModel):
    lat: float
    lng: float

    @classmethod
    def from_domain(cls, location: Optional[Coordinate]) -> Optional[LocationOut]:
        if location is None:
            return None
        return cls(lat=location.latitude, lng=location.longitude)


class QuoteResponse(BaseModel):
    distance_km: float
    fee_breakdown: dict[str, Any]


class OrderResponse(BaseModel):
    id: int
    user_id: int
    type: OrderType
    status: OrderStatus
    payment_status: PaymentStatus
    processing_status: ProcessingStatus
    pickup_location: Optional[LocationOut] = None
    delivery_location: LocationOut
    rider_id: Optional[int] = None
    fee_breakdown: dict[str, Any]
    timestamps: dict[str, datetime]
    cancellation_reason: Optional[str] = None
    rating: Optional[int] = None

    @classmethod
    def from_domain(cls, order: Order) -> OrderResponse:
        return cls(
            id=order.id,
            user_id=order.user_id,
            type=order.type,
            status=order.status,
            payment_status=order.payment_status,
            processing_status=order.processing_status,
            pickup_location=LocationOut.from_domain(order.pickup_location),
            delivery_location=LocationOut.from_domain(order.delivery_location),
            rider_id=order.rider_id,
            fee_breakdown=order.fee_breakdown.to_dict(),
            timestamps=order.timestamps,
            cancellation_reason=order.cancellation_reason,
            rating=order.rating,
        )


class DeliveryResponse(BaseModel):
    order: OrderResponse
    points_awarded: int
    bonus_reasons: list[str]


class RatingResponse(BaseModel):
    order_id: int
    rating: int
    points_awarded: int


class CleanupStatusResponse(BaseModel):
    order_id: int
    will_be_cancelled: bool
    expiry_date: datetime
    expired: bool


class TrackingResponse(BaseModel):
    order_id: int
    status: OrderStatus
    progress: int
    eta_minutes: Optional[int] = None
    rider_location: Optional[LocationOut] = None
    timestamps: dict[str, datetime]


class NearbyRiderResponse(BaseModel):
    id: int
    name: str
    status: RiderStatus
    location: LocationOut
    distance_km: float

    @classmethod
    def from_domain(cls, rider: Rider, distance: float) -> NearbyRiderResponse:
        return cls(
            id=rider.id,
            name=rider.name,
            status=rider.status,
            location=LocationOut.from_domain(rider.location),
            distance_km=round(distance, 2),
        )


class RiderStatusResponse(BaseModel):
    id: int
    status: RiderStatus
    location: Optional[LocationOut] = None

    @classmethod
    def from_domain(cls, rider: Rider) -> RiderStatusResponse:
        return cls(
            id=rider.id,
            status=rider.status,
            location=LocationOut.from_domain(rider.location),
        )


class LedgerEntryOut(BaseModel):
    amount: int
    reason: str
    order_id: Optional[int] = None
    awarded_at: datetime

    model_config = {"from_attributes": True}


class AchievementOut(BaseModel):
    name: str
    description: str
    awarded_at: datetime
    points_awarded: int = 0
    icon: str = "trophy"

    model_config = {"from_attributes": True}


class IncentiveSummaryResponse(BaseModel):
    rider_id: int
    rider_name: str
    current_points: int
    lifetime_points: int
    tier: Tier
    tier_benefit: str
    next_tier: Optional[Tier] = None
    points_to_next_tier: int
    next_tier_progress: int
    recent_bonuses: list[LedgerEntryOut]
    achievements: list[AchievementOut]


class RedemptionResponse(BaseModel):
    points_redeemed: int
    cash_value: float
    remaining_points: int

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: str


class CleanupReportResponse(BaseModel):
    examined: int
    cancelled: int
    failed: int

    model_config = {"from_attributes": True}
