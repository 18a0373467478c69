"""
Order Lifecycle State Machine
=============================

Delivery / shopping:  PENDING -> ASSIGNED -> PICKED_UP -> IN_TRANSIT -> DELIVERED
Errand:               PENDING -> CONFIRMED -> SHOPPING -> PURCHASED -> IN_TRANSIT -> DELIVERED
Any non-terminal state may move to CANCELLED.

Consistency
-----------
Every operation loads one order, applies the change in memory and writes
it back with ``save(order, expected_version)``.  If another writer got
there first the save raises ``ConcurrentModificationError``; nothing is
retried here.  This is what makes rider assignment exclusive: of two
concurrent ``assign_rider`` calls on the same PENDING order exactly one
save succeeds.

``mark_delivered`` credits the rider first and then saves the order once,
DELIVERED together with its tier bonus.  The credit is keyed on the order
id in the rider's ledger, so if either save fails the call can simply be
repeated: the rider is never rewarded twice, and never left unrewarded
for a delivered order.

Events
------
Each transition publishes ``{"type": "ORDER_<EVENT>", ...}`` on topic
``order_<id>`` (and ``rider_<id>`` on assignment).  Publishing is
fire-and-forget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo

from src.domain.distance import Coordinate, haversine_km, normalize_coordinate
from src.domain.entities import Order, Rider
from src.domain.enums import (
    ASSIGNMENT_STATUS,
    FORWARD_PATHS,
    PAYMENT_TRANSITIONS,
    STATUS_PROGRESS,
    OrderStatus,
    OrderType,
    PaymentStatus,
    ProcessingStatus,
)
from src.domain.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    RiderUnavailableError,
)
from src.domain.fees import FeeBreakdown, FeeEngine, PackageAttributes, parse_order_type
from src.domain.incentives import INCENTIVE_POINTS, points_for_delivery, tier_bonus
from src.domain.ports import Clock, Notifier, OrderRepository, RiderRepository, utc_now
from src.services.incentives import IncentiveService

logger = logging.getLogger(__name__)

PAYMENT_TIMEOUT_REASON = "Payment timeout - Order expired"
UNPAID_ORDER_MAX_AGE = timedelta(days=2)
AVERAGE_SPEED_KMH = 30.0
DEFAULT_HUB = Coordinate(longitude=-0.1870, latitude=5.6037)


@dataclass(frozen=True)
class Quote:
    distance_km: float
    fee_breakdown: FeeBreakdown


@dataclass(frozen=True)
class DeliveryResult:
    order: Order
    points_awarded: int = 0
    bonus_reasons: tuple[str, ...] = ()


class OrderLifecycle:
    """Creates orders and applies every status change to them."""

    def __init__(
        self,
        orders: OrderRepository,
        riders: RiderRepository,
        notifier: Notifier,
        fee_engine: Optional[FeeEngine] = None,
        clock: Clock = utc_now,
        local_tz: Optional[tzinfo] = None,
        hub: Coordinate = DEFAULT_HUB,
        distance_ceilings: Optional[dict[OrderType, float]] = None,
    ):
        self.orders = orders
        self.riders = riders
        self.notifier = notifier
        self.fee_engine = fee_engine or FeeEngine()
        self.clock = clock
        self.local_tz = local_tz
        self.hub = hub
        self.distance_ceilings = distance_ceilings or {}
        self.incentives = IncentiveService(riders, clock)

    @classmethod
    def from_settings(
        cls,
        settings,
        orders: OrderRepository,
        riders: RiderRepository,
        notifier: Notifier,
        clock: Clock = utc_now,
    ) -> OrderLifecycle:
        return cls(
            orders,
            riders,
            notifier,
            fee_engine=FeeEngine.from_settings(settings),
            clock=clock,
            local_tz=ZoneInfo(settings.local_timezone),
            hub=Coordinate(longitude=settings.hub_lng, latitude=settings.hub_lat),
            distance_ceilings={
                OrderType.DELIVERY: settings.max_delivery_distance_km,
                OrderType.ERRAND: settings.max_delivery_distance_km,
                OrderType.SHOPPING: settings.shopping_max_distance_km,
            },
        )

    # ── Helpers ───────────────────────────────────────────────────────

    async def _load(self, order_id: int) -> Order:
        order = await self.orders.load(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def _load_rider(self, rider_id: int) -> Rider:
        rider = await self.riders.load(rider_id)
        if rider is None:
            raise NotFoundError(f"Rider {rider_id} not found")
        return rider

    async def _save(self, order: Order) -> Order:
        return await self.orders.save(order, order.version)

    async def _emit(self, order: Order, event: str, **extra: Any) -> None:
        payload = {
            "type": f"ORDER_{event}",
            "orderId": order.id,
            "orderType": order.type.value,
            "status": order.status.value,
            **extra,
        }
        await self.notifier.publish(f"order_{order.id}", payload)

    # ── Creation ──────────────────────────────────────────────────────

    def quote(
        self,
        order_type: OrderType | str,
        delivery_location: Any,
        pickup_location: Any = None,
        package: Optional[PackageAttributes] = None,
    ) -> Quote:
        """Distance and fee breakdown for a prospective order.

        Errands start at the hub; every other type needs a pickup.
        """
        order_type = parse_order_type(order_type)
        delivery = normalize_coordinate(delivery_location)
        if order_type is OrderType.ERRAND:
            origin = self.hub
        elif pickup_location is None:
            raise InvalidInputError(
                f"Pickup location is required for {order_type.value} orders"
            )
        else:
            origin = normalize_coordinate(pickup_location)

        distance = haversine_km(
            origin.latitude, origin.longitude, delivery.latitude, delivery.longitude
        )
        breakdown = self.fee_engine.compute_fees(
            distance, package, order_type, self.distance_ceilings.get(order_type)
        )
        return Quote(distance, breakdown)

    async def create(
        self,
        *,
        user_id: int,
        order_type: OrderType | str,
        delivery_location: Any,
        pickup_location: Any = None,
        package: Optional[PackageAttributes] = None,
    ) -> Order:
        """Price and persist a new PENDING, unpaid order."""
        order_type = parse_order_type(order_type)
        package = package or PackageAttributes()
        quote = self.quote(order_type, delivery_location, pickup_location, package)
        order = Order(
            user_id=user_id,
            type=order_type,
            pickup_location=(
                None
                if order_type is OrderType.ERRAND
                else normalize_coordinate(pickup_location)
            ),
            delivery_location=normalize_coordinate(delivery_location),
            package=package,
            fee_breakdown=quote.fee_breakdown,
            timestamps={"created": self.clock()},
        )
        order = await self.orders.add(order)
        logger.info(
            "Order %s created (%s, %.1f km, total %.2f)",
            order.id,
            order.type.value,
            quote.distance_km,
            order.fee_breakdown.total,
        )
        await self._emit(order, "CREATED", total=order.fee_breakdown.total)
        return order

    # ── Transitions ───────────────────────────────────────────────────

    async def assign_rider(self, order_id: int, rider_id: int) -> Order:
        order = await self._load(order_id)
        if order.status is not OrderStatus.PENDING:
            raise InvalidTransitionError(
                f"Order {order_id} is {order.status.value}; riders can only be "
                "assigned to PENDING orders"
            )
        if order.rider_id is not None:
            raise InvalidTransitionError(
                f"Order {order_id} already has rider {order.rider_id}"
            )
        rider = await self._load_rider(rider_id)
        if not rider.is_available:
            raise RiderUnavailableError(
                f"Rider {rider_id} is {rider.status.value}, not available"
            )

        order.transition_to(ASSIGNMENT_STATUS[order.type], self.clock())
        order.rider_id = rider.id
        order = await self._save(order)
        logger.info("Order %s assigned to rider %s", order.id, rider.id)

        await self._emit(order, "ASSIGNED", riderId=rider.id)
        await self.notifier.publish(
            f"rider_{rider.id}",
            {"type": "ORDER_ASSIGNED", "orderId": order.id, "orderType": order.type.value},
        )
        return order

    async def advance(
        self, order_id: int, next_status: OrderStatus | str
    ) -> Order:
        """Step to the immediate forward successor of the current status."""
        try:
            next_status = OrderStatus(next_status)
        except ValueError:
            raise InvalidInputError(f"Unknown order status: {next_status!r}") from None

        if next_status is OrderStatus.DELIVERED:
            return (await self.mark_delivered(order_id)).order
        if next_status is OrderStatus.CANCELLED:
            raise InvalidTransitionError("Use cancel() to cancel an order")
        order = await self._load(order_id)
        if next_status is ASSIGNMENT_STATUS[order.type]:
            raise InvalidTransitionError(
                f"{next_status.value} requires a rider; use assign_rider()"
            )
        if next_status not in FORWARD_PATHS[order.type]:
            raise InvalidTransitionError(
                f"{next_status.value} is not a {order.type.value} status"
            )

        order.transition_to(next_status, self.clock())
        order = await self._save(order)
        logger.info("Order %s advanced to %s", order.id, order.status.value)
        await self._emit(order, next_status.value)
        return order

    async def mark_delivered(self, order_id: int) -> DeliveryResult:
        order = await self._load(order_id)
        delivered_at = self.clock()
        order.transition_to(OrderStatus.DELIVERED, delivered_at)

        points, reasons = 0, ()
        if order.rider_id is not None:
            earned = points_for_delivery(
                order.package.express, delivered_at, self.local_tz
            )
            rider, points = await self.incentives.award_delivery(
                order.rider_id, order.id, earned
            )
            reasons = earned.reasons

            bonus = tier_bonus(order.fee_breakdown.rider_fee, rider.incentives.tier)
            if bonus.bonus_amount > 0:
                order.fee_breakdown = order.fee_breakdown.with_tier_bonus(
                    bonus.bonus_amount, bonus.total_amount
                )

        order = await self._save(order)
        logger.info("Order %s delivered", order.id)
        result = DeliveryResult(order, points, reasons)

        await self._emit(
            order,
            "DELIVERED",
            riderFeeWithBonus=order.fee_breakdown.rider_fee_with_bonus,
        )
        return result

    async def cancel(self, order_id: int, reason: str) -> Order:
        order = await self._load(order_id)
        order = await self._cancel(order, reason)
        await self._emit(order, "CANCELLED", reason=reason)
        return order

    async def _cancel(
        self, order: Order, reason: str, processing_cancelled: bool = False
    ) -> Order:
        if order.is_terminal:
            raise InvalidTransitionError(
                f"Order {order.id} is already {order.status.value}"
            )
        order.transition_to(OrderStatus.CANCELLED, self.clock())
        order.cancellation_reason = reason
        if processing_cancelled:
            order.processing_status = ProcessingStatus.CANCELLED
        order = await self._save(order)
        logger.info("Order %s cancelled: %s", order.id, reason)
        return order

    async def force_cancel_if_expired(
        self, order_id: int, max_age: timedelta = UNPAID_ORDER_MAX_AGE
    ) -> Optional[Order]:
        """Cancel an order left unpaid for longer than *max_age*.

        Returns the cancelled order, or ``None`` when it is not eligible
        (paid, already terminal, or not old enough).
        """
        order = await self._load(order_id)
        if not order.is_expired_unpaid(self.clock(), max_age):
            return None
        order = await self._cancel(
            order, PAYMENT_TIMEOUT_REASON, processing_cancelled=True
        )
        await self._emit(order, "CANCELLED", reason="Payment timeout")
        return order

    # ── Side axes ─────────────────────────────────────────────────────

    async def record_payment(
        self, order_id: int, payment_status: PaymentStatus | str
    ) -> Order:
        """Entry point for the payment collaborator (webhook / verify)."""
        try:
            payment_status = PaymentStatus(payment_status)
        except ValueError:
            raise InvalidInputError(
                f"Unknown payment status: {payment_status!r}"
            ) from None
        order = await self._load(order_id)
        if payment_status not in PAYMENT_TRANSITIONS[order.payment_status]:
            raise InvalidTransitionError(
                f"Cannot move payment from {order.payment_status.value} "
                f"to {payment_status.value}"
            )
        if payment_status is PaymentStatus.PAID and order.status is OrderStatus.CANCELLED:
            raise InvalidTransitionError(f"Order {order.id} is cancelled")
        order.payment_status = payment_status
        order = await self._save(order)
        await self._emit(order, "PAYMENT_UPDATED", paymentStatus=payment_status.value)
        return order

    async def update_processing_status(
        self, order_id: int, processing_status: ProcessingStatus | str
    ) -> Order:
        try:
            processing_status = ProcessingStatus(processing_status)
        except ValueError:
            raise InvalidInputError(
                f"Unknown processing status: {processing_status!r}"
            ) from None
        order = await self._load(order_id)
        order.set_processing_status(processing_status)
        order = await self._save(order)
        await self._emit(
            order, "PROCESSING_UPDATED", processingStatus=processing_status.value
        )
        return order

    async def rate_delivery(self, order_id: int, rating: int) -> int:
        """Record the customer's rating; five stars earn the rider points.

        Returns the number of points awarded.
        """
        if not 1 <= rating <= 5:
            raise InvalidInputError(f"Rating must be between 1 and 5, got {rating}")
        order = await self._load(order_id)
        if order.status is not OrderStatus.DELIVERED or order.rider_id is None:
            raise InvalidTransitionError("Only delivered orders with a rider can be rated")
        if order.rating is not None:
            raise InvalidTransitionError(f"Order {order.id} has already been rated")
        order.rating = rating
        order = await self._save(order)

        if rating < 5:
            return 0
        points = INCENTIVE_POINTS["FIVE_STAR"]
        await self.incentives.award_points(
            order.rider_id, points, "5-star rating received", order.id
        )
        return points

    # ── Read models ───────────────────────────────────────────────────

    async def get(self, order_id: int) -> Order:
        return await self._load(order_id)

    async def cleanup_status(
        self, order_id: int, max_age: timedelta = UNPAID_ORDER_MAX_AGE
    ) -> dict[str, Any]:
        order = await self._load(order_id)
        created = order.created_at or self.clock()
        expiry = created + max_age
        return {
            "will_be_cancelled": order.payment_status is PaymentStatus.PENDING_PAYMENT
            and not order.is_terminal,
            "expiry_date": expiry,
            "expired": self.clock() > expiry,
        }

    async def track(self, order_id: int) -> dict[str, Any]:
        order = await self._load(order_id)
        eta: Optional[int] = None
        rider_location: Optional[Coordinate] = None
        if order.rider_id is not None and not order.is_terminal:
            rider = await self.riders.load(order.rider_id)
            rider_location = rider.location if rider else None
        if rider_location is not None:
            target = order.delivery_location
            if order.status is OrderStatus.ASSIGNED and order.pickup_location:
                target = order.pickup_location
            remaining = haversine_km(
                rider_location.latitude,
                rider_location.longitude,
                target.latitude,
                target.longitude,
            )
            eta = round(remaining / AVERAGE_SPEED_KMH * 60)
        return {
            "order_id": order.id,
            "status": order.status,
            "progress": STATUS_PROGRESS[order.status],
            "eta_minutes": eta,
            "rider_location": rider_location,
            "timestamps": dict(order.timestamps),
        }
