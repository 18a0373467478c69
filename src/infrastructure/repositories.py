"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and converts
between ORM rows and domain entities.  ``save`` is an optimistic-concurrency
write::

    UPDATE orders SET ..., version = :expected + 1
    WHERE id = :id AND version = :expected

Zero affected rows means someone else wrote first, reported as
``ConcurrentModificationError``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from geoalchemy2.functions import ST_MakePoint, ST_SetSRID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import OrderModel, RiderModel
from src.domain.dispatch import rider_h3_cell
from src.domain.distance import Coordinate
from src.domain.entities import Order, Rider
from src.domain.enums import OrderStatus, PaymentStatus, RiderStatus
from src.domain.errors import ConcurrentModificationError
from src.domain.fees import FeeBreakdown, LineItem, PackageAttributes
from src.domain.incentives import Achievement, LedgerEntry, RiderIncentives


# ── Serialisation helpers ─────────────────────────────────────────────


def _point(location: Optional[Coordinate]):
    if location is None:
        return None
    return ST_SetSRID(ST_MakePoint(location.longitude, location.latitude), 4326)


def package_to_json(package: PackageAttributes) -> dict[str, Any]:
    return {
        "weight": package.weight_kg,
        "fragile": package.fragile,
        "express": package.express,
        "items": [
            {"name": i.name, "price": i.price, "quantity": i.quantity}
            for i in package.items
        ],
    }


def package_from_json(data: dict[str, Any]) -> PackageAttributes:
    return PackageAttributes(
        weight_kg=data.get("weight", 0.0),
        fragile=data.get("fragile", False),
        express=data.get("express", False),
        items=tuple(LineItem(**item) for item in data.get("items", [])),
    )


def timestamps_to_json(timestamps: dict[str, datetime]) -> dict[str, str]:
    return {key: value.isoformat() for key, value in timestamps.items()}


def timestamps_from_json(data: dict[str, str]) -> dict[str, datetime]:
    return {key: datetime.fromisoformat(value) for key, value in data.items()}


def ledger_to_json(entries: list[LedgerEntry]) -> list[dict[str, Any]]:
    return [
        {
            "amount": e.amount,
            "reason": e.reason,
            "orderId": e.order_id,
            "dateAwarded": e.awarded_at.isoformat(),
        }
        for e in entries
    ]


def achievements_to_json(achievements: list[Achievement]) -> list[dict[str, Any]]:
    return [
        {
            "name": a.name,
            "description": a.description,
            "pointsAwarded": a.points_awarded,
            "dateAwarded": a.awarded_at.isoformat(),
            "icon": a.icon,
        }
        for a in achievements
    ]


# ── Orders ────────────────────────────────────────────────────────────


class SqlOrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _values(order: Order) -> dict[str, Any]:
        pickup = order.pickup_location
        return {
            "user_id": order.user_id,
            "type": order.type,
            "pickup_point": _point(pickup),
            "delivery_point": _point(order.delivery_location),
            "pickup_lat": pickup.latitude if pickup else None,
            "pickup_lng": pickup.longitude if pickup else None,
            "delivery_lat": order.delivery_location.latitude,
            "delivery_lng": order.delivery_location.longitude,
            "package": package_to_json(order.package),
            "fee_breakdown": order.fee_breakdown.to_dict(),
            "timestamps": timestamps_to_json(order.timestamps),
            "status": order.status,
            "payment_status": order.payment_status,
            "processing_status": order.processing_status,
            "rider_id": order.rider_id,
            "cancellation_reason": order.cancellation_reason,
            "rating": order.rating,
        }

    @staticmethod
    def to_entity(row: OrderModel) -> Order:
        pickup = None
        if row.pickup_lat is not None and row.pickup_lng is not None:
            pickup = Coordinate(longitude=row.pickup_lng, latitude=row.pickup_lat)
        return Order(
            id=row.id,
            user_id=row.user_id,
            type=row.type,
            pickup_location=pickup,
            delivery_location=Coordinate(
                longitude=row.delivery_lng, latitude=row.delivery_lat
            ),
            package=package_from_json(row.package),
            fee_breakdown=FeeBreakdown.from_dict(row.fee_breakdown),
            status=row.status,
            payment_status=row.payment_status,
            processing_status=row.processing_status,
            rider_id=row.rider_id,
            timestamps=timestamps_from_json(row.timestamps),
            cancellation_reason=row.cancellation_reason,
            rating=row.rating,
            version=row.version,
        )

    async def add(self, order: Order) -> Order:
        row = OrderModel(
            **self._values(order),
            created_at=order.created_at,
            version=0,
        )
        self.session.add(row)
        await self.session.flush()
        order.id = row.id
        order.version = 0
        return order

    async def load(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self.to_entity(row) if row else None

    async def save(self, order: Order, expected_version: int) -> Order:
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.version == expected_version)
            .values(**self._values(order), version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                f"Order {order.id} was modified concurrently "
                f"(expected version {expected_version})"
            )
        order.version = expected_version + 1
        return order

    async def find_expired_unpaid(self, cutoff: datetime) -> list[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.created_at < cutoff,
                OrderModel.payment_status == PaymentStatus.PENDING_PAYMENT,
                OrderModel.status.not_in(
                    [OrderStatus.CANCELLED, OrderStatus.DELIVERED]
                ),
            )
            .order_by(OrderModel.created_at)
        )
        return [self.to_entity(row) for row in result.scalars().all()]


# ── Riders ────────────────────────────────────────────────────────────


class SqlRiderRepository:
    def __init__(self, session: AsyncSession, h3_resolution: int = 8):
        self.session = session
        self.h3_resolution = h3_resolution

    def _values(self, rider: Rider) -> dict[str, Any]:
        loc = rider.location
        inc = rider.incentives
        return {
            "name": rider.name,
            "status": rider.status,
            "location": _point(loc),
            "lat": loc.latitude if loc else None,
            "lng": loc.longitude if loc else None,
            "h3_cell": (
                rider_h3_cell(loc.latitude, loc.longitude, self.h3_resolution)
                if loc
                else None
            ),
            "current_points": inc.current_points,
            "lifetime_points": inc.lifetime_points,
            "tier": inc.tier,
            "bonus_history": ledger_to_json(inc.bonus_history),
            "achievements": achievements_to_json(inc.achievements),
        }

    @staticmethod
    def to_entity(row: RiderModel) -> Rider:
        location = None
        if row.lat is not None and row.lng is not None:
            location = Coordinate(longitude=row.lng, latitude=row.lat)
        incentives = RiderIncentives(
            current_points=row.current_points,
            lifetime_points=row.lifetime_points,
            tier=row.tier,
            bonus_history=[
                LedgerEntry(
                    amount=e["amount"],
                    reason=e["reason"],
                    awarded_at=datetime.fromisoformat(e["dateAwarded"]),
                    order_id=e.get("orderId"),
                )
                for e in row.bonus_history
            ],
            achievements=[
                Achievement(
                    name=a["name"],
                    description=a["description"],
                    awarded_at=datetime.fromisoformat(a["dateAwarded"]),
                    points_awarded=a.get("pointsAwarded", 0),
                    icon=a.get("icon", "trophy"),
                )
                for a in row.achievements
            ],
        )
        return Rider(
            id=row.id,
            name=row.name,
            status=row.status,
            location=location,
            incentives=incentives,
            version=row.version,
        )

    async def add(self, rider: Rider) -> Rider:
        row = RiderModel(**self._values(rider), version=0)
        self.session.add(row)
        await self.session.flush()
        rider.id = row.id
        rider.version = 0
        return rider

    async def load(self, rider_id: int) -> Optional[Rider]:
        result = await self.session.execute(
            select(RiderModel)
            .where(RiderModel.id == rider_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self.to_entity(row) if row else None

    async def save(self, rider: Rider, expected_version: int) -> Rider:
        result = await self.session.execute(
            update(RiderModel)
            .where(RiderModel.id == rider.id, RiderModel.version == expected_version)
            .values(**self._values(rider), version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                f"Rider {rider.id} was modified concurrently "
                f"(expected version {expected_version})"
            )
        rider.version = expected_version + 1
        return rider

    async def list_available(
        self, h3_cells: Optional[set[str]] = None
    ) -> list[Rider]:
        query = select(RiderModel).where(
            RiderModel.status == RiderStatus.ONLINE,
            RiderModel.lat.is_not(None),
        )
        if h3_cells:
            query = query.where(RiderModel.h3_cell.in_(sorted(h3_cells)))
        result = await self.session.execute(query)
        return [self.to_entity(row) for row in result.scalars().all()]
