"""
Shared test fixtures.

Repositories are in-memory stand-ins that honour the same optimistic
concurrency contract as the SQL ones: ``save`` only succeeds when the
stored version matches, and every ``load`` / ``save`` hands out copies so
that two coroutines never share an entity.  Loads yield to the event
loop, which lets ``asyncio.gather`` interleave two read-modify-write
sequences the way two requests would.

No Docker / PostgreSQL / Redis is required.
"""

import asyncio
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from src.domain.dispatch import rider_h3_cell
from src.domain.distance import Coordinate
from src.domain.entities import Order, Rider
from src.domain.enums import PaymentStatus, RiderStatus
from src.domain.errors import ConcurrentModificationError
from src.domain.incentives import RiderIncentives, evaluate_tier
from src.services.lifecycle import OrderLifecycle

# A Wednesday, outside peak hours
WEDNESDAY_MORNING = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)

ACCRA_PICKUP = {"lat": 5.6037, "lng": -0.1870}


# ── Fakes ─────────────────────────────────────────────────────────────


class FrozenClock:
    def __init__(self, now: datetime = WEDNESDAY_MORNING):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        self.events.append((topic, payload))

    def types(self, topic: Optional[str] = None) -> list[str]:
        return [p["type"] for t, p in self.events if topic is None or t == topic]


class InMemoryOrderRepository:
    def __init__(self):
        self.rows: dict[int, Order] = {}
        self._next_id = 1

    async def add(self, order: Order) -> Order:
        order.id = self._next_id
        order.version = 0
        self._next_id += 1
        self.rows[order.id] = deepcopy(order)
        return order

    async def load(self, order_id: int) -> Optional[Order]:
        await asyncio.sleep(0)
        row = self.rows.get(order_id)
        return deepcopy(row) if row else None

    async def save(self, order: Order, expected_version: int) -> Order:
        stored = self.rows.get(order.id)
        if stored is None or stored.version != expected_version:
            raise ConcurrentModificationError(
                f"Order {order.id} was modified concurrently"
            )
        order.version = expected_version + 1
        self.rows[order.id] = deepcopy(order)
        return order

    async def find_expired_unpaid(self, cutoff: datetime) -> list[Order]:
        return [
            deepcopy(o)
            for o in self.rows.values()
            if o.payment_status is PaymentStatus.PENDING_PAYMENT
            and not o.is_terminal
            and o.created_at < cutoff
        ]


class InMemoryRiderRepository:
    def __init__(self, h3_resolution: int = 8):
        self.rows: dict[int, Rider] = {}
        self.h3_resolution = h3_resolution
        self._next_id = 1

    async def add(self, rider: Rider) -> Rider:
        rider.id = self._next_id
        rider.version = 0
        self._next_id += 1
        self.rows[rider.id] = deepcopy(rider)
        return rider

    async def load(self, rider_id: int) -> Optional[Rider]:
        await asyncio.sleep(0)
        row = self.rows.get(rider_id)
        return deepcopy(row) if row else None

    async def save(self, rider: Rider, expected_version: int) -> Rider:
        stored = self.rows.get(rider.id)
        if stored is None or stored.version != expected_version:
            raise ConcurrentModificationError(
                f"Rider {rider.id} was modified concurrently"
            )
        rider.version = expected_version + 1
        self.rows[rider.id] = deepcopy(rider)
        return rider

    async def list_available(self, h3_cells: Optional[set[str]] = None) -> list[Rider]:
        found = []
        for rider in self.rows.values():
            if rider.status is not RiderStatus.ONLINE or rider.location is None:
                continue
            cell = rider_h3_cell(
                rider.location.latitude, rider.location.longitude, self.h3_resolution
            )
            if h3_cells and cell not in h3_cells:
                continue
            found.append(deepcopy(rider))
        return found


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def orders() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def riders() -> InMemoryRiderRepository:
    return InMemoryRiderRepository()


@pytest.fixture
def lifecycle(orders, riders, notifier, clock) -> OrderLifecycle:
    return OrderLifecycle(orders, riders, notifier, clock=clock, local_tz=timezone.utc)


@pytest.fixture
def make_rider(riders):
    """Factory: ``await make_rider(lifetime_points=1600, lat=..., lng=...)``."""

    async def _make(
        name: str = "Kwame",
        status: RiderStatus = RiderStatus.ONLINE,
        lifetime_points: int = 0,
        lat: Optional[float] = 5.6040,
        lng: Optional[float] = -0.1875,
    ) -> Rider:
        location = None
        if lat is not None and lng is not None:
            location = Coordinate(longitude=lng, latitude=lat)
        return await riders.add(
            Rider(
                name=name,
                status=status,
                location=location,
                incentives=RiderIncentives(
                    current_points=lifetime_points,
                    lifetime_points=lifetime_points,
                    tier=evaluate_tier(lifetime_points),
                ),
            )
        )

    return _make
