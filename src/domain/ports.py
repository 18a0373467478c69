"""Collaborator interfaces the core depends on.

The order lifecycle never talks to a database, a socket server or the
system clock directly; it receives these at construction time.

Repositories promise no transactions of their own.  Operations that write
two records (delivery writes the rider, then the order) stay correct when
repeated after a partial failure; when both repositories share one
database session the failed attempt is rolled back as a whole.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from .entities import Order, Rider

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderRepository(Protocol):
    async def add(self, order: Order) -> Order: ...

    async def load(self, order_id: int) -> Optional[Order]: ...

    async def save(self, order: Order, expected_version: int) -> Order:
        """Persist *order* iff the stored version equals *expected_version*.

        Raises ``ConcurrentModificationError`` otherwise; on success the
        returned order carries the incremented version.
        """
        ...

    async def find_expired_unpaid(self, cutoff: datetime) -> list[Order]:
        """Unpaid, non-terminal orders created before *cutoff*."""
        ...


class RiderRepository(Protocol):
    async def load(self, rider_id: int) -> Optional[Rider]: ...

    async def save(self, rider: Rider, expected_version: int) -> Rider: ...

    async def list_available(
        self, h3_cells: Optional[set[str]] = None
    ) -> list[Rider]: ...


class Notifier(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        """Fire-and-forget; implementations must not raise."""
        ...
