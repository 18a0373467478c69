"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Order``: enforces valid lifecycle transitions
  (PENDING -> ASSIGNED -> PICKED_UP -> IN_TRANSIT -> DELIVERED, errands
  via CONFIRMED -> SHOPPING -> PURCHASED, CANCELLED from any
  non-terminal state).
- ``version`` on ``Order`` and ``Rider`` backs optimistic concurrency:
  repositories only write when the stored version still matches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .distance import Coordinate
from .enums import (
    ORDER_TRANSITIONS,
    PROCESSING_TRANSITIONS,
    STATUS_TIMESTAMP_KEYS,
    TERMINAL_STATUSES,
    OrderStatus,
    OrderType,
    PaymentStatus,
    ProcessingStatus,
    RiderStatus,
)
from .errors import InvalidTransitionError
from .fees import FeeBreakdown, PackageAttributes
from .incentives import RiderIncentives


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Order:
    fee_breakdown: FeeBreakdown
    delivery_location: Coordinate
    id: Optional[int] = None
    user_id: int = 0
    type: OrderType = OrderType.DELIVERY
    pickup_location: Optional[Coordinate] = None
    package: PackageAttributes = field(default_factory=PackageAttributes)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING_PAYMENT
    processing_status: ProcessingStatus = ProcessingStatus.PENDING_CONFIRMATION
    rider_id: Optional[int] = None
    timestamps: dict[str, datetime] = field(default_factory=dict)
    cancellation_reason: Optional[str] = None
    rating: Optional[int] = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def created_at(self) -> Optional[datetime]:
        return self.timestamps.get("created")

    def can_transition_to(self, new_status: OrderStatus) -> bool:
        return new_status in ORDER_TRANSITIONS[self.type].get(self.status, set())

    def transition_to(self, new_status: OrderStatus, at: datetime) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        if not self.can_transition_to(new_status):
            raise InvalidTransitionError(
                f"Cannot transition {self.type.value} order from "
                f"{self.status.value} to {new_status.value}"
            )
        self.status = new_status
        self.timestamps[STATUS_TIMESTAMP_KEYS[new_status]] = at

    def set_processing_status(self, new_status: ProcessingStatus) -> None:
        allowed = PROCESSING_TRANSITIONS.get(self.processing_status, set())
        if new_status not in allowed:
            raise InvalidTransitionError(
                f"Cannot move processing status from "
                f"{self.processing_status.value} to {new_status.value}"
            )
        self.processing_status = new_status

    def is_expired_unpaid(self, now: datetime, max_age: timedelta) -> bool:
        """Eligible for forced cancellation after a payment timeout."""
        return (
            self.payment_status is PaymentStatus.PENDING_PAYMENT
            and not self.is_terminal
            and self.created_at is not None
            and now - self.created_at > max_age
        )


@dataclass
class Rider:
    id: Optional[int] = None
    name: str = ""
    status: RiderStatus = RiderStatus.OFFLINE
    location: Optional[Coordinate] = None  # None = unknown, never the origin
    incentives: RiderIncentives = field(default_factory=RiderIncentives)
    version: int = 0

    @property
    def is_available(self) -> bool:
        return self.status is RiderStatus.ONLINE
