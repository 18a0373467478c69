"""Domain enumerations and state-transition rules."""

import enum


class OrderType(str, enum.Enum):
    DELIVERY = "DELIVERY"
    SHOPPING = "SHOPPING"
    ERRAND = "ERRAND"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    # errand-only states
    CONFIRMED = "CONFIRMED"
    SHOPPING = "SHOPPING"
    PURCHASED = "PURCHASED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class ProcessingStatus(str, enum.Enum):
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    PROCESSING = "PROCESSING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RiderStatus(str, enum.Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    BUSY = "BUSY"


class Tier(str, enum.Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"

    @property
    def rank(self) -> int:
        return list(Tier).index(self)


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Forward (non-cancel) path per order type, in order.
_DELIVERY_PATH = (
    OrderStatus.PENDING,
    OrderStatus.ASSIGNED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
)
_ERRAND_PATH = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.SHOPPING,
    OrderStatus.PURCHASED,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
)

FORWARD_PATHS: dict[OrderType, tuple[OrderStatus, ...]] = {
    OrderType.DELIVERY: _DELIVERY_PATH,
    OrderType.SHOPPING: _DELIVERY_PATH,
    OrderType.ERRAND: _ERRAND_PATH,
}


def _transitions(
    path: tuple[OrderStatus, ...]
) -> dict[OrderStatus, set[OrderStatus]]:
    table: dict[OrderStatus, set[OrderStatus]] = {
        OrderStatus.DELIVERED: set(),
        OrderStatus.CANCELLED: set(),
    }
    for current, nxt in zip(path, path[1:]):
        table[current] = {nxt, OrderStatus.CANCELLED}
    return table


# State machine: order type -> current status -> set of valid next statuses
ORDER_TRANSITIONS: dict[OrderType, dict[OrderStatus, set[OrderStatus]]] = {
    order_type: _transitions(path) for order_type, path in FORWARD_PATHS.items()
}

# The state entered when a rider takes the order.
ASSIGNMENT_STATUS: dict[OrderType, OrderStatus] = {
    order_type: path[1] for order_type, path in FORWARD_PATHS.items()
}

# Which ``timestamps`` key each status stamps.
STATUS_TIMESTAMP_KEYS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "created",
    OrderStatus.ASSIGNED: "assigned",
    OrderStatus.CONFIRMED: "assigned",
    OrderStatus.PICKED_UP: "pickedUp",
    OrderStatus.SHOPPING: "shopping",
    OrderStatus.PURCHASED: "purchased",
    OrderStatus.IN_TRANSIT: "inTransit",
    OrderStatus.DELIVERED: "delivered",
    OrderStatus.CANCELLED: "cancelled",
}

# Tracking progress shown to customers (percent).
STATUS_PROGRESS: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.ASSIGNED: 25,
    OrderStatus.CONFIRMED: 25,
    OrderStatus.PICKED_UP: 50,
    OrderStatus.SHOPPING: 50,
    OrderStatus.PURCHASED: 50,
    OrderStatus.IN_TRANSIT: 75,
    OrderStatus.DELIVERED: 100,
    OrderStatus.CANCELLED: 0,
}

PROCESSING_TRANSITIONS: dict[ProcessingStatus, set[ProcessingStatus]] = {
    ProcessingStatus.PENDING_CONFIRMATION: {
        ProcessingStatus.PROCESSING,
        ProcessingStatus.CANCELLED,
    },
    ProcessingStatus.PROCESSING: {
        ProcessingStatus.READY_FOR_PICKUP,
        ProcessingStatus.CANCELLED,
    },
    ProcessingStatus.READY_FOR_PICKUP: {
        ProcessingStatus.COMPLETED,
        ProcessingStatus.CANCELLED,
    },
    ProcessingStatus.COMPLETED: set(),
    ProcessingStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING_PAYMENT: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID, PaymentStatus.PENDING_PAYMENT},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}
