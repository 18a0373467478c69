"""Typed domain failures.

Every engine raises the subclass that describes what it detected; nothing
in the domain layer catches and re-labels another engine's error.  The
API layer maps ``code`` / ``status_code`` onto HTTP responses.
"""


class DomainError(Exception):
    code = "DOMAIN_ERROR"
    status_code = 400


class InvalidCoordinateError(DomainError):
    """A location could not be normalised to a valid (lat, lng) pair."""

    code = "INVALID_COORDINATES"


class InvalidInputError(DomainError):
    """Bad package attributes, distance or order type."""

    code = "INVALID_INPUT"


class DistanceExceededError(DomainError):
    code = "DISTANCE_EXCEEDED"

    def __init__(self, distance_km: float, max_distance_km: float):
        self.distance_km = distance_km
        self.max_distance_km = max_distance_km
        super().__init__(
            f"Distance ({distance_km:.2f}km) is beyond the maximum delivery range "
            f"of {max_distance_km:g}km"
        )


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidTransitionError(DomainError):
    """Raised when a status change violates the state machine."""

    code = "INVALID_TRANSITION"
    status_code = 409


class RiderUnavailableError(DomainError):
    code = "RIDER_UNAVAILABLE"
    status_code = 409


class ConcurrentModificationError(DomainError):
    """The record changed between read and write (lost update)."""

    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class InsufficientPointsError(DomainError):
    """Redemption below the minimum redeemable amount."""

    code = "INSUFFICIENT_POINTS"
    status_code = 422


class InsufficientBalanceError(DomainError):
    """Redemption larger than the rider's spendable points."""

    code = "INSUFFICIENT_BALANCE"
    status_code = 422
