"""
Rider availability updates from the rider app.

A rider reports a status (ONLINE / OFFLINE / BUSY) and, usually, the
current position.  Search and tracking only see riders that are ONLINE
with a known location, so going ONLINE without ever having reported a
position is rejected.
"""

from __future__ import annotations

import logging
from typing import Any

from src.domain.distance import normalize_coordinate
from src.domain.entities import Rider
from src.domain.enums import RiderStatus
from src.domain.errors import InvalidInputError, NotFoundError
from src.domain.ports import Notifier, RiderRepository

logger = logging.getLogger(__name__)


class RiderService:
    def __init__(self, riders: RiderRepository, notifier: Notifier):
        self.riders = riders
        self.notifier = notifier

    async def update_status(
        self,
        rider_id: int,
        status: RiderStatus | str,
        location: Any = None,
    ) -> Rider:
        """Set status and optionally location in one version-guarded write."""
        try:
            status = RiderStatus(status)
        except ValueError:
            raise InvalidInputError(f"Unknown rider status: {status!r}") from None
        position = normalize_coordinate(location) if location is not None else None

        rider = await self.riders.load(rider_id)
        if rider is None:
            raise NotFoundError(f"Rider {rider_id} not found")
        expected = rider.version
        rider.status = status
        if position is not None:
            rider.location = position
        if rider.status is RiderStatus.ONLINE and rider.location is None:
            raise InvalidInputError("A location is required to go ONLINE")

        rider = await self.riders.save(rider, expected)
        logger.info("Rider %s is %s", rider.id, rider.status.value)

        await self.notifier.publish(
            f"rider_{rider.id}",
            {
                "type": "RIDER_STATUS_UPDATED",
                "riderId": rider.id,
                "status": rider.status.value,
                "location": (
                    {"lat": rider.location.latitude, "lng": rider.location.longitude}
                    if rider.location
                    else None
                ),
            },
        )
        return rider
