"""
Incentive ledger operations.

Each operation is a single read-modify-write of the rider record guarded
by the rider's ``version``: two concurrent awards for the same rider
cannot both apply on top of the same balance; the loser gets
``ConcurrentModificationError`` and the caller decides whether to retry.
"""

from __future__ import annotations

import logging
from typing import Optional

from src.domain.entities import Rider
from src.domain.errors import NotFoundError
from src.domain.incentives import DELIVERY_REASON, DeliveryPoints, Redemption
from src.domain.ports import Clock, RiderRepository, utc_now

logger = logging.getLogger(__name__)


class IncentiveService:
    def __init__(self, riders: RiderRepository, clock: Clock = utc_now):
        self.riders = riders
        self.clock = clock

    async def _load(self, rider_id: int) -> Rider:
        rider = await self.riders.load(rider_id)
        if rider is None:
            raise NotFoundError(f"Rider {rider_id} not found")
        return rider

    async def award_points(
        self,
        rider_id: int,
        points: int,
        reason: str,
        order_id: Optional[int] = None,
    ) -> Rider:
        rider = await self._load(rider_id)
        expected = rider.version
        achievement = rider.incentives.award(points, reason, self.clock(), order_id)
        rider = await self.riders.save(rider, expected)
        logger.info("Rider %s awarded %d points (%s)", rider_id, points, reason)
        if achievement:
            logger.info("Rider %s reached %s tier", rider_id, rider.incentives.tier.value)
        return rider

    async def award_delivery(
        self, rider_id: int, order_id: int, earned: DeliveryPoints
    ) -> tuple[Rider, int]:
        """Reward delivery of *order_id* unless the ledger already has.

        Returns the rider and the points credited for the order, whether
        by this call or an earlier one.
        """
        rider = await self._load(rider_id)
        previous = rider.incentives.delivery_award(order_id)
        if previous is not None:
            logger.info(
                "Rider %s already rewarded for order %s", rider_id, order_id
            )
            return rider, previous.amount

        reason = DELIVERY_REASON
        if earned.reasons:
            reason = f"{reason}: {', '.join(earned.reasons)}"
        expected = rider.version
        achievement = rider.incentives.award(
            earned.points, reason, self.clock(), order_id
        )
        rider = await self.riders.save(rider, expected)
        logger.info("Rider %s awarded %d points (%s)", rider_id, earned.points, reason)
        if achievement:
            logger.info("Rider %s reached %s tier", rider_id, rider.incentives.tier.value)
        return rider, earned.points

    async def redeem_points(self, rider_id: int, points: int) -> Redemption:
        rider = await self._load(rider_id)
        expected = rider.version
        redemption = rider.incentives.redeem(points, self.clock())
        await self.riders.save(rider, expected)
        logger.info(
            "Rider %s redeemed %d points for %.2f", rider_id, points, redemption.cash_value
        )
        return redemption

    async def summary(self, rider_id: int) -> dict:
        rider = await self._load(rider_id)
        return {"rider_id": rider.id, "rider_name": rider.name, **rider.incentives.summary()}
