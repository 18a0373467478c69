"""
Concurrency safety tests.

Demonstrates:
1. Version-guarded saves reject a stale writer instead of overwriting.
2. Two concurrent point awards for one rider cannot both apply.
3. Distributed lock prevents simultaneous acquire.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.domain.errors import ConcurrentModificationError
from src.infrastructure.locks import DistributedLock, LockNotAcquired
from src.services.incentives import IncentiveService


class TestOptimisticConcurrency:
    """Repository-level version guard."""

    @pytest.mark.asyncio
    async def test_stale_save_rejected(self, lifecycle, orders):
        order = await lifecycle.create(
            user_id=1,
            order_type="ERRAND",
            delivery_location={"lat": 5.62, "lng": -0.17},
        )
        first = await orders.load(order.id)
        second = await orders.load(order.id)

        first.cancellation_reason = "first writer"
        await orders.save(first, first.version)

        second.cancellation_reason = "second writer"
        with pytest.raises(ConcurrentModificationError):
            await orders.save(second, second.version)
        assert orders.rows[order.id].cancellation_reason == "first writer"
        assert orders.rows[order.id].version == 1

    @pytest.mark.asyncio
    async def test_concurrent_awards_do_not_lose_updates(
        self, riders, make_rider, clock
    ):
        rider = await make_rider()
        service = IncentiveService(riders, clock)

        results = await asyncio.gather(
            service.award_points(rider.id, 10, "Delivery completed"),
            service.award_points(rider.id, 15, "Express delivery"),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, ConcurrentModificationError)]
        assert len(failures) == 1
        # whichever award won is the only one on the ledger
        stored = riders.rows[rider.id].incentives
        assert len(stored.bonus_history) == 1
        assert stored.lifetime_points == stored.bonus_history[0].amount

    @pytest.mark.asyncio
    async def test_sequential_awards_accumulate(self, riders, make_rider, clock):
        rider = await make_rider()
        service = IncentiveService(riders, clock)
        await service.award_points(rider.id, 10, "Delivery completed")
        await service.award_points(rider.id, 15, "Express delivery")
        assert riders.rows[rider.id].incentives.lifetime_points == 25


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "order_cleanup", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "courier:lock:order_cleanup", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "order_cleanup", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "order_cleanup", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is True

        mock_redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_release_after_expiry_reports_false(self):
        mock_redis = AsyncMock()
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "order_cleanup")
        assert await lock.release() is False

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "order_cleanup", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass
