"""Tests for the unpaid-order cleanup sweep and its scheduling cycle."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.domain.enums import OrderStatus, PaymentStatus, ProcessingStatus
from src.domain.errors import ConcurrentModificationError
from src.infrastructure.notifications import OutboxNotifier
from src.services.lifecycle import PAYMENT_TIMEOUT_REASON, OrderLifecycle
from src.workers.cleanup import (
    CleanupReport,
    order_transaction,
    run_cleanup_cycle,
    sweep_expired_orders,
)
from tests.conftest import ACCRA_PICKUP, RecordingNotifier

MAX_AGE = timedelta(days=2)
DROP_OFF = {"lat": 5.6500, "lng": -0.1500}


async def _order_created_ago(lifecycle, clock, age: timedelta):
    real_now = clock.now
    clock.now = real_now - age
    order = await lifecycle.create(
        user_id=1,
        order_type="DELIVERY",
        pickup_location=ACCRA_PICKUP,
        delivery_location=DROP_OFF,
    )
    clock.now = real_now
    return order


class TestSweep:
    @pytest.mark.asyncio
    async def test_cancels_only_expired(self, lifecycle, orders, clock, notifier):
        old = await _order_created_ago(lifecycle, clock, timedelta(days=3))
        young = await _order_created_ago(lifecycle, clock, timedelta(days=1))

        report = await sweep_expired_orders(lifecycle, orders, MAX_AGE)
        assert report == CleanupReport(examined=1, cancelled=1, failed=0)

        cancelled = orders.rows[old.id]
        assert cancelled.status is OrderStatus.CANCELLED
        assert cancelled.processing_status is ProcessingStatus.CANCELLED
        assert cancelled.cancellation_reason == PAYMENT_TIMEOUT_REASON
        assert orders.rows[young.id].status is OrderStatus.PENDING
        assert notifier.types(f"order_{old.id}") == ["ORDER_CREATED", "ORDER_CANCELLED"]

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, lifecycle, orders, clock, notifier):
        await _order_created_ago(lifecycle, clock, timedelta(days=3))
        await sweep_expired_orders(lifecycle, orders, MAX_AGE)
        events_after_first = len(notifier.events)

        report = await sweep_expired_orders(lifecycle, orders, MAX_AGE)
        assert report == CleanupReport(examined=0, cancelled=0, failed=0)
        assert len(notifier.events) == events_after_first

    @pytest.mark.asyncio
    async def test_paid_and_terminal_orders_ignored(self, lifecycle, orders, clock):
        paid = await _order_created_ago(lifecycle, clock, timedelta(days=5))
        await lifecycle.record_payment(paid.id, PaymentStatus.PAID)
        cancelled = await _order_created_ago(lifecycle, clock, timedelta(days=5))
        await lifecycle.cancel(cancelled.id, "Customer request")

        report = await sweep_expired_orders(lifecycle, orders, MAX_AGE)
        assert report.cancelled == 0
        assert orders.rows[paid.id].status is OrderStatus.PENDING
        assert orders.rows[cancelled.id].cancellation_reason == "Customer request"

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, lifecycle, orders, clock):
        first = await _order_created_ago(lifecycle, clock, timedelta(days=4))
        second = await _order_created_ago(lifecycle, clock, timedelta(days=3))

        real_save = orders.save

        async def flaky_save(order, expected_version):
            if order.id == first.id:
                raise ConcurrentModificationError("paid while we looked")
            return await real_save(order, expected_version)

        orders.save = flaky_save
        report = await sweep_expired_orders(lifecycle, orders, MAX_AGE)

        assert report == CleanupReport(examined=2, cancelled=1, failed=1)
        assert orders.rows[first.id].status is OrderStatus.PENDING
        assert orders.rows[second.id].status is OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_each_order_runs_in_its_own_scope(self, lifecycle, orders, clock):
        await _order_created_ago(lifecycle, clock, timedelta(days=3))
        await _order_created_ago(lifecycle, clock, timedelta(days=4))
        entered = []

        @asynccontextmanager
        async def scope():
            entered.append(True)
            yield

        await sweep_expired_orders(lifecycle, orders, MAX_AGE, scope=scope)
        assert len(entered) == 2

    @pytest.mark.asyncio
    async def test_order_exactly_max_age_is_kept(self, lifecycle, orders, clock):
        order = await _order_created_ago(lifecycle, clock, MAX_AGE)

        report = await sweep_expired_orders(lifecycle, orders, MAX_AGE)
        assert report == CleanupReport()
        assert orders.rows[order.id].status is OrderStatus.PENDING

        clock.advance(microseconds=1)
        report = await sweep_expired_orders(lifecycle, orders, MAX_AGE)
        assert report == CleanupReport(examined=1, cancelled=1, failed=0)


def _session(commit_side_effect=None) -> MagicMock:
    session = MagicMock()
    session.commit = AsyncMock(side_effect=commit_side_effect)
    session.rollback = AsyncMock()
    return session


class TestOrderTransaction:
    @pytest.mark.asyncio
    async def test_events_published_after_commit(self):
        published = RecordingNotifier()
        outbox = OutboxNotifier(published)
        session = _session()

        async with order_transaction(session, outbox):
            await outbox.publish("order_1", {"type": "ORDER_CANCELLED"})
            assert published.events == []

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()
        assert published.types("order_1") == ["ORDER_CANCELLED"]
        assert outbox.pending == []

    @pytest.mark.asyncio
    async def test_failed_commit_publishes_nothing(self):
        published = RecordingNotifier()
        outbox = OutboxNotifier(published)
        session = _session(commit_side_effect=RuntimeError("connection lost"))

        with pytest.raises(RuntimeError):
            async with order_transaction(session, outbox):
                await outbox.publish("order_1", {"type": "ORDER_CANCELLED"})

        session.rollback.assert_awaited_once()
        assert published.events == []
        assert outbox.pending == []

    @pytest.mark.asyncio
    async def test_sweep_commits_each_order_separately(
        self, orders, riders, clock
    ):
        published = RecordingNotifier()
        outbox = OutboxNotifier(published)
        lifecycle = OrderLifecycle(orders, riders, outbox, clock=clock)
        first = await _order_created_ago(lifecycle, clock, timedelta(days=4))
        second = await _order_created_ago(lifecycle, clock, timedelta(days=3))
        outbox.pending.clear()

        # The first commit fails, the second succeeds.
        session = _session(commit_side_effect=[RuntimeError("deadlock"), None])
        report = await sweep_expired_orders(
            lifecycle,
            orders,
            MAX_AGE,
            scope=lambda: order_transaction(session, outbox),
        )

        assert report == CleanupReport(examined=2, cancelled=1, failed=1)
        assert session.commit.await_count == 2
        session.rollback.assert_awaited_once()
        assert published.types(f"order_{first.id}") == []
        assert published.types(f"order_{second.id}") == ["ORDER_CANCELLED"]


class TestCleanupCycle:
    @pytest.mark.asyncio
    async def test_skips_when_lock_is_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)
        session_factory = MagicMock()

        with (
            patch("src.workers.cleanup.get_redis", AsyncMock(return_value=mock_redis)),
            patch("src.workers.cleanup.async_session_factory", session_factory),
        ):
            report = await run_cleanup_cycle()

        assert report == CleanupReport()
        session_factory.assert_not_called()
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_releases_lock_after_sweep(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        session = MagicMock()
        session.commit = AsyncMock()

        @asynccontextmanager
        async def session_factory():
            yield session

        sweep = AsyncMock(return_value=CleanupReport(examined=2, cancelled=2))
        with (
            patch("src.workers.cleanup.get_redis", AsyncMock(return_value=mock_redis)),
            patch("src.workers.cleanup.async_session_factory", session_factory),
            patch("src.workers.cleanup.sweep_expired_orders", sweep),
        ):
            report = await run_cleanup_cycle()

        assert report.cancelled == 2
        session.commit.assert_not_awaited()
        mock_redis.eval.assert_awaited_once()
        assert sweep.await_args.args[2] == timedelta(hours=48)
