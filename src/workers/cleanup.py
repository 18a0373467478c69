"""
Background Order Cleanup Worker
===============================

Runs every ``CLEANUP_INTERVAL_SECONDS`` (default 3600 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance sweeps at a time
  across multiple API processes.
* Each cancellation goes through ``OrderLifecycle.force_cancel_if_expired``,
  i.e. a version-guarded write; an order paid or cancelled concurrently is
  either skipped by the guard or reported as a failure, never overwritten.

Algorithm per cycle
-------------------
1. Fetch unpaid, non-terminal orders created more than 2 days ago.
2. For each, re-check the predicate and cancel it
   ("Payment timeout - Order expired", processing status CANCELLED).
3. Each cancellation is committed on its own; its ``ORDER_CANCELLED``
   event is published only after that commit succeeds.
4. A failure on one order is rolled back, logged and counted; the batch
   continues.

Running the sweep twice cancels nothing the second time: cancelled orders
no longer match the query or the guard.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncContextManager, AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.ports import OrderRepository
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock
from src.infrastructure.notifications import OutboxNotifier, RedisNotifier
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import SqlOrderRepository, SqlRiderRepository
from src.services.lifecycle import OrderLifecycle

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass(frozen=True)
class CleanupReport:
    examined: int = 0
    cancelled: int = 0
    failed: int = 0


# ── Public API ────────────────────────────────────────────────────────


async def start_cleanup_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Cleanup worker started (interval=%ds)", settings.cleanup_interval_seconds
    )


async def stop_cleanup_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Cleanup worker stopped")


async def sweep_expired_orders(
    lifecycle: OrderLifecycle,
    orders: OrderRepository,
    max_age: timedelta,
    scope: Callable[[], AsyncContextManager] = nullcontext,
) -> CleanupReport:
    """Cancel every expired unpaid order; isolate per-order failures.

    *scope* wraps each cancellation (see ``order_transaction``) so that a
    failed write does not poison the rest of the batch.
    """
    cutoff = lifecycle.clock() - max_age
    candidates = await orders.find_expired_unpaid(cutoff)

    cancelled = failed = 0
    for order in candidates:
        try:
            async with scope():
                result = await lifecycle.force_cancel_if_expired(order.id, max_age)
        except Exception:
            logger.exception("Failed to cancel expired order %s", order.id)
            failed += 1
            continue
        if result is not None:
            cancelled += 1

    if candidates:
        logger.info(
            "Cleanup: %d examined, %d cancelled, %d failed",
            len(candidates),
            cancelled,
            failed,
        )
    return CleanupReport(len(candidates), cancelled, failed)


@asynccontextmanager
async def order_transaction(
    session: AsyncSession, outbox: OutboxNotifier
) -> AsyncIterator[None]:
    """Commit one order's changes, then release the events they raised."""
    try:
        yield
        await session.commit()
    except Exception:
        await session.rollback()
        outbox.discard()
        raise
    await outbox.flush()


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a cleanup cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_cleanup_cycle()
        except Exception:
            logger.exception("Unhandled error in cleanup cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.cleanup_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_cleanup_cycle() -> CleanupReport:
    """Execute one sweep under the distributed lock."""
    redis = await get_redis()
    lock = DistributedLock(redis, "order_cleanup", ttl_seconds=300)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping cycle")
        return CleanupReport()

    try:
        async with async_session_factory() as session:
            orders = SqlOrderRepository(session)
            outbox = OutboxNotifier(RedisNotifier(redis))
            lifecycle = OrderLifecycle.from_settings(
                settings,
                orders,
                SqlRiderRepository(session, settings.h3_resolution),
                outbox,
            )
            return await sweep_expired_orders(
                lifecycle,
                orders,
                timedelta(hours=settings.unpaid_order_expiry_hours),
                scope=lambda: order_transaction(session, outbox),
            )
    finally:
        await lock.release()
