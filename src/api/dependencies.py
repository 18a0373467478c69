"""FastAPI dependency injection helpers."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.notifications import RedisNotifier
from src.infrastructure.redis_client import get_redis
from src.infrastructure.repositories import SqlOrderRepository, SqlRiderRepository
from src.services.incentives import IncentiveService
from src.services.lifecycle import OrderLifecycle
from src.services.riders import RiderService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_order_repository(db: AsyncSession = Depends(get_db)) -> SqlOrderRepository:
    return SqlOrderRepository(db)


def get_rider_repository(db: AsyncSession = Depends(get_db)) -> SqlRiderRepository:
    return SqlRiderRepository(db, settings.h3_resolution)


async def get_notifier() -> RedisNotifier:
    return RedisNotifier(await get_redis())


def get_lifecycle(
    orders: SqlOrderRepository = Depends(get_order_repository),
    riders: SqlRiderRepository = Depends(get_rider_repository),
    notifier: RedisNotifier = Depends(get_notifier),
) -> OrderLifecycle:
    return OrderLifecycle.from_settings(settings, orders, riders, notifier)


def get_incentive_service(
    riders: SqlRiderRepository = Depends(get_rider_repository),
) -> IncentiveService:
    return IncentiveService(riders)


def get_rider_service(
    riders: SqlRiderRepository = Depends(get_rider_repository),
    notifier: RedisNotifier = Depends(get_notifier),
) -> RiderService:
    return RiderService(riders, notifier)
