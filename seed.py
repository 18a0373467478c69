"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample riders around the Accra hub (mix of ONLINE, BUSY, OFFLINE)
  - 4 sample orders (delivery, shopping, errand and a 3-day-old unpaid
    delivery that the next cleanup sweep will cancel)
"""

import asyncio
from datetime import timedelta

from sqlalchemy import text

from src.config import settings
from src.domain.distance import Coordinate
from src.domain.entities import Rider
from src.domain.enums import OrderType, RiderStatus, Tier
from src.domain.fees import LineItem, PackageAttributes
from src.domain.incentives import RiderIncentives, evaluate_tier
from src.domain.ports import utc_now
from src.infrastructure.database import async_session_factory, engine
from src.infrastructure.repositories import SqlOrderRepository, SqlRiderRepository
from src.services.lifecycle import OrderLifecycle

HUB_LAT, HUB_LNG = settings.hub_lat, settings.hub_lng

RIDERS = [
    {"name": "Kwame Mensah", "status": RiderStatus.ONLINE, "lat": 5.6050, "lng": -0.1880, "lifetime": 0},
    {"name": "Ama Owusu", "status": RiderStatus.ONLINE, "lat": 5.6100, "lng": -0.1800, "lifetime": 620},
    {"name": "Kofi Boateng", "status": RiderStatus.ONLINE, "lat": 5.5980, "lng": -0.1950, "lifetime": 1740},
    {"name": "Akosua Asante", "status": RiderStatus.ONLINE, "lat": 5.6200, "lng": -0.1700, "lifetime": 5200},
    {"name": "Yaw Darko", "status": RiderStatus.BUSY, "lat": 5.6030, "lng": -0.1860, "lifetime": 300},
    {"name": "Efua Addo", "status": RiderStatus.OFFLINE, "lat": 5.5900, "lng": -0.2000, "lifetime": 90},
    {"name": "Kojo Appiah", "status": RiderStatus.ONLINE, "lat": 5.6500, "lng": -0.1500, "lifetime": 40},
    # location unknown: never a search candidate
    {"name": "Abena Osei", "status": RiderStatus.ONLINE, "lat": None, "lng": None, "lifetime": 10},
]


class _SilentNotifier:
    async def publish(self, topic, payload):
        return None


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM riders"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        riders = SqlRiderRepository(session, settings.h3_resolution)
        orders = SqlOrderRepository(session)

        # ── Riders ────────────────────────────────────────────────────
        for r in RIDERS:
            location = None
            if r["lat"] is not None:
                location = Coordinate(longitude=r["lng"], latitude=r["lat"])
            await riders.add(
                Rider(
                    name=r["name"],
                    status=r["status"],
                    location=location,
                    incentives=RiderIncentives(
                        current_points=r["lifetime"],
                        lifetime_points=r["lifetime"],
                        tier=evaluate_tier(r["lifetime"]),
                    ),
                )
            )
        print(f"  Created {len(RIDERS)} riders")

        # ── Orders ────────────────────────────────────────────────────
        lifecycle = OrderLifecycle.from_settings(
            settings, orders, riders, _SilentNotifier()
        )
        await lifecycle.create(
            user_id=1,
            order_type=OrderType.DELIVERY,
            pickup_location={"lat": 5.6037, "lng": -0.1870},
            delivery_location={"lat": 5.6500, "lng": -0.1000},
            package=PackageAttributes(weight_kg=2, fragile=True),
        )
        await lifecycle.create(
            user_id=2,
            order_type=OrderType.SHOPPING,
            pickup_location=[-0.2050, 5.5600],
            delivery_location=[-0.1700, 5.6200],
            package=PackageAttributes(
                items=(LineItem("Rice 5kg", 85.0), LineItem("Cooking oil", 42.5, 2)),
            ),
        )
        await lifecycle.create(
            user_id=3,
            order_type=OrderType.ERRAND,
            delivery_location={"coordinates": [-0.1650, 5.6300]},
            package=PackageAttributes(express=True),
        )

        # Backdated so the cleanup worker has something to cancel
        stale = OrderLifecycle.from_settings(
            settings,
            orders,
            riders,
            _SilentNotifier(),
            clock=lambda: utc_now() - timedelta(days=3),
        )
        await stale.create(
            user_id=4,
            order_type=OrderType.DELIVERY,
            pickup_location={"lat": 5.6037, "lng": -0.1870},
            delivery_location={"lat": 5.6100, "lng": -0.1900},
        )
        print("  Created 4 orders")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
