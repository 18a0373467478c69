"""
Integration tests for the REST API endpoints.

Repositories, notifier and clock are overridden through FastAPI's
``dependency_overrides`` with the in-memory fakes from ``conftest``, so
no PostgreSQL or Redis is needed.
"""

from __future__ import annotations

from datetime import timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.domain.enums import RiderStatus
from src.services.incentives import IncentiveService
from src.services.lifecycle import OrderLifecycle
from src.services.riders import RiderService
from src.workers.cleanup import CleanupReport
from tests.conftest import ACCRA_PICKUP

DELIVERY_BODY = {
    "user_id": 1,
    "type": "DELIVERY",
    "pickup_location": ACCRA_PICKUP,
    "delivery_location": [-0.1870, 5.6937],
    "package": {"weight": 2},
}


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(orders, riders, notifier, clock):
    """AsyncClient backed by in-memory repositories."""
    with (
        patch(
            "src.workers.cleanup.start_cleanup_loop",
            new_callable=AsyncMock,
        ),
        patch(
            "src.workers.cleanup.stop_cleanup_loop",
            new_callable=AsyncMock,
        ),
    ):
        from src.api.app import create_app
        from src.api.dependencies import (
            get_incentive_service,
            get_lifecycle,
            get_rider_repository,
            get_rider_service,
        )
        from src.api.middleware import limiter

        limiter.reset()
        app = create_app()
        app.dependency_overrides[get_lifecycle] = lambda: OrderLifecycle(
            orders, riders, notifier, clock=clock, local_tz=timezone.utc
        )
        app.dependency_overrides[get_rider_repository] = lambda: riders
        app.dependency_overrides[get_incentive_service] = lambda: IncentiveService(
            riders, clock
        )
        app.dependency_overrides[get_rider_service] = lambda: RiderService(
            riders, notifier
        )

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


async def _create_order(client: AsyncClient, **overrides) -> dict:
    resp = await client.post("/api/v1/orders", json={**DELIVERY_BODY, **overrides})
    assert resp.status_code == 201, resp.text
    return resp.json()


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_quote(client: AsyncClient):
    resp = await client.post(
        "/api/v1/orders/quote",
        json={
            "type": "ERRAND",
            "delivery_location": {"coordinates": [-0.1870, 5.6937]},
        },
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["distance_km"] == 10.0
    assert data["fee_breakdown"]["serviceFee"] == 30


@pytest.mark.asyncio
async def test_create_order_returns_201(client: AsyncClient):
    data = await _create_order(client)
    assert data["status"] == "PENDING"
    assert data["payment_status"] == "PENDING_PAYMENT"
    assert data["id"] is not None
    assert data["pickup_location"] == {"lat": 5.6037, "lng": -0.187}
    breakdown = data["fee_breakdown"]
    assert breakdown["platformCommission"] + breakdown["riderFee"] == pytest.approx(
        breakdown["total"], abs=0.01
    )


@pytest.mark.asyncio
async def test_invalid_coordinates_400(client: AsyncClient):
    resp = await client.post(
        "/api/v1/orders", json={**DELIVERY_BODY, "delivery_location": {"lat": 5.6}}
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_COORDINATES"


@pytest.mark.asyncio
async def test_distance_exceeded_400(client: AsyncClient):
    resp = await client.post(
        "/api/v1/orders",
        json={**DELIVERY_BODY, "delivery_location": [-0.1870, 6.5]},
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "DISTANCE_EXCEEDED"


@pytest.mark.asyncio
async def test_get_order_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/orders/9999")
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_full_delivery_flow(client: AsyncClient, make_rider):
    rider = await make_rider(lifetime_points=1600)
    order = await _create_order(client)
    base = f"/api/v1/orders/{order['id']}"

    resp = await client.post(f"{base}/assign", json={"rider_id": rider.id})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ASSIGNED"

    for status in ("PICKED_UP", "IN_TRANSIT"):
        resp = await client.post(f"{base}/advance", json={"status": status})
        assert resp.status_code == 200
        assert resp.json()["status"] == status

    resp = await client.post(f"{base}/deliver")
    assert resp.status_code == 200
    body = resp.json()
    assert body["order"]["status"] == "DELIVERED"
    assert body["points_awarded"] == 10
    breakdown = body["order"]["fee_breakdown"]
    assert breakdown["tierBonus"] > 0
    assert breakdown["riderFeeWithBonus"] == pytest.approx(
        breakdown["riderFee"] + breakdown["tierBonus"], abs=0.01
    )

    resp = await client.post(f"{base}/rating", json={"rating": 5})
    assert resp.status_code == 200
    assert resp.json()["points_awarded"] == 5


@pytest.mark.asyncio
async def test_assign_busy_rider_409(client: AsyncClient, make_rider):
    rider = await make_rider(status=RiderStatus.BUSY)
    order = await _create_order(client)
    resp = await client.post(
        f"/api/v1/orders/{order['id']}/assign", json={"rider_id": rider.id}
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "RIDER_UNAVAILABLE"


@pytest.mark.asyncio
async def test_illegal_transition_409(client: AsyncClient):
    order = await _create_order(client)
    resp = await client.post(f"/api/v1/orders/{order['id']}/deliver")
    assert resp.status_code == 409
    assert resp.json()["code"] == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_cancel_pending_order(client: AsyncClient):
    order = await _create_order(client)
    resp = await client.post(
        f"/api/v1/orders/{order['id']}/cancel", json={"reason": "Ordered twice"}
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "CANCELLED"
    assert resp.json()["cancellation_reason"] == "Ordered twice"


@pytest.mark.asyncio
async def test_cancel_already_cancelled_order_fails(client: AsyncClient):
    order = await _create_order(client)
    await client.post(f"/api/v1/orders/{order['id']}/cancel", json={})
    resp = await client.post(f"/api/v1/orders/{order['id']}/cancel", json={})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_payment_and_processing(client: AsyncClient):
    order = await _create_order(client)
    base = f"/api/v1/orders/{order['id']}"

    resp = await client.patch(f"{base}/payment", json={"payment_status": "PAID"})
    assert resp.status_code == 200
    assert resp.json()["payment_status"] == "PAID"

    resp = await client.patch(
        f"{base}/processing", json={"processing_status": "PROCESSING"}
    )
    assert resp.status_code == 200
    assert resp.json()["processing_status"] == "PROCESSING"

    resp = await client.get(f"{base}/cleanup-status")
    assert resp.status_code == 200
    assert resp.json()["will_be_cancelled"] is False


@pytest.mark.asyncio
async def test_tracking(client: AsyncClient, make_rider):
    rider = await make_rider(lat=5.5767, lng=-0.1870)
    order = await _create_order(client)
    await client.post(
        f"/api/v1/orders/{order['id']}/assign", json={"rider_id": rider.id}
    )
    resp = await client.get(f"/api/v1/orders/{order['id']}/tracking")
    assert resp.status_code == 200
    data = resp.json()
    assert data["progress"] == 25
    assert data["eta_minutes"] == 6
    assert data["rider_location"] == {"lat": 5.5767, "lng": -0.187}


@pytest.mark.asyncio
async def test_nearby_riders(client: AsyncClient, make_rider):
    near = await make_rider("Ama", lat=5.6050, lng=-0.1880)
    await make_rider("Kojo", lat=5.6500, lng=-0.1500)  # ~6 km away
    await make_rider("Yaw", status=RiderStatus.BUSY, lat=5.6040, lng=-0.1870)

    resp = await client.get(
        "/api/v1/riders/nearby", params={"lat": 5.6037, "lng": -0.1870}
    )
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [near.id]

    resp = await client.get(
        "/api/v1/riders/nearby", params={"lat": 95, "lng": -0.1870}
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_available_riders_for_order(client: AsyncClient, make_rider):
    near = await make_rider("Ama", lat=5.6050, lng=-0.1880)
    order = await _create_order(client)
    resp = await client.get(f"/api/v1/orders/{order['id']}/available-riders")
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [near.id]


@pytest.mark.asyncio
async def test_incentives_and_redeem(client: AsyncClient, make_rider):
    rider = await make_rider(lifetime_points=600)

    resp = await client.get(f"/api/v1/riders/{rider.id}/incentives")
    assert resp.status_code == 200
    data = resp.json()
    assert data["tier"] == "SILVER"
    assert data["next_tier"] == "GOLD"
    assert data["points_to_next_tier"] == 900

    resp = await client.post(f"/api/v1/riders/{rider.id}/redeem", json={"points": 200})
    assert resp.status_code == 200
    assert resp.json() == {
        "points_redeemed": 200,
        "cash_value": 2.0,
        "remaining_points": 400,
    }

    resp = await client.post(f"/api/v1/riders/{rider.id}/redeem", json={"points": 50})
    assert resp.status_code == 422
    assert resp.json()["code"] == "INSUFFICIENT_POINTS"

    resp = await client.post(f"/api/v1/riders/{rider.id}/redeem", json={"points": 1000})
    assert resp.status_code == 422
    assert resp.json()["code"] == "INSUFFICIENT_BALANCE"


@pytest.mark.asyncio
async def test_trigger_cleanup(client: AsyncClient):
    report = CleanupReport(examined=3, cancelled=2, failed=1)
    with patch(
        "src.api.routes.admin.run_cleanup_cycle", AsyncMock(return_value=report)
    ):
        resp = await client.post("/api/v1/admin/cleanup")
    assert resp.status_code == 200
    assert resp.json() == {"examined": 3, "cancelled": 2, "failed": 1}


@pytest.mark.asyncio
async def test_rider_goes_online_and_is_assigned(client: AsyncClient, make_rider):
    rider = await make_rider(status=RiderStatus.OFFLINE, lat=None, lng=None)
    order = await _create_order(client)

    resp = await client.post(
        f"/api/v1/orders/{order['id']}/assign", json={"rider_id": rider.id}
    )
    assert resp.status_code == 409

    resp = await client.patch(
        f"/api/v1/riders/{rider.id}/status",
        json={"status": "ONLINE", "location": {"coordinates": [-0.1880, 5.6050]}},
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "id": rider.id,
        "status": "ONLINE",
        "location": {"lat": 5.605, "lng": -0.188},
    }

    resp = await client.get(f"/api/v1/orders/{order['id']}/available-riders")
    assert [r["id"] for r in resp.json()] == [rider.id]
    resp = await client.post(
        f"/api/v1/orders/{order['id']}/assign", json={"rider_id": rider.id}
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_rider_status_validation(client: AsyncClient, make_rider):
    rider = await make_rider(status=RiderStatus.OFFLINE, lat=None, lng=None)
    base = f"/api/v1/riders/{rider.id}/status"

    resp = await client.patch(base, json={"status": "ONLINE"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_INPUT"

    resp = await client.patch(base, json={"status": "ONLINE", "location": [200, 5]})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_COORDINATES"

    resp = await client.patch(base, json={"status": "NAPPING"})
    assert resp.status_code == 422

    resp = await client.patch("/api/v1/riders/999/status", json={"status": "OFFLINE"})
    assert resp.status_code == 404
