"""
Rider Search
============

1. **Spatial Binning** -- every rider position is mapped to an H3 cell
   (resolution 8, ~0.74 km²) when it is stored.
2. **Candidate Cells**  -- the target point's cell plus enough rings
   (``grid_disk``) to cover the search radius.
3. **Exact Filter**     -- candidates inside those cells are kept when
   their Haversine distance is within the radius, nearest first.

Search radius: 3 km around the pickup for deliveries and shopping,
5 km around the delivery point for errands.

Riders whose location is unknown are never candidates.

Complexity
----------
Let R = available riders in the candidate cells.
* Cell expansion: O(k²) for k rings
* Filtering:      O(R log R) -- one Haversine call per rider plus a sort
"""

from __future__ import annotations

import math
from typing import Iterable

import h3

from .distance import Coordinate, haversine_km
from .entities import Rider
from .enums import OrderType


def rider_h3_cell(lat: float, lng: float, resolution: int = 8) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def search_cells(
    target: Coordinate, radius_km: float, resolution: int = 8
) -> set[str]:
    """H3 cells that together cover a disk of *radius_km* around *target*."""
    origin = rider_h3_cell(target.latitude, target.longitude, resolution)
    edge_km = h3.average_hexagon_edge_length(resolution, unit="km")
    # neighbouring cell centres are ~sqrt(3) edges apart; one extra ring
    # covers points near the boundary of the outermost cells
    rings = math.ceil(radius_km / (edge_km * math.sqrt(3))) + 1
    return set(h3.grid_disk(origin, rings))


def search_radius_for(
    order_type: OrderType,
    delivery_radius_km: float = 3.0,
    errand_radius_km: float = 5.0,
) -> float:
    return errand_radius_km if order_type is OrderType.ERRAND else delivery_radius_km


def nearby_riders(
    riders: Iterable[Rider], target: Coordinate, radius_km: float
) -> list[tuple[Rider, float]]:
    """Available riders within *radius_km* of *target*, nearest first."""
    found: list[tuple[Rider, float]] = []
    for rider in riders:
        if not rider.is_available or rider.location is None:
            continue
        d = haversine_km(
            target.latitude,
            target.longitude,
            rider.location.latitude,
            rider.location.longitude,
        )
        if d <= radius_km:
            found.append((rider, d))
    found.sort(key=lambda pair: pair[1])
    return found
