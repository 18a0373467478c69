"""
Distance calculation using the Haversine formula.

Assumption
----------
We use great-circle (Haversine) distance instead of a real routing engine
to keep fee quotes deterministic and free of external API calls.  Fees are
therefore computed on straight-line distance, not road distance.

Input shapes
------------
Clients send locations in several shapes; all are normalised to a single
``Coordinate`` before use:

* ``[lng, lat]`` array / tuple
* ``{"lat": .., "lng": ..}``
* ``{"coordinates": [lng, lat]}`` (GeoJSON point, ``type`` optional)
* ``{"coordinates": {"lat": .., "lng": ..}}``

A location that cannot be normalised raises ``InvalidCoordinateError``.
Nothing is ever defaulted to ``(0, 0)``.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .errors import InvalidCoordinateError

EARTH_RADIUS_KM = 6_371.0


@dataclass(frozen=True)
class Coordinate:
    longitude: float
    latitude: float


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def _component(value: Any, name: str, bound: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCoordinateError(f"{name} must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number) or not -bound <= number <= bound:
        raise InvalidCoordinateError(
            f"{name} must be within [-{bound:g}, {bound:g}], got {value!r}"
        )
    return number


def _from_pair(pair: Sequence[Any]) -> Coordinate:
    if len(pair) != 2:
        raise InvalidCoordinateError(
            f"Expected [longitude, latitude], got {len(pair)} values"
        )
    return Coordinate(
        longitude=_component(pair[0], "longitude", 180),
        latitude=_component(pair[1], "latitude", 90),
    )


def _from_lat_lng(point: Mapping[str, Any]) -> Coordinate:
    return Coordinate(
        longitude=_component(point["lng"], "longitude", 180),
        latitude=_component(point["lat"], "latitude", 90),
    )


def normalize_coordinate(raw: Any) -> Coordinate:
    """Turn any accepted location shape into a validated ``Coordinate``."""
    if isinstance(raw, Coordinate):
        return Coordinate(
            longitude=_component(raw.longitude, "longitude", 180),
            latitude=_component(raw.latitude, "latitude", 90),
        )
    if isinstance(raw, (list, tuple)):
        return _from_pair(raw)
    if isinstance(raw, Mapping):
        if "lat" in raw and "lng" in raw:
            return _from_lat_lng(raw)
        nested = raw.get("coordinates")
        if isinstance(nested, (list, tuple)):
            return _from_pair(nested)
        if isinstance(nested, Mapping) and "lat" in nested and "lng" in nested:
            return _from_lat_lng(nested)
    raise InvalidCoordinateError(
        "Invalid coordinates format. Expected {lat, lng} or [longitude, latitude]"
    )


def distance_km(a: Any, b: Any) -> float:
    """Haversine distance between two locations in any accepted shape."""
    p1 = normalize_coordinate(a)
    p2 = normalize_coordinate(b)
    return haversine_km(p1.latitude, p1.longitude, p2.latitude, p2.longitude)
