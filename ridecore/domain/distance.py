"""
Distance calculation using the Haversine formula.

Assumption
----------
Trip distance is the great-circle distance along the ordered stops
(pickup -> first drop -> second drop ...), not a road distance.  A routing
service client could replace :func:`haversine_km` without touching callers.

Complexity: O(n) in the number of stops.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from .errors import ValidationError

EARTH_RADIUS_KM = 6_371.0
DISTANCE_QUANTUM = Decimal("0.001")


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


def validate_coordinates(coordinates: Sequence[float]) -> tuple[float, float]:
    """Check a ``[lng, lat]`` pair and return it as floats."""
    if coordinates is None or len(coordinates) != 2:
        raise ValidationError("Coordinates must be a [lng, lat] pair")
    try:
        lng, lat = float(coordinates[0]), float(coordinates[1])
    except (TypeError, ValueError):
        raise ValidationError("Coordinates must be numbers") from None
    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise ValidationError("Coordinates must be finite numbers")
    if not (-180 <= lng <= 180 and -90 <= lat <= 90):
        raise ValidationError("Coordinates out of range")
    return lng, lat


def distance_km(origin: Sequence[float], destination: Sequence[float]) -> float:
    """Great-circle distance between two ``[lng, lat]`` pairs."""
    lng1, lat1 = validate_coordinates(origin)
    lng2, lat2 = validate_coordinates(destination)
    return haversine_km(lat1, lng1, lat2, lng2)


def trip_distance_km(
    pickup: Sequence[float], drops: Iterable[Sequence[float]]
) -> Decimal:
    """
    Sum of consecutive legs pickup -> D1 -> D2 ... -> Dn, rounded to 3 dp.

    Only the final sum is rounded; individual legs are kept at full
    precision.
    """
    stops = [pickup, *drops]
    if len(stops) < 2:
        raise ValidationError("At least one drop point is required")
    total = sum(
        distance_km(stops[i], stops[i + 1]) for i in range(len(stops) - 1)
    )
    return Decimal(repr(total)).quantize(DISTANCE_QUANTUM, rounding=ROUND_HALF_UP)
