"""
Great-circle distance on a spherical Earth (mean radius 6371 km).

Nearby-driver search and fare estimates both measure straight-line
(haversine) distance; road distances, when known, arrive from the driver
app at trip completion.
"""

from __future__ import annotations

import math

from .entities import Location

EARTH_RADIUS_KM = 6_371.0


def haversine_km(origin: Location, target: Location) -> float:
    """Return the great-circle distance in **km** between two locations."""
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(target.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(target.longitude - origin.longitude)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # rounding can push a a hair above 1.0 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))
