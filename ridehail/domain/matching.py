"""
Nearest-Driver Search
=====================

1. **Spatial Binning** -- each driver location is mapped to an H3 hexagon
   (resolution 7 by default, ~1.4 km edge) when the driver reports it.
2. **Cell Covering**   -- a query point's cell is expanded to a k-ring that
   is guaranteed to contain every point within the search radius.
3. **Exact Filter**    -- candidates from those cells are filtered by
   haversine distance and ranked.

Covering radius
---------------
A k-ring's inradius is roughly ``1.5 x k x edge``.  Cell size varies over
the globe, so the edge length used is half the resolution's average, and two
extra rings absorb the offset between the query point and its cell centre:

    k = ceil(radius / (0.75 x avg_edge)) + 2

When k exceeds ``max_ring`` the covering is skipped and the caller scans
every dispatchable driver instead; results are identical, only cost differs.

Ranking
-------
rating desc, completed orders desc, distance asc.

Complexity
----------
Covering: O(k^2) cells.  Filter + rank: O(m log m) for m candidates.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

import h3

from .distance import haversine_km
from .entities import Driver, Location, is_dispatchable


def location_cell(location: Location, resolution: int = 7) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(location.latitude, location.longitude, resolution)


def ring_size(radius_km: float, resolution: int = 7) -> int:
    edge = h3.average_hexagon_edge_length(resolution, unit="km")
    return math.ceil(radius_km / (0.75 * edge)) + 2


def covering_cells(
    center: Location,
    radius_km: float,
    resolution: int = 7,
    max_ring: int = 25,
) -> Optional[set[str]]:
    """Cells covering the search disc, or ``None`` if it is too wide to bin."""
    k = ring_size(radius_km, resolution)
    if k > max_ring:
        return None
    return set(h3.grid_disk(location_cell(center, resolution), k))


def rank_nearby(
    drivers: Iterable[Driver],
    center: Location,
    radius_km: float,
    limit: int,
) -> list[Driver]:
    """
    Keep online, approved drivers within *radius_km* of *center*, best first.

    Pure function: *drivers* may be any superset of the real candidates.
    """
    in_range: list[tuple[Driver, float]] = []
    for driver in drivers:
        if not is_dispatchable(driver):
            continue
        distance = haversine_km(center, driver.location)
        if distance <= radius_km:
            in_range.append((driver, distance))

    in_range.sort(key=lambda pair: (-pair[0].rating, -pair[0].completed_orders, pair[1]))
    return [driver for driver, _ in in_range[:limit]]
