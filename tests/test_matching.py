"""Unit tests for the nearest-driver search primitives."""

import h3
import pytest

from ridehail.domain.distance import haversine_km
from ridehail.domain.entities import Driver, Location
from ridehail.domain.enums import DriverStatus, DriverVerifyStatus
from ridehail.domain.matching import (
    covering_cells,
    location_cell,
    rank_nearby,
    ring_size,
)

CENTER = Location(31.23, 121.47)


def driver(id, lat, lng, **kwargs) -> Driver:
    kwargs.setdefault("status", DriverStatus.ONLINE)
    kwargs.setdefault("verify_status", DriverVerifyStatus.APPROVED)
    return Driver(id=id, location=Location(lat, lng), **kwargs)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(CENTER, CENTER) == 0.0

    def test_known_distance(self):
        # People's Square -> Wujiaochang ~8.3 km
        d = haversine_km(CENTER, Location(31.30, 121.50))
        assert 8.0 < d < 8.6

    def test_symmetric(self):
        a, b = Location(19.0, 72.0), Location(20.0, 73.0)
        assert abs(haversine_km(a, b) - haversine_km(b, a)) < 1e-9

    def test_antipodal_points(self):
        d = haversine_km(Location(0.0, 0.0), Location(0.0, 180.0))
        assert d == pytest.approx(20015.1, rel=1e-4)


class TestH3Covering:
    def test_nearby_points_same_cell(self):
        """Two points ~15 m apart share a res-7 cell."""
        assert location_cell(CENTER) == location_cell(Location(31.2301, 121.4701))

    def test_ring_grows_with_radius(self):
        assert ring_size(1.0) < ring_size(5.0) < ring_size(20.0)

    def test_covering_contains_every_point_in_radius(self):
        cells = covering_cells(CENTER, 5.0)
        # sample the disc boundary at 4.99 km in eight directions
        for dlat, dlng in [(1, 0), (-1, 0), (0, 1), (0, -1), (1, 1), (1, -1), (-1, 1), (-1, -1)]:
            lat = CENTER.latitude + dlat * 4.99 / 111.2 / (2 ** 0.5 if dlng else 1)
            lng = CENTER.longitude + dlng * 4.99 / (111.2 * 0.855) / (2 ** 0.5 if dlat else 1)
            point = Location(lat, lng)
            assert haversine_km(CENTER, point) < 5.0
            assert location_cell(point) in cells

    def test_covering_is_a_grid_disk(self):
        cells = covering_cells(CENTER, 2.0)
        k = ring_size(2.0)
        assert cells == set(h3.grid_disk(location_cell(CENTER), k))

    def test_too_wide_falls_back_to_scan(self):
        assert covering_cells(CENTER, 500.0) is None


class TestRankNearby:
    def test_excludes_out_of_radius(self):
        near = driver(1, 31.231, 121.471)
        far = driver(2, 31.40, 121.47)  # ~19 km north
        assert rank_nearby([near, far], CENTER, 5.0, 10) == [near]

    def test_excludes_undispatchable(self):
        ok = driver(1, 31.231, 121.471)
        offline = driver(2, 31.231, 121.471, status=DriverStatus.OFFLINE)
        busy = driver(3, 31.231, 121.471, status=DriverStatus.BUSY)
        pending = driver(4, 31.231, 121.471, verify_status=DriverVerifyStatus.PENDING)
        assert rank_nearby([ok, offline, busy, pending], CENTER, 5.0, 10) == [ok]

    def test_orders_by_rating_then_completed_then_distance(self):
        top = driver(1, 31.26, 121.47, rating=4.9)
        veteran = driver(2, 31.25, 121.47, rating=4.8, completed_orders=50)
        close = driver(3, 31.231, 121.47, rating=4.8, completed_orders=10)
        far = driver(4, 31.24, 121.47, rating=4.8, completed_orders=10)
        ranked = rank_nearby([far, close, veteran, top], CENTER, 5.0, 10)
        assert [d.id for d in ranked] == [1, 2, 3, 4]

    def test_limit(self):
        drivers = [driver(i, 31.23 + i * 0.001, 121.47) for i in range(1, 6)]
        assert len(rank_nearby(drivers, CENTER, 5.0, 3)) == 3

    def test_empty_is_valid(self):
        assert rank_nearby([], CENTER, 5.0, 10) == []

    def test_radius_boundary_is_inclusive(self):
        d = driver(1, 31.25, 121.47)
        exact = haversine_km(CENTER, d.location)
        assert rank_nearby([d], CENTER, exact, 10) == [d]
        assert rank_nearby([d], CENTER, exact - 0.001, 10) == []
