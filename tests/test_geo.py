"""Tests for geodesic distance and polyline helpers."""

from __future__ import annotations

import pytest
from polyline import decode as polyline_decode

from route_tracker.geo import (
    encode_route,
    geodesic_distance_m,
    offset_point,
    polyline_length_m,
)
from route_tracker.models import GeoPoint

from conftest import make_location


def test_distance_along_equator_matches_ellipsoid_arc() -> None:
    a = GeoPoint(0.0, 0.0)
    b = GeoPoint(0.0, 0.001)
    # 0.001 deg of longitude on the WGS84 equator is ~111.32 m.
    assert geodesic_distance_m(a, b) == pytest.approx(111.3195, abs=1e-3)


def test_distance_is_zero_for_identical_points_and_symmetric() -> None:
    a = GeoPoint(41.0082, 28.9784)
    b = GeoPoint(39.9334, 32.8597)
    assert geodesic_distance_m(a, a) == 0.0
    assert geodesic_distance_m(a, b) == pytest.approx(geodesic_distance_m(b, a))
    # Istanbul -> Ankara, roughly 350 km.
    assert 340_000 < geodesic_distance_m(a, b) < 360_000


def test_offset_point_lands_at_requested_distance() -> None:
    origin = GeoPoint(52.52, 13.405)
    target = offset_point(origin, 45.0, 250.0)
    assert geodesic_distance_m(origin, target) == pytest.approx(250.0, abs=1e-6)


def test_polyline_length_sums_legs_not_straight_line() -> None:
    out_and_back = [GeoPoint(0.0, 0.0), GeoPoint(0.0, 0.001), GeoPoint(0.0, 0.0)]
    assert polyline_length_m(out_and_back) == pytest.approx(2 * 111.3195, abs=1e-2)
    assert polyline_length_m([GeoPoint(1.0, 1.0)]) == 0.0


def test_encode_route_needs_two_points() -> None:
    assert encode_route([]) is None
    assert encode_route([make_location(0.0, 0.0)]) is None

    encoded = encode_route(
        [make_location(41.0, 29.0), make_location(41.001, 29.002, seconds=30)]
    )
    assert isinstance(encoded, str)
    decoded = polyline_decode(encoded)
    assert decoded[0] == pytest.approx((41.0, 29.0))
    assert decoded[1] == pytest.approx((41.001, 29.002))
