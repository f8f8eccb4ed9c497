"""Geodesic helpers for recorded waypoints."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from polyline import encode as polyline_encode
from pyproj import Geod

from .models import GeoPoint, SavedLocation

# WGS84 reference ellipsoid, the datum GPS fixes are reported in.
_GEOD = Geod(ellps="WGS84")


def geodesic_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Return the shortest surface distance in metres between two points.

    Args:
        a: First point.
        b: Second point.

    Returns:
        Distance along the WGS84 ellipsoid in metres (always >= 0).
    """

    if a == b:
        return 0.0
    # pyproj takes longitude first.
    _, _, distance = _GEOD.inv(a.longitude, a.latitude, b.longitude, b.latitude)
    return abs(float(distance))


def offset_point(origin: GeoPoint, azimuth_deg: float, distance_m: float) -> GeoPoint:
    """Return the point ``distance_m`` metres from ``origin`` along ``azimuth_deg``."""

    lon, lat, _ = _GEOD.fwd(origin.longitude, origin.latitude, azimuth_deg, distance_m)
    return GeoPoint(latitude=float(lat), longitude=float(lon))


def polyline_length_m(points: Sequence[GeoPoint]) -> float:
    """Sum of the distances between consecutive points."""

    total = 0.0
    for current, following in zip(points, points[1:]):
        total += geodesic_distance_m(current, following)
    return total


def encode_route(locations: Iterable[SavedLocation]) -> Optional[str]:
    """Encode waypoints as a Google polyline string (``None`` below 2 points)."""

    coords: List[tuple[float, float]] = [loc.position.as_tuple() for loc in locations]
    if len(coords) < 2:
        return None
    return polyline_encode(coords)


__all__ = [
    "geodesic_distance_m",
    "offset_point",
    "polyline_length_m",
    "encode_route",
]
