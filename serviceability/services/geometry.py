"""Geometry kernel: spherical containment tests and distances

Every containment decision in the engine goes through these functions, so
they must stay pure and deterministic. Coordinates are WGS-84 decimal degrees
as (lat, lng) pairs.
"""

import math
from typing import NamedTuple, Sequence, Tuple

# Mean Earth radius in meters
EARTH_RADIUS_M = 6_371_000.0


class LatLng(NamedTuple):
    """A latitude/longitude pair in decimal degrees"""
    lat: float
    lng: float


def haversine_distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """
    Great-circle distance between two points

    Args:
        a, b: (lat, lng) pairs in degrees

    Returns:
        Distance in meters
    """
    lat1, lng1 = math.radians(a[0]), math.radians(a[1])
    lat2, lng2 = math.radians(b[0]), math.radians(b[1])

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Clamp to guard against rounding pushing h past 1.0 for antipodal points
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


def point_in_circle(point: Tuple[float, float], center: Tuple[float, float], radius_m: float) -> bool:
    """True iff the point lies within radius_m meters of center (boundary inclusive)"""
    return haversine_distance(point, center) <= radius_m


def _edges(ring: Sequence[Tuple[float, float]]):
    """Yield ring edges, closing the ring implicitly if the caller did not"""
    count = len(ring)
    for i in range(count - 1):
        yield ring[i], ring[i + 1]
    if count > 1 and tuple(ring[0]) != tuple(ring[-1]):
        yield ring[-1], ring[0]


def _crossing_latitude(a: Tuple[float, float], b: Tuple[float, float], lng: float) -> float:
    """Latitude (degrees) where the great circle through a and b meets meridian lng"""
    lat1, lng1 = math.radians(a[0]), math.radians(a[1])
    lat2, lng2 = math.radians(b[0]), math.radians(b[1])
    lng0 = math.radians(lng)

    numerator = (
        math.sin(lat1) * math.cos(lat2) * math.sin(lng0 - lng2)
        - math.sin(lat2) * math.cos(lat1) * math.sin(lng0 - lng1)
    )
    denominator = math.cos(lat1) * math.cos(lat2) * math.sin(lng1 - lng2)
    # Callers only pass edges straddling lng, so lng1 != lng2 and denominator != 0
    return math.degrees(math.atan(numerator / denominator))


def point_in_polygon(point: Tuple[float, float], ring: Sequence[Tuple[float, float]]) -> bool:
    """
    Spherical ray casting

    Casts a meridian arc northward from the point and counts how many ring
    edges (great-circle segments) it crosses; an odd count means inside.
    Rings spanning the antimeridian or enclosing a pole are not supported.

    Args:
        point: (lat, lng) to test
        ring: closed ring of (lat, lng) vertices

    Returns:
        True if the point is inside the ring
    """
    if len(ring) < 3:
        return False

    lat, lng = point[0], point[1]
    inside = False

    for a, b in _edges(ring):
        # Half-open test so a vertex on the meridian is counted exactly once
        if (a[1] > lng) == (b[1] > lng):
            continue
        if _crossing_latitude(a, b, lng) > lat:
            inside = not inside

    return inside


def polygon_area(ring: Sequence[Tuple[float, float]]) -> float:
    """Approximate area of a ring on the sphere, in square meters"""
    if len(ring) < 3:
        return 0.0

    total = 0.0
    for a, b in _edges(ring):
        dlng = math.radians(b[1] - a[1])
        total += dlng * (2 + math.sin(math.radians(a[0])) + math.sin(math.radians(b[0])))

    return abs(total) * EARTH_RADIUS_M ** 2 / 2.0


def circle_area(radius_m: float) -> float:
    """Area of a spherical cap with the given surface radius, in square meters"""
    if radius_m <= 0:
        return 0.0
    return 2 * math.pi * EARTH_RADIUS_M ** 2 * (1 - math.cos(radius_m / EARTH_RADIUS_M))


def destination_point(origin: Tuple[float, float], bearing_deg: float, distance_m: float) -> LatLng:
    """Point reached by travelling distance_m from origin along an initial bearing"""
    lat1 = math.radians(origin[0])
    lng1 = math.radians(origin[1])
    bearing = math.radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(angular)
        + math.cos(lat1) * math.sin(angular) * math.cos(bearing)
    )
    lng2 = lng1 + math.atan2(
        math.sin(bearing) * math.sin(angular) * math.cos(lat1),
        math.cos(angular) - math.sin(lat1) * math.sin(lat2),
    )
    return LatLng(math.degrees(lat2), math.degrees(lng2))
