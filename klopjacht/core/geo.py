"""Great-circle helpers for player and target coordinates."""

from math import atan2, cos, radians, sin, sqrt
from typing import Protocol

EARTH_RADIUS_M = 6_371_000


class HasCoordinates(Protocol):
    latitude: float | None
    longitude: float | None


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return distance in metres using the haversine formula."""
    d_lat = radians(lat2 - lat1)
    d_lon = radians(lon2 - lon1)
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    a = sin(d_lat / 2) ** 2 + cos(phi1) * cos(phi2) * sin(d_lon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_within_radius(point: HasCoordinates | None, target: HasCoordinates, radius_meters: float) -> bool:
    """True iff `point` lies within `radius_meters` of `target`. A point without coordinates never does."""
    if point is None or point.latitude is None or point.longitude is None:
        return False
    return distance_meters(point.latitude, point.longitude, target.latitude, target.longitude) <= radius_meters
