"""Great-circle distance and geofence containment.

All distances use the haversine formula on a spherical Earth. At city scale
the error against an ellipsoidal model stays well under one percent, which is
below GPS jitter for the radii a Spot supports.
"""

from __future__ import annotations

import math

from spotit.domain.spots.exceptions import InvalidCoordinate, MalformedSpot
from spotit.domain.spots.models import Location

EARTH_RADIUS_M = 6_371_000


def validate_coordinate(lat: float, lon: float) -> Location:
    """Return a Location or raise InvalidCoordinate for NaN/out-of-range input."""
    if isinstance(lat, bool) or isinstance(lon, bool):
        raise InvalidCoordinate("coordinate_not_numeric")
    try:
        lat_f = float(lat)
        lon_f = float(lon)
    except (TypeError, ValueError) as exc:
        raise InvalidCoordinate("coordinate_not_numeric") from exc
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        raise InvalidCoordinate("coordinate_not_finite")
    if not -90.0 <= lat_f <= 90.0:
        raise InvalidCoordinate("latitude_out_of_range")
    if not -180.0 <= lon_f <= 180.0:
        raise InvalidCoordinate("longitude_out_of_range")
    return Location(latitude=lat_f, longitude=lon_f)


def _checked(point: Location) -> Location:
    return validate_coordinate(point.latitude, point.longitude)


def haversine_m(a: Location, b: Location) -> float:
    """Return the great-circle distance between two points in meters."""
    a = _checked(a)
    b = _checked(b)
    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def validate_radius(radius_m: float) -> float:
    if isinstance(radius_m, bool) or not isinstance(radius_m, (int, float)):
        raise MalformedSpot("radius_not_numeric")
    if not math.isfinite(radius_m) or radius_m <= 0:
        raise MalformedSpot("radius_not_positive")
    return float(radius_m)


def within_radius(point: Location, center: Location, radius_m: float) -> bool:
    """True when ``point`` lies inside or on the circle around ``center``."""
    return haversine_m(point, center) <= validate_radius(radius_m)
