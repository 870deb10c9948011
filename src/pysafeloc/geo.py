"""Great-circle distance and coordinate formatting."""

from __future__ import annotations

import math

from pysafeloc._constants import COORDINATE_TEXT_PRECISION, EARTH_RADIUS_KM
from pysafeloc.models.position import Coordinate


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in kilometres between two WGS84 points.

    Symmetric in its arguments and exactly ``0.0`` for identical points.
    """
    if lat1 == lat2 and lng1 == lng2:
        return 0.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push ``a`` marginally past 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: Coordinate, b: Coordinate) -> float:
    return distance_km(a.latitude, a.longitude, b.latitude, b.longitude)


def format_coordinates(latitude: float, longitude: float, precision: int = COORDINATE_TEXT_PRECISION) -> str:
    """``"28.6139, 77.2090"`` style text used when no address is known."""
    return f"{latitude:.{precision}f}, {longitude:.{precision}f}"


def format_distance(km: float) -> str:
    return f"{km:.1f} km"
