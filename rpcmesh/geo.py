"""Great-circle distance between coordinates."""

from __future__ import annotations

import math

EARTH_RADIUS_METERS = 6378100.0


def _hsin(theta: float) -> float:
    return math.sin(theta / 2) ** 2


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in metres between two points given in degrees."""
    la1, lo1, la2, lo2 = (math.radians(v) for v in (lat1, lon1, lat2, lon2))
    h = _hsin(la2 - la1) + math.cos(la1) * math.cos(la2) * _hsin(lo2 - lo1)
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(h))