"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Any, Sequence

from shapely.geometry import Point, box

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def is_valid_coordinate(value: Any) -> bool:
    """Return True for a finite (lat, lon) pair inside the WGS84 range."""

    if value is None or isinstance(value, (str, bytes)):
        return False
    try:
        if len(value) != 2:
            return False
        lat, lon = float(value[0]), float(value[1])
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lon) or math.isinf(lat) or math.isinf(lon):
        return False
    return abs(lat) <= 90 and abs(lon) <= 180


def point_in_bbox(lat: float, lon: float, bbox: Sequence[float]) -> bool:
    """Return True if the point lies within a (west, south, east, north) box, edges included."""

    west, south, east, north = bbox
    return box(west, south, east, north).covers(Point(lon, lat))
