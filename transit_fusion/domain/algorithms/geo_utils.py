from __future__ import annotations

import math
from typing import Iterable

from transit_fusion.domain.models.geo import GeoPoint, Polyline

EARTH_RADIUS_M = 6371000.0


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""

    lat1 = math.radians(a.lat)
    lon1 = math.radians(a.lon)
    lat2 = math.radians(b.lat)
    lon2 = math.radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    s = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(math.sqrt(s))


def _to_local_xy(origin: GeoPoint, p: GeoPoint) -> tuple[float, float]:
    # Equirectangular projection centred on origin; accurate at street scale.
    k = math.pi / 180.0 * EARTH_RADIUS_M
    x = (p.lon - origin.lon) * k * math.cos(math.radians(origin.lat))
    y = (p.lat - origin.lat) * k
    return x, y


def distance_to_segment_m(p: GeoPoint, a: GeoPoint, b: GeoPoint) -> float:
    """Shortest distance from p to the segment a-b, in meters."""

    ax, ay = _to_local_xy(p, a)
    bx, by = _to_local_xy(p, b)
    dx = bx - ax
    dy = by - ay
    seg_len2 = dx * dx + dy * dy
    if seg_len2 <= 0.0:
        return math.hypot(ax, ay)

    # p sits at the origin of the local frame.
    t = max(0.0, min(1.0, -(ax * dx + ay * dy) / seg_len2))
    cx = ax + t * dx
    cy = ay + t * dy
    return math.hypot(cx, cy)


def distance_to_polyline_m(p: GeoPoint, points: Polyline) -> float:
    if not points:
        return float("inf")
    if len(points) == 1:
        return haversine_distance_m(p, points[0])
    return min(distance_to_segment_m(p, a, b) for a, b in zip(points, points[1:]))


def nearest_polyline(
    p: GeoPoint, candidates: Iterable[tuple[str, Polyline]]
) -> tuple[str, float] | None:
    """Return (key, distance_m) of the closest polyline, or None if there are none."""

    best_key: str | None = None
    best_d = float("inf")
    for key, points in candidates:
        d = distance_to_polyline_m(p, points)
        if d < best_d:
            best_d = d
            best_key = key
    if best_key is None:
        return None
    return best_key, best_d
