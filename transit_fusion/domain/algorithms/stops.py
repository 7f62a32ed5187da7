from __future__ import annotations

from typing import Iterable

from transit_fusion.domain.algorithms.geo_utils import haversine_distance_m
from transit_fusion.domain.models.geo import GeoPoint
from transit_fusion.domain.models.gtfs import Route, Stop

DEFAULT_NEARBY_RADIUS_M = 500.0


def nearby_stops(
    origin: GeoPoint,
    stops: Iterable[Stop],
    *,
    radius_m: float = DEFAULT_NEARBY_RADIUS_M,
    limit: int | None = None,
) -> list[tuple[Stop, float]]:
    """Stops within ``radius_m`` of ``origin``, closest first."""

    found: list[tuple[Stop, float]] = []
    for stop in stops:
        d = haversine_distance_m(origin, stop.location)
        if d <= radius_m:
            found.append((stop, d))
    found.sort(key=lambda item: (item[1], item[0].stop_id))
    if limit is not None:
        return found[:limit]
    return found


def search_stops(query: str, stops: Iterable[Stop]) -> list[Stop]:
    q = query.strip().lower()
    if not q:
        return []
    hits = [
        s
        for s in stops
        if q in s.name.lower() or (s.code is not None and q == s.code.lower())
    ]
    hits.sort(key=lambda s: (not s.name.lower().startswith(q), s.name, s.stop_id))
    return hits


def search_routes(query: str, routes: Iterable[Route]) -> list[Route]:
    q = query.strip().lower()
    if not q:
        return []
    hits = []
    for r in routes:
        short = (r.short_name or "").lower()
        long_ = (r.long_name or "").lower()
        if q == short or q in short or q in long_:
            hits.append(r)
    # Exact short-name hits first ("2" should not be buried under "20", "21").
    hits.sort(key=lambda r: ((r.short_name or "").lower() != q, r.display_name))
    return hits
