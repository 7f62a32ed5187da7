from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator

from transit_fusion.domain.algorithms.geo_utils import nearest_polyline
from transit_fusion.domain.models.geo import GeoPoint, Polyline
from transit_fusion.domain.models.gtfs import StaticIndex
from transit_fusion.domain.models.realtime import (
    ResolutionMethod,
    ResolvedVehicle,
    VehiclePosition,
)

logger = logging.getLogger(__name__)

DEFAULT_MATCH_RADIUS_M = 100.0


@dataclass(frozen=True, slots=True)
class HourWindow:
    """Local clock window [start_hour, end_hour), wrapping past midnight."""

    start_hour: int = 22
    end_hour: int = 6

    def contains(self, moment: datetime) -> bool:
        h = moment.hour
        if self.start_hour == self.end_hour:
            return False
        if self.start_hour < self.end_hour:
            return self.start_hour <= h < self.end_hour
        return h >= self.start_hour or h < self.end_hour


@dataclass(frozen=True, slots=True)
class ResolutionReport:
    by_trip: int = 0
    by_route: int = 0
    by_geometry: int = 0
    dropped: int = 0


def _all_polylines(index: StaticIndex) -> Iterator[tuple[str, Polyline]]:
    for route_id, variants in index.route_polylines.items():
        for points in variants:
            yield route_id, points


def _route_for(
    vehicle: VehiclePosition,
    *,
    index: StaticIndex,
    local_now: datetime,
    unreliable_window: HourWindow,
    max_distance_m: float,
) -> tuple[str, ResolutionMethod] | None:
    if vehicle.trip_id:
        route_id = index.trip_to_route.get(vehicle.trip_id)
        if route_id:
            return route_id, ResolutionMethod.TRIP

    if vehicle.route_id and vehicle.route_id in index.routes_by_id:
        return vehicle.route_id, ResolutionMethod.ROUTE

    # Upstream drops trip ids overnight; only then is a geometric guess safe.
    if not unreliable_window.contains(local_now):
        return None

    try:
        position = GeoPoint(lat=vehicle.lat, lon=vehicle.lon)
    except ValueError:
        return None

    match = nearest_polyline(position, _all_polylines(index))
    if match is None:
        return None
    route_id, distance_m = match
    if distance_m > max_distance_m:
        return None
    return route_id, ResolutionMethod.GEOMETRY


def resolve_vehicle(
    vehicle: VehiclePosition,
    *,
    index: StaticIndex,
    local_now: datetime,
    unreliable_window: HourWindow = HourWindow(),
    max_distance_m: float = DEFAULT_MATCH_RADIUS_M,
) -> ResolvedVehicle | None:
    """Attach a route to a raw vehicle record, or return None to drop it.

    Resolution order: trip id, explicit route id, then (only inside the
    unreliable-identifiers window) the nearest route shape within
    ``max_distance_m``.
    """

    found = _route_for(
        vehicle,
        index=index,
        local_now=local_now,
        unreliable_window=unreliable_window,
        max_distance_m=max_distance_m,
    )
    if found is None:
        logger.debug(
            "Dropping vehicle %s: no route (trip=%r route=%r)",
            vehicle.vehicle_id,
            vehicle.trip_id,
            vehicle.route_id,
        )
        return None

    route_id, method = found
    trip = index.trips_by_id.get(vehicle.trip_id) if vehicle.trip_id else None
    return ResolvedVehicle(
        vehicle_id=vehicle.vehicle_id,
        route_id=route_id,
        route_name=index.display_name(route_id),
        lat=vehicle.lat,
        lon=vehicle.lon,
        method=method,
        trip_id=vehicle.trip_id,
        bearing=vehicle.bearing,
        speed_mps=vehicle.speed_mps,
        timestamp=vehicle.timestamp,
        label=vehicle.label,
        occupancy_status=vehicle.occupancy_status,
        headsign=trip.headsign if trip is not None else None,
    )


def resolve_vehicles(
    vehicles: Iterable[VehiclePosition],
    *,
    index: StaticIndex,
    local_now: datetime,
    unreliable_window: HourWindow = HourWindow(),
    max_distance_m: float = DEFAULT_MATCH_RADIUS_M,
) -> tuple[tuple[ResolvedVehicle, ...], ResolutionReport]:
    out: list[ResolvedVehicle] = []
    counts = {m: 0 for m in ResolutionMethod}
    dropped = 0
    for v in vehicles:
        resolved = resolve_vehicle(
            v,
            index=index,
            local_now=local_now,
            unreliable_window=unreliable_window,
            max_distance_m=max_distance_m,
        )
        if resolved is None:
            dropped += 1
            continue
        counts[resolved.method] += 1
        out.append(resolved)

    report = ResolutionReport(
        by_trip=counts[ResolutionMethod.TRIP],
        by_route=counts[ResolutionMethod.ROUTE],
        by_geometry=counts[ResolutionMethod.GEOMETRY],
        dropped=dropped,
    )
    return tuple(out), report
