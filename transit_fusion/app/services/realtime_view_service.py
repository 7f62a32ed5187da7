from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from transit_fusion.app.services.active_services import local_zone
from transit_fusion.app.services.feed_cache import RealtimeFeedCache
from transit_fusion.app.services.schedule_indexer import ScheduleRepository
from transit_fusion.domain.algorithms.alerts import (
    active_alerts,
    derive_operational_warnings,
    normalize_alerts,
)
from transit_fusion.domain.algorithms.vehicle_resolution import (
    DEFAULT_MATCH_RADIUS_M,
    HourWindow,
    ResolutionReport,
    resolve_vehicles,
)
from transit_fusion.domain.exceptions import UnknownRoute
from transit_fusion.domain.models.geo import Polyline
from transit_fusion.domain.models.gtfs import Route, StaticIndex, Stop
from transit_fusion.domain.models.realtime import (
    AlertEntity,
    FeedKind,
    OperationalWarning,
    ResolvedVehicle,
    ServiceAlert,
    TripUpdate,
    VehiclePosition,
)


@dataclass(frozen=True, slots=True)
class VehiclesView:
    vehicles: tuple[ResolvedVehicle, ...]
    report: ResolutionReport
    fetched_at: datetime | None
    is_stale: bool
    is_fresh: bool


@dataclass(slots=True)
class RealtimeViewService:
    """Supports the realtime map view.

    - Lists transit routes/lines from the static index.
    - Returns every shape variant and the stops of a route.
    - Returns vehicles with a resolved route (trip, route id, or geometry).
    - Returns active service alerts and derived operational warnings.
    """

    repository: ScheduleRepository
    feeds: RealtimeFeedCache
    timezone: str | None = None
    unreliable_window: HourWindow = field(default_factory=HourWindow)
    match_radius_m: float = DEFAULT_MATCH_RADIUS_M
    stale_after_s: float = 300.0
    fresh_within_s: float = 180.0
    clock: Callable[[], float] = time.time

    def _route(self, index: StaticIndex, route: str) -> Route:
        found = index.route_by_display_name(route)
        if found is None:
            raise UnknownRoute(route)
        return found

    def list_routes(self) -> tuple[Route, ...]:
        index = self.repository.current()
        routes = list(index.routes_by_id.values())
        routes.sort(key=lambda r: (r.short_name or "", r.long_name or "", r.route_id))
        return tuple(routes)

    def route_shapes(self, *, route: str) -> tuple[Polyline, ...]:
        index = self.repository.current()
        return index.route_polylines.get(self._route(index, route).route_id, ())

    def route_stops(self, *, route: str) -> tuple[Stop, ...]:
        """Return unique stops served by trips of a route.

        Ordered by name; intended for map markers.
        """

        index = self.repository.current()
        route_id = self._route(index, route).route_id

        stop_ids: set[str] = set()
        for trip_id in index.route_trip_ids.get(route_id, ()):
            stop_ids.update(index.trip_stop_sequence.get(trip_id, ()))

        stops = [index.stops_by_id[sid] for sid in stop_ids if sid in index.stops_by_id]
        stops.sort(key=lambda s: (s.name, s.stop_id))
        return tuple(stops)

    async def list_vehicles(self, *, routes: set[str] | None = None) -> VehiclesView:
        index = self.repository.current()
        snapshot = await self.feeds.get_or_none(FeedKind.VEHICLE_POSITIONS)
        if snapshot is None:
            return VehiclesView(
                vehicles=(),
                report=ResolutionReport(),
                fetched_at=None,
                is_stale=False,
                is_fresh=False,
            )

        now_epoch = self.clock()
        local_now = datetime.fromtimestamp(
            now_epoch, tz=local_zone(index, self.timezone)
        )
        vehicles, report = resolve_vehicles(
            (v for v in snapshot.payload if isinstance(v, VehiclePosition)),
            index=index,
            local_now=local_now,
            unreliable_window=self.unreliable_window,
            max_distance_m=self.match_radius_m,
        )
        if routes:
            vehicles = tuple(
                v for v in vehicles if v.route_name in routes or v.route_id in routes
            )

        return VehiclesView(
            vehicles=vehicles,
            report=report,
            fetched_at=datetime.fromtimestamp(
                snapshot.generated_at or snapshot.decoded_at, tz=local_now.tzinfo
            ),
            is_stale=snapshot.is_stale(now_epoch, stale_after_s=self.stale_after_s),
            is_fresh=snapshot.is_fresh(now_epoch, fresh_within_s=self.fresh_within_s),
        )

    async def alerts(self, *, route: str | None = None) -> tuple[ServiceAlert, ...]:
        snapshot = await self.feeds.get_or_none(FeedKind.ALERTS)
        if snapshot is None:
            return ()
        index = self.repository.current()
        entities = (a for a in snapshot.payload if isinstance(a, AlertEntity))
        alerts = active_alerts(normalize_alerts(entities, index), at_epoch=self.clock())
        if route is not None:
            name = index.display_name(self._route(index, route).route_id)
            alerts = tuple(a for a in alerts if name in a.affected_routes)
        return alerts

    async def operational_warnings(self) -> tuple[OperationalWarning, ...]:
        snapshot = await self.feeds.get_or_none(FeedKind.TRIP_UPDATES)
        if snapshot is None:
            return ()
        return derive_operational_warnings(
            (u for u in snapshot.payload if isinstance(u, TripUpdate)),
            self.repository.current(),
        )
