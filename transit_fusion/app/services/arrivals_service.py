from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable

from transit_fusion.app.services.active_services import (
    ActiveServiceResolver,
    local_zone,
)
from transit_fusion.app.services.feed_cache import RealtimeFeedCache
from transit_fusion.app.services.schedule_indexer import ScheduleRepository
from transit_fusion.domain.algorithms.arrival_fusion import (
    DEFAULT_FRESH_WITHIN_S,
    DEFAULT_GRACE_S,
    fuse_arrivals,
    timetable_for_stop,
)
from transit_fusion.domain.algorithms.service_calendar import services_on
from transit_fusion.domain.algorithms.stops import (
    DEFAULT_NEARBY_RADIUS_M,
    nearby_stops,
    search_routes,
    search_stops,
)
from transit_fusion.domain.exceptions import DateOutOfRange, UnknownStop
from transit_fusion.domain.models.arrival import MergedArrival, TimetableEntry
from transit_fusion.domain.models.geo import GeoPoint
from transit_fusion.domain.models.gtfs import (
    ActiveServiceSet,
    LoadReport,
    Route,
    StaticIndex,
    Stop,
)
from transit_fusion.domain.models.realtime import FeedKind, FeedSnapshot

logger = logging.getLogger(__name__)

TIMETABLE_MAX_OFFSET_DAYS = 7


@dataclass(frozen=True, slots=True)
class StopArrivals:
    stop: Stop
    arrivals: tuple[MergedArrival, ...]
    as_of: datetime
    realtime_available: bool
    feed_fresh: bool


@dataclass(frozen=True, slots=True)
class FavoriteArrivals:
    stop: Stop
    route_name: str
    arrivals: tuple[MergedArrival, ...]


@dataclass(frozen=True, slots=True)
class NearbyStop:
    stop: Stop
    distance_m: float
    route_names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class TransitStats:
    routes: int
    stops: int
    trips: int
    active_services: int
    vehicles: int | None
    report: LoadReport


def _matches_route(a: MergedArrival, route: str) -> bool:
    return route in (a.route_name, a.route_id)


@dataclass(slots=True)
class ArrivalsService:
    """Stop-centric reads: fused arrivals, favorites, timetables and lookup."""

    repository: ScheduleRepository
    services: ActiveServiceResolver
    feeds: RealtimeFeedCache
    timezone: str | None = None
    grace_s: float = DEFAULT_GRACE_S
    fresh_within_s: float = DEFAULT_FRESH_WITHIN_S
    clock: Callable[[], float] = time.time

    def local_now(self, index: StaticIndex | None = None) -> datetime:
        index = index or self.repository.current()
        return datetime.fromtimestamp(self.clock(), tz=local_zone(index, self.timezone))

    def _stop(self, index: StaticIndex, stop_id: str) -> Stop:
        stop = index.stops_by_id.get(stop_id)
        if stop is None:
            raise UnknownStop(stop_id)
        return stop

    def _fuse(
        self,
        stop_id: str,
        *,
        index: StaticIndex,
        active: ActiveServiceSet,
        trip_updates: FeedSnapshot | None,
        now: datetime,
    ) -> list[MergedArrival]:
        return fuse_arrivals(
            stop_id,
            index=index,
            active=active,
            trip_updates=trip_updates,
            now=now,
            grace_s=self.grace_s,
            fresh_within_s=self.fresh_within_s,
        )

    async def arrivals_for_stop(
        self, stop_id: str, *, route: str | None = None
    ) -> StopArrivals:
        index = self.repository.current()
        stop = self._stop(index, stop_id)
        now = self.local_now(index)
        active = self.services.resolve(now.date(), now=now)
        trip_updates = await self.feeds.get_or_none(FeedKind.TRIP_UPDATES)

        arrivals = self._fuse(
            stop_id, index=index, active=active, trip_updates=trip_updates, now=now
        )
        if route is not None:
            arrivals = [a for a in arrivals if _matches_route(a, route)]

        feed_fresh = trip_updates is not None and trip_updates.is_fresh(
            now.timestamp(), fresh_within_s=self.fresh_within_s
        )
        return StopArrivals(
            stop=stop,
            arrivals=tuple(arrivals),
            as_of=now,
            realtime_available=trip_updates is not None,
            feed_fresh=feed_fresh,
        )

    async def favorites(
        self, pairs: Iterable[tuple[str, str]]
    ) -> list[FavoriteArrivals]:
        """Fused arrivals for each saved (stop_id, route) pair, in input order.

        Pairs naming a stop that is no longer in the schedule are skipped.
        """

        index = self.repository.current()
        now = self.local_now(index)
        active = self.services.resolve(now.date(), now=now)
        trip_updates = await self.feeds.get_or_none(FeedKind.TRIP_UPDATES)

        by_stop: dict[str, list[MergedArrival]] = {}
        out: list[FavoriteArrivals] = []
        for stop_id, route in pairs:
            stop = index.stops_by_id.get(stop_id)
            if stop is None:
                logger.info("Favorite stop %s is not in the schedule", stop_id)
                continue
            if stop_id not in by_stop:
                by_stop[stop_id] = self._fuse(
                    stop_id,
                    index=index,
                    active=active,
                    trip_updates=trip_updates,
                    now=now,
                )
            out.append(
                FavoriteArrivals(
                    stop=stop,
                    route_name=route,
                    arrivals=tuple(
                        a for a in by_stop[stop_id] if _matches_route(a, route)
                    ),
                )
            )
        return out

    def timetable(
        self, stop_id: str, *, day: date | None = None, route: str | None = None
    ) -> list[TimetableEntry]:
        """Every scheduled arrival at a stop for one service day."""

        index = self.repository.current()
        self._stop(index, stop_id)
        now = self.local_now(index)
        day = day or now.date()
        offset = abs((day - now.date()).days)
        if offset > TIMETABLE_MAX_OFFSET_DAYS:
            raise DateOutOfRange(
                f"{day.isoformat()} is more than {TIMETABLE_MAX_OFFSET_DAYS} days "
                "from today"
            )

        active = ActiveServiceSet(
            day=day,
            same_day=services_on(day, index.calendars, index.calendar_exceptions),
        )
        return timetable_for_stop(
            stop_id, index=index, active=active, tz=now.tzinfo, route_name=route
        )

    def nearby(
        self,
        origin: GeoPoint,
        *,
        radius_m: float = DEFAULT_NEARBY_RADIUS_M,
        limit: int | None = None,
    ) -> list[NearbyStop]:
        index = self.repository.current()
        return [
            NearbyStop(
                stop=stop,
                distance_m=distance_m,
                route_names=tuple(sorted(index.stop_route_names.get(stop.stop_id, ()))),
            )
            for stop, distance_m in nearby_stops(
                origin, index.stops_by_id.values(), radius_m=radius_m, limit=limit
            )
        ]

    def search_stops(self, query: str) -> list[Stop]:
        return search_stops(query, self.repository.current().stops_by_id.values())

    def search_routes(self, query: str) -> list[Route]:
        return search_routes(query, self.repository.current().routes_by_id.values())

    def refresh_active_services(self) -> ActiveServiceSet:
        index = self.repository.current()
        now = self.local_now(index)
        return self.services.resolve(now.date(), now=now)

    def stats(self) -> TransitStats:
        index = self.repository.current()
        now = self.local_now(index)
        vehicles = self.feeds.peek(FeedKind.VEHICLE_POSITIONS)
        return TransitStats(
            routes=len(index.routes_by_id),
            stops=len(index.stops_by_id),
            trips=len(index.trips_by_id),
            active_services=len(self.services.resolve(now.date(), now=now)),
            vehicles=len(vehicles.payload) if vehicles is not None else None,
            report=index.report,
        )
