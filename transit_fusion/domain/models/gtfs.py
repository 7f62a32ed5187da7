from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Mapping

from .geo import GeoPoint, Polyline


@dataclass(frozen=True, slots=True)
class Agency:
    agency_id: str | None
    name: str
    timezone: str | None = None


@dataclass(frozen=True, slots=True)
class Route:
    route_id: str
    short_name: str | None = None
    long_name: str | None = None
    color: str | None = None  # hex without '#'
    text_color: str | None = None  # hex without '#'

    @property
    def display_name(self) -> str:
        return self.short_name or self.route_id


@dataclass(frozen=True, slots=True)
class Stop:
    stop_id: str
    name: str
    location: GeoPoint
    code: str | None = None


@dataclass(frozen=True, slots=True)
class Trip:
    trip_id: str
    route_id: str
    service_id: str
    headsign: str | None = None
    shape_id: str | None = None


@dataclass(frozen=True, slots=True)
class StopTime:
    """One scheduled visit of a trip to a stop.

    ``arrival_s`` is seconds since the start of the service day and may exceed
    24h for trips that run past midnight.
    """

    trip_id: str
    stop_id: str
    arrival_s: int
    stop_sequence: int


@dataclass(frozen=True, slots=True)
class ServiceCalendar:
    service_id: str
    # Monday first, matching date.weekday().
    weekdays: tuple[bool, bool, bool, bool, bool, bool, bool]
    start_date: date
    end_date: date

    def runs_on(self, day: date) -> bool:
        if not (self.start_date <= day <= self.end_date):
            return False
        return self.weekdays[day.weekday()]


@dataclass(frozen=True, slots=True)
class CalendarException:
    service_id: str
    day: date
    added: bool  # exception_type 1 adds service, 2 removes it


@dataclass(frozen=True, slots=True)
class ActiveServiceSet:
    """Services operating for one civil date.

    ``same_day`` runs on ``day`` itself. ``previous_day`` holds services of
    the day before that are still running after midnight; their stop times
    are anchored to the previous service day.
    """

    day: date
    same_day: frozenset[str]
    previous_day: frozenset[str] = frozenset()

    @property
    def service_ids(self) -> frozenset[str]:
        return self.same_day | self.previous_day

    def __contains__(self, service_id: object) -> bool:
        return service_id in self.service_ids

    def __len__(self) -> int:
        return len(self.service_ids)


@dataclass(frozen=True, slots=True)
class LoadReport:
    """Row counts per relation produced by one indexing run."""

    loaded: Mapping[str, int] = field(default_factory=dict)
    skipped: Mapping[str, int] = field(default_factory=dict)
    missing: tuple[str, ...] = ()

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())


def frozen_mapping(mapping: dict) -> Mapping:
    return MappingProxyType(mapping)


@dataclass(frozen=True, slots=True)
class StaticIndex:
    """Immutable in-memory view of one static schedule load.

    Built once per schedule refresh and swapped wholesale; nothing here is
    mutated after construction.
    """

    agencies: tuple[Agency, ...]
    routes_by_id: Mapping[str, Route]
    stops_by_id: Mapping[str, Stop]
    trips_by_id: Mapping[str, Trip]
    calendars: tuple[ServiceCalendar, ...]
    calendar_exceptions: tuple[CalendarException, ...]
    stop_times_by_stop: Mapping[str, tuple[StopTime, ...]]

    # Derived cross references.
    trip_to_route: Mapping[str, str]
    route_short_names: Mapping[str, str]
    route_trip_ids: Mapping[str, frozenset[str]]
    stop_route_names: Mapping[str, frozenset[str]]
    trip_stop_sequence: Mapping[str, tuple[str, ...]]
    route_polylines: Mapping[str, tuple[Polyline, ...]]

    report: LoadReport = field(default_factory=LoadReport)

    @classmethod
    def empty(cls) -> "StaticIndex":
        return cls(
            agencies=(),
            routes_by_id=frozen_mapping({}),
            stops_by_id=frozen_mapping({}),
            trips_by_id=frozen_mapping({}),
            calendars=(),
            calendar_exceptions=(),
            stop_times_by_stop=frozen_mapping({}),
            trip_to_route=frozen_mapping({}),
            route_short_names=frozen_mapping({}),
            route_trip_ids=frozen_mapping({}),
            stop_route_names=frozen_mapping({}),
            trip_stop_sequence=frozen_mapping({}),
            route_polylines=frozen_mapping({}),
        )

    @property
    def timezone(self) -> str | None:
        for agency in self.agencies:
            if agency.timezone:
                return agency.timezone
        return None

    def display_name(self, route_id: str) -> str:
        return self.route_short_names.get(route_id) or route_id

    def route_by_display_name(self, name: str) -> Route | None:
        route = self.routes_by_id.get(name)
        if route is not None:
            return route
        for route in self.routes_by_id.values():
            if route.short_name == name:
                return route
        return None
