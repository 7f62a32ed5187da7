from __future__ import annotations

import csv
import io
import logging
import threading
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterator, Mapping, TypeVar

from transit_fusion.app.ports.output import IScheduleSource
from transit_fusion.domain.algorithms.gtfs_time import parse_gtfs_date, parse_gtfs_time
from transit_fusion.domain.models.geo import GeoPoint, Polyline
from transit_fusion.domain.models.gtfs import (
    Agency,
    CalendarException,
    LoadReport,
    Route,
    ServiceCalendar,
    StaticIndex,
    Stop,
    StopTime,
    Trip,
    frozen_mapping,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


_WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _clean(raw: str) -> str:
    return raw.strip().strip('"').strip()


class Row:
    """One CSV record addressed by column name."""

    __slots__ = ("_columns", "_values")

    def __init__(self, columns: Mapping[str, int], values: list[str]) -> None:
        self._columns = columns
        self._values = values

    def get(self, name: str, default: str | None = None) -> str | None:
        idx = self._columns.get(name)
        if idx is None:
            return default
        return _clean(self._values[idx]) or default

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value


@dataclass(slots=True)
class RelationReader:
    """Streams typed records out of one GTFS relation.

    Header names are resolved to positions once. Rows whose column count
    does not match the header, or whose parser raises KeyError/ValueError
    or returns None, are counted in ``skipped`` and never abort the load.
    """

    relation: str
    stream: BinaryIO
    loaded: int = 0
    skipped: int = 0

    def _rows(self) -> Iterator[Row]:
        text = io.TextIOWrapper(
            self.stream, encoding="utf-8-sig", errors="replace", newline=""
        )
        reader = csv.reader(text)
        header = next(reader, None)
        if not header:
            return
        columns = {_clean(name).lstrip("\ufeff"): i for i, name in enumerate(header)}
        width = len(header)
        for values in reader:
            if not values or not any(v.strip() for v in values):
                continue
            if len(values) != width:
                self.skipped += 1
                continue
            yield Row(columns, values)

    def read(self, parse: Callable[[Row], T | None]) -> Iterator[T]:
        try:
            for row in self._rows():
                try:
                    record = parse(row)
                except (KeyError, ValueError):
                    self.skipped += 1
                    continue
                if record is None:
                    self.skipped += 1
                    continue
                self.loaded += 1
                yield record
        finally:
            self.stream.close()


def _parse_agency(row: Row) -> Agency:
    return Agency(
        agency_id=row.get("agency_id"),
        name=row.get("agency_name") or "",
        timezone=row.get("agency_timezone"),
    )


def _parse_route(row: Row) -> Route:
    return Route(
        route_id=row["route_id"],
        short_name=row.get("route_short_name"),
        long_name=row.get("route_long_name"),
        color=row.get("route_color"),
        text_color=row.get("route_text_color"),
    )


def _parse_stop(row: Row) -> Stop:
    stop_id = row["stop_id"]
    return Stop(
        stop_id=stop_id,
        name=row.get("stop_name") or stop_id,
        location=GeoPoint(lat=float(row["stop_lat"]), lon=float(row["stop_lon"])),
        code=row.get("stop_code"),
    )


def _parse_trip(row: Row) -> Trip:
    return Trip(
        trip_id=row["trip_id"],
        route_id=row["route_id"],
        service_id=row["service_id"],
        headsign=row.get("trip_headsign"),
        shape_id=row.get("shape_id"),
    )


def _parse_stop_time(row: Row) -> StopTime:
    # Untimed stops fall back to the departure column.
    raw_time = row.get("arrival_time") or row["departure_time"]
    return StopTime(
        trip_id=row["trip_id"],
        stop_id=row["stop_id"],
        arrival_s=parse_gtfs_time(raw_time),
        stop_sequence=int(row["stop_sequence"]),
    )


def _parse_calendar(row: Row) -> ServiceCalendar:
    flags = []
    for day in _WEEKDAYS:
        value = row[day]
        if value not in ("0", "1"):
            raise ValueError(f"{day}={value!r}")
        flags.append(value == "1")
    return ServiceCalendar(
        service_id=row["service_id"],
        weekdays=tuple(flags),  # type: ignore[arg-type]
        start_date=parse_gtfs_date(row["start_date"]),
        end_date=parse_gtfs_date(row["end_date"]),
    )


def _parse_calendar_date(row: Row) -> CalendarException:
    kind = row["exception_type"]
    if kind not in ("1", "2"):
        raise ValueError(f"exception_type={kind!r}")
    return CalendarException(
        service_id=row["service_id"],
        day=parse_gtfs_date(row["date"]),
        added=kind == "1",
    )


def _parse_shape_point(row: Row) -> tuple[str, int, GeoPoint]:
    return (
        row["shape_id"],
        int(row["shape_pt_sequence"]),
        GeoPoint(lat=float(row["shape_pt_lat"]), lon=float(row["shape_pt_lon"])),
    )


@dataclass(slots=True)
class ScheduleIndexer:
    """Builds a StaticIndex from the relations exposed by a schedule source."""

    source: IScheduleSource

    _loaded: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _skipped: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _missing: list[str] = field(default_factory=list, init=False, repr=False)

    def _load(self, relation: str, parse: Callable[[Row], T | None]) -> list[T]:
        stream = self.source.open(f"{relation}.txt")
        if stream is None:
            logger.warning("Schedule relation %s.txt is missing", relation)
            self._missing.append(relation)
            self._loaded[relation] = 0
            self._skipped[relation] = 0
            return []

        reader = RelationReader(relation=relation, stream=stream)
        records = list(reader.read(parse))
        self._loaded[relation] = reader.loaded
        self._skipped[relation] = reader.skipped
        if not records:
            logger.warning("Schedule relation %s.txt is empty", relation)
        if reader.skipped:
            logger.warning(
                "Skipped %d malformed row(s) in %s.txt", reader.skipped, relation
            )
        return records

    def build(self) -> StaticIndex:
        self._loaded = {}
        self._skipped = {}
        self._missing = []

        agencies = tuple(self._load("agency", _parse_agency))
        routes_by_id = {r.route_id: r for r in self._load("routes", _parse_route)}
        stops_by_id = {s.stop_id: s for s in self._load("stops", _parse_stop)}
        trips_by_id = {t.trip_id: t for t in self._load("trips", _parse_trip)}

        stop_times: list[StopTime] = []
        orphans = 0
        for st in self._load("stop_times", _parse_stop_time):
            if st.trip_id not in trips_by_id:
                orphans += 1
                continue
            stop_times.append(st)
        if orphans:
            logger.warning("Dropped %d stop time(s) with unknown trip ids", orphans)
            self._loaded["stop_times"] -= orphans
            self._skipped["stop_times"] += orphans

        calendars = tuple(self._load("calendar", _parse_calendar))
        calendar_exceptions = tuple(self._load("calendar_dates", _parse_calendar_date))
        shape_points = self._load("shapes", _parse_shape_point)

        index = _assemble(
            agencies=agencies,
            routes_by_id=routes_by_id,
            stops_by_id=stops_by_id,
            trips_by_id=trips_by_id,
            stop_times=stop_times,
            calendars=calendars,
            calendar_exceptions=calendar_exceptions,
            shape_points=shape_points,
            report=LoadReport(
                loaded=frozen_mapping(dict(self._loaded)),
                skipped=frozen_mapping(dict(self._skipped)),
                missing=tuple(self._missing),
            ),
        )

        logger.info(
            "Indexed schedule from %s: %d routes, %d stops, %d trips, "
            "%d stop times, %d skipped row(s)",
            self.source.describe(),
            len(routes_by_id),
            len(stops_by_id),
            len(trips_by_id),
            len(stop_times),
            index.report.total_skipped,
        )
        return index


def _shape_polylines(
    shape_points: list[tuple[str, int, GeoPoint]]
) -> dict[str, Polyline]:
    tmp: dict[str, list[tuple[int, GeoPoint]]] = {}
    for shape_id, seq, point in shape_points:
        tmp.setdefault(shape_id, []).append((seq, point))

    shapes: dict[str, Polyline] = {}
    for shape_id, pts in tmp.items():
        pts.sort(key=lambda x: x[0])
        shapes[shape_id] = tuple(p for _, p in pts)
    return shapes


def _assemble(
    *,
    agencies: tuple[Agency, ...],
    routes_by_id: dict[str, Route],
    stops_by_id: dict[str, Stop],
    trips_by_id: dict[str, Trip],
    stop_times: list[StopTime],
    calendars: tuple[ServiceCalendar, ...],
    calendar_exceptions: tuple[CalendarException, ...],
    shape_points: list[tuple[str, int, GeoPoint]],
    report: LoadReport,
) -> StaticIndex:
    trip_to_route = {t.trip_id: t.route_id for t in trips_by_id.values()}
    route_short_names = {r.route_id: r.display_name for r in routes_by_id.values()}

    route_trips: dict[str, set[str]] = {}
    for trip in trips_by_id.values():
        route_trips.setdefault(trip.route_id, set()).add(trip.trip_id)

    by_stop: dict[str, list[StopTime]] = {}
    by_trip: dict[str, list[StopTime]] = {}
    stop_routes: dict[str, set[str]] = {}
    for st in stop_times:
        by_stop.setdefault(st.stop_id, []).append(st)
        by_trip.setdefault(st.trip_id, []).append(st)
        route_id = trip_to_route[st.trip_id]
        stop_routes.setdefault(st.stop_id, set()).add(
            route_short_names.get(route_id) or route_id
        )

    stop_times_by_stop = {
        stop_id: tuple(sorted(sts, key=lambda s: (s.arrival_s, s.trip_id)))
        for stop_id, sts in by_stop.items()
    }
    trip_stop_sequence = {
        trip_id: tuple(s.stop_id for s in sorted(sts, key=lambda s: s.stop_sequence))
        for trip_id, sts in by_trip.items()
    }

    shapes = _shape_polylines(shape_points)
    route_shape_ids: dict[str, set[str]] = {}
    for trip in trips_by_id.values():
        if trip.shape_id:
            route_shape_ids.setdefault(trip.route_id, set()).add(trip.shape_id)
    route_polylines: dict[str, tuple[Polyline, ...]] = {}
    for route_id, shape_ids in route_shape_ids.items():
        variants = tuple(
            shapes[sid]
            for sid in sorted(shape_ids)
            if sid in shapes and len(shapes[sid]) >= 2
        )
        if variants:
            route_polylines[route_id] = variants

    return StaticIndex(
        agencies=agencies,
        routes_by_id=frozen_mapping(routes_by_id),
        stops_by_id=frozen_mapping(stops_by_id),
        trips_by_id=frozen_mapping(trips_by_id),
        calendars=calendars,
        calendar_exceptions=calendar_exceptions,
        stop_times_by_stop=frozen_mapping(stop_times_by_stop),
        trip_to_route=frozen_mapping(trip_to_route),
        route_short_names=frozen_mapping(route_short_names),
        route_trip_ids=frozen_mapping(
            {rid: frozenset(tids) for rid, tids in route_trips.items()}
        ),
        stop_route_names=frozen_mapping(
            {sid: frozenset(names) for sid, names in stop_routes.items()}
        ),
        trip_stop_sequence=frozen_mapping(trip_stop_sequence),
        route_polylines=frozen_mapping(route_polylines),
        report=report,
    )


@dataclass(slots=True)
class ScheduleRepository:
    """Holds the current StaticIndex.

    The first read builds the index (cold start). ``reload()`` builds a new
    index off to the side and swaps it in with one assignment, so readers
    see either the old or the new schedule, never a mix.
    """

    source: IScheduleSource

    _index: StaticIndex | None = field(default=None, init=False, repr=False)
    _build_lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    @property
    def is_loaded(self) -> bool:
        return self._index is not None

    def current(self) -> StaticIndex:
        index = self._index
        if index is not None:
            return index
        with self._build_lock:
            if self._index is None:
                self._index = ScheduleIndexer(self.source).build()
            return self._index

    def reload(self) -> StaticIndex:
        with self._build_lock:
            fresh = ScheduleIndexer(self.source).build()
            self._index = fresh
        logger.info("Schedule index reloaded")
        return fresh
