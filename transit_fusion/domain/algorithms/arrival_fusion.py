from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, Mapping

from transit_fusion.domain.algorithms.gtfs_time import format_hhmm
from transit_fusion.domain.models.arrival import (
    MergedArrival,
    ScheduledArrival,
    TimetableEntry,
)
from transit_fusion.domain.models.gtfs import ActiveServiceSet, StaticIndex
from transit_fusion.domain.models.realtime import FeedSnapshot, TripUpdate

DEFAULT_GRACE_S = 60
DEFAULT_FRESH_WITHIN_S = 180
REALTIME_PER_ROUTE = 1
STATIC_PER_ROUTE = 2


@dataclass(frozen=True, slots=True)
class Prediction:
    predicted_epoch: int | None
    delay_s: int | None


@dataclass(frozen=True, slots=True)
class Partition:
    realtime: tuple[MergedArrival, ...]
    static: tuple[MergedArrival, ...]


def service_day_start(day: date, tz: tzinfo | None) -> datetime:
    return datetime.combine(day, time(0), tzinfo=tz)


def scheduled_arrivals_for_stop(
    stop_id: str,
    *,
    index: StaticIndex,
    active: ActiveServiceSet,
    tz: tzinfo | None,
) -> list[ScheduledArrival]:
    """Static visits to ``stop_id`` by trips of active services.

    Each stop time is anchored to the service day it belongs to, so a
    25:10:00 arrival of yesterday's service lands at 01:10 today.
    """

    today = service_day_start(active.day, tz)
    yesterday = service_day_start(active.day - timedelta(days=1), tz)

    out: list[ScheduledArrival] = []
    for st in index.stop_times_by_stop.get(stop_id, ()):
        trip = index.trips_by_id.get(st.trip_id)
        if trip is None:
            continue

        starts: list[datetime] = []
        if trip.service_id in active.same_day:
            starts.append(today)
        if trip.service_id in active.previous_day:
            starts.append(yesterday)

        for start in starts:
            out.append(
                ScheduledArrival(
                    route_id=trip.route_id,
                    trip_id=trip.trip_id,
                    service_id=trip.service_id,
                    scheduled_at=start + timedelta(seconds=st.arrival_s),
                )
            )

    out.sort(key=lambda a: (a.scheduled_at, a.route_id, a.trip_id))
    return out


def predictions_for_stop(
    stop_id: str, updates: Iterable[TripUpdate]
) -> dict[str, Prediction]:
    """trip_id -> prediction for this stop.

    The arrival time wins over the departure time, but the reported delay
    is the larger of the two when both are present.
    """

    out: dict[str, Prediction] = {}
    for tu in updates:
        if not tu.trip_id:
            continue
        for stu in tu.stop_time_updates:
            if stu.stop_id != stop_id or stu.skipped:
                continue

            epoch = stu.arrival_time
            if epoch is None:
                epoch = stu.departure_time
            delays = [
                d for d in (stu.arrival_delay, stu.departure_delay) if d is not None
            ]
            delay = max(delays) if delays else None
            if epoch is None and delay is None:
                continue
            out[tu.trip_id] = Prediction(predicted_epoch=epoch, delay_s=delay)
    return out


def canceled_trip_ids(updates: Iterable[TripUpdate]) -> frozenset[str]:
    return frozenset(tu.trip_id for tu in updates if tu.canceled and tu.trip_id)


def _predicted_at(arrival: ScheduledArrival, pred: Prediction) -> datetime:
    if pred.predicted_epoch is not None:
        return datetime.fromtimestamp(
            pred.predicted_epoch, tz=arrival.scheduled_at.tzinfo
        )
    return arrival.scheduled_at + timedelta(seconds=pred.delay_s or 0)


def _paired_arrivals(
    scheduled: Iterable[ScheduledArrival],
    predictions: Mapping[str, Prediction],
    *,
    now: datetime,
) -> dict[str, ScheduledArrival]:
    """trip_id -> the one anchored arrival its prediction belongs to.

    Before the late-night cutoff a trip can be anchored to both yesterday
    and today; the prediction goes to the copy scheduled nearest it.
    """

    def distance(sa: ScheduledArrival, pred: Prediction) -> tuple[float, float]:
        predicted_at = _predicted_at(sa, pred)
        return (
            abs((predicted_at - sa.scheduled_at).total_seconds()),
            abs((predicted_at - now).total_seconds()),
        )

    out: dict[str, ScheduledArrival] = {}
    for sa in scheduled:
        pred = predictions.get(sa.trip_id)
        if pred is None:
            continue
        best = out.get(sa.trip_id)
        if best is None or distance(sa, pred) < distance(best, pred):
            out[sa.trip_id] = sa
    return out


def partition_arrivals(
    scheduled: Iterable[ScheduledArrival],
    predictions: Mapping[str, Prediction],
    *,
    now: datetime,
    grace_s: float = DEFAULT_GRACE_S,
    route_names: Mapping[str, str] | None = None,
    feed_fresh: bool = False,
) -> Partition:
    """Split scheduled arrivals into a realtime bucket and a static bucket.

    A trip goes to the realtime bucket when it has a prediction no older
    than ``grace_s``; everything else stays static. Only one anchored copy
    of a trip carries its prediction. Every input lands in exactly one
    bucket.
    """

    names = route_names or {}
    floor = now - timedelta(seconds=grace_s)
    scheduled = list(scheduled)
    paired = _paired_arrivals(scheduled, predictions, now=now)

    realtime: list[MergedArrival] = []
    static: list[MergedArrival] = []
    for sa in scheduled:
        name = names.get(sa.route_id) or sa.route_id
        pred = predictions.get(sa.trip_id)

        if pred is not None and paired.get(sa.trip_id) is sa:
            predicted_at = _predicted_at(sa, pred)
            if predicted_at >= floor:
                if pred.delay_s is not None:
                    delay = pred.delay_s
                else:
                    delay = int(round((predicted_at - sa.scheduled_at).total_seconds()))
                realtime.append(
                    MergedArrival(
                        route_id=sa.route_id,
                        route_name=name,
                        trip_id=sa.trip_id,
                        scheduled_time=sa.scheduled_time,
                        effective_time=predicted_at.time(),
                        is_realtime=True,
                        delay_s=delay,
                        feed_fresh=feed_fresh,
                        effective_at=predicted_at,
                    )
                )
                continue

        static.append(
            MergedArrival(
                route_id=sa.route_id,
                route_name=name,
                trip_id=sa.trip_id,
                scheduled_time=sa.scheduled_time,
                effective_time=sa.scheduled_time,
                is_realtime=False,
                delay_s=0,
                feed_fresh=feed_fresh,
                effective_at=sa.scheduled_at,
            )
        )

    return Partition(realtime=tuple(realtime), static=tuple(static))


def _effective_key(a: MergedArrival) -> tuple:
    return (a.effective_at, a.route_id, a.trip_id)


def _distinct(arrivals: Iterable[MergedArrival]) -> list[MergedArrival]:
    seen: set[tuple[str, str]] = set()
    out: list[MergedArrival] = []
    for a in arrivals:
        if a.key in seen:
            continue
        seen.add(a.key)
        out.append(a)
    return out


def fuse_arrivals(
    stop_id: str,
    *,
    index: StaticIndex,
    active: ActiveServiceSet,
    trip_updates: FeedSnapshot | None,
    now: datetime,
    grace_s: float = DEFAULT_GRACE_S,
    fresh_within_s: float = DEFAULT_FRESH_WITHIN_S,
    route_names: Mapping[str, str] | None = None,
    realtime_per_route: int = REALTIME_PER_ROUTE,
    static_per_route: int = STATIC_PER_ROUTE,
) -> list[MergedArrival]:
    """Merge static and realtime arrivals for one stop.

    Per display route: the earliest realtime prediction followed by the
    two earliest static-only departures. Groups are ordered by their first
    arrival and the result never repeats a (route, trip) pair.
    """

    names = route_names if route_names is not None else index.route_short_names
    updates: tuple[TripUpdate, ...] = ()
    feed_fresh = False
    if trip_updates is not None:
        updates = tuple(u for u in trip_updates.payload if isinstance(u, TripUpdate))
        feed_fresh = trip_updates.is_fresh(
            now.timestamp(), fresh_within_s=fresh_within_s
        )

    scheduled = scheduled_arrivals_for_stop(
        stop_id, index=index, active=active, tz=now.tzinfo
    )
    partition = partition_arrivals(
        scheduled,
        predictions_for_stop(stop_id, updates),
        now=now,
        grace_s=grace_s,
        route_names=names,
        feed_fresh=feed_fresh,
    )

    canceled = canceled_trip_ids(updates)
    realtime = [a for a in partition.realtime if a.trip_id not in canceled]
    static = [
        a
        for a in partition.static
        if a.trip_id not in canceled
        and a.effective_at is not None
        and a.effective_at >= now
    ]

    groups: dict[str, tuple[list[MergedArrival], list[MergedArrival]]] = {}
    for a in sorted(realtime, key=_effective_key):
        groups.setdefault(a.route_name, ([], []))[0].append(a)
    for a in sorted(static, key=_effective_key):
        groups.setdefault(a.route_name, ([], []))[1].append(a)

    chosen: list[list[MergedArrival]] = []
    for rt, st in groups.values():
        entries = _distinct(rt)[:realtime_per_route] + _distinct(st)[:static_per_route]
        if entries:
            chosen.append(entries)

    chosen.sort(key=lambda entries: min(_effective_key(a) for a in entries))
    return _distinct(a for entries in chosen for a in entries)


def timetable_for_stop(
    stop_id: str,
    *,
    index: StaticIndex,
    active: ActiveServiceSet,
    tz: tzinfo | None,
    route_name: str | None = None,
) -> list[TimetableEntry]:
    """Every scheduled arrival at a stop for one date, as HH:MM entries."""

    seen: set[tuple[str, str]] = set()
    out: list[TimetableEntry] = []
    for sa in scheduled_arrivals_for_stop(stop_id, index=index, active=active, tz=tz):
        name = index.display_name(sa.route_id)
        if route_name is not None and route_name not in (name, sa.route_id):
            continue
        hhmm = format_hhmm(sa.scheduled_time)
        if (name, hhmm) in seen:
            continue
        seen.add((name, hhmm))
        out.append(TimetableEntry(route_name=name, arrival_time=hhmm))
    return out
