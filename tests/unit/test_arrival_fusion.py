from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from transit_fusion.domain.algorithms.arrival_fusion import (
    Prediction,
    canceled_trip_ids,
    fuse_arrivals,
    partition_arrivals,
    predictions_for_stop,
    scheduled_arrivals_for_stop,
    timetable_for_stop,
)
from transit_fusion.domain.algorithms.service_calendar import (
    active_service_ids,
    services_on,
)
from transit_fusion.domain.models.gtfs import ActiveServiceSet, StaticIndex
from transit_fusion.domain.models.realtime import (
    FeedKind,
    FeedSnapshot,
    StopTimeUpdate,
    TripUpdate,
)

TZ = ZoneInfo("America/New_York")


def _active(index: StaticIndex, now: datetime) -> ActiveServiceSet:
    return active_service_ids(
        now.date(),
        now=now,
        calendars=index.calendars,
        exceptions=index.calendar_exceptions,
    )


def _feed(now: datetime, *updates: TripUpdate, age_s: float = 0) -> FeedSnapshot:
    ts = int(now.timestamp() - age_s)
    return FeedSnapshot(
        kind=FeedKind.TRIP_UPDATES,
        decoded_at=ts,
        generated_at=ts,
        payload=tuple(updates),
    )


def _delayed(trip_id: str, stop_id: str, delay_s: int) -> TripUpdate:
    return TripUpdate(
        trip_id=trip_id,
        stop_time_updates=(StopTimeUpdate(stop_id=stop_id, arrival_delay=delay_s),),
    )


def _fuse(index: StaticIndex, now: datetime, feed: FeedSnapshot | None = None):
    return fuse_arrivals(
        "S1",
        index=index,
        active=_active(index, now),
        trip_updates=feed,
        now=now,
    )


def test_static_only_groups_by_first_arrival(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 8, 2, tzinfo=TZ)

    arrivals = _fuse(sample_index, now)

    assert [a.trip_id for a in arrivals] == ["T5", "T2", "T3"]
    assert [a.route_name for a in arrivals] == ["2", "1A", "1A"]
    assert all(not a.is_realtime for a in arrivals)
    assert arrivals[0].effective_time == time(8, 10)


def test_realtime_prediction_leads_its_route(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 8, 2, tzinfo=TZ)
    feed = _feed(now, _delayed("T1", "S1", 300))

    arrivals = _fuse(sample_index, now, feed)

    assert [a.trip_id for a in arrivals] == ["T1", "T2", "T3", "T5"]
    t1 = arrivals[0]
    assert t1.is_realtime
    assert t1.delay_s == 300
    assert t1.scheduled_time == time(8, 0)
    assert t1.effective_time == time(8, 5)
    assert t1.feed_fresh


def test_absolute_prediction_wins_over_delay(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 8, 2, tzinfo=TZ)
    predicted = datetime(2026, 10, 19, 8, 4, tzinfo=TZ)
    update = TripUpdate(
        trip_id="T1",
        stop_time_updates=(
            StopTimeUpdate(
                stop_id="S1", arrival_time=int(predicted.timestamp())
            ),
        ),
    )

    (t1, *_rest) = _fuse(sample_index, now, _feed(now, update))

    assert t1.trip_id == "T1"
    assert t1.effective_time == time(8, 4)
    assert t1.delay_s == 240


def test_each_route_capped_and_never_repeats_a_trip(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 7, 0, tzinfo=TZ)
    feed = _feed(
        now,
        _delayed("T1", "S1", 60),
        _delayed("T2", "S1", 120),
        _delayed("T5", "S1", 0),
    )

    arrivals = _fuse(sample_index, now, feed)
    by_route: dict[str, list[str]] = {}
    for a in arrivals:
        by_route.setdefault(a.route_name, []).append(a.trip_id)

    # One realtime entry then two static-only entries per route.
    assert by_route["1A"] == ["T1", "T3", "T4"]
    assert by_route["2"] == ["T5"]
    assert len({a.key for a in arrivals}) == len(arrivals)


def test_canceled_trip_is_removed(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 8, 2, tzinfo=TZ)
    feed = _feed(now, TripUpdate(trip_id="T5", canceled=True))

    arrivals = _fuse(sample_index, now, feed)

    assert "T5" not in {a.trip_id for a in arrivals}
    assert [a.trip_id for a in arrivals] == ["T2", "T3"]


def test_stale_feed_is_used_but_flagged(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 8, 2, tzinfo=TZ)
    feed = _feed(now, _delayed("T1", "S1", 300), age_s=600)

    arrivals = _fuse(sample_index, now, feed)

    assert arrivals[0].is_realtime
    assert not arrivals[0].feed_fresh


def test_past_prediction_outside_grace_falls_back_to_static(
    sample_index: StaticIndex,
) -> None:
    now = datetime(2026, 10, 19, 8, 20, tzinfo=TZ)
    # T1 predicted at 08:05, fifteen minutes ago.
    feed = _feed(now, _delayed("T1", "S1", 300))

    arrivals = _fuse(sample_index, now, feed)

    assert all(not a.is_realtime for a in arrivals)
    # Static T1 at 08:00 has passed too.
    assert "T1" not in {a.trip_id for a in arrivals}


def test_previous_service_day_after_midnight(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 20, 0, 10, tzinfo=TZ)

    arrivals = _fuse(sample_index, now)

    assert [a.trip_id for a in arrivals] == ["T7", "T1", "T5"]
    t7 = arrivals[0]
    assert t7.effective_at == datetime(2026, 10, 20, 0, 30, tzinfo=TZ)
    assert t7.scheduled_time == time(0, 30)


@pytest.mark.parametrize(
    "stop_update",
    [
        StopTimeUpdate(
            stop_id="S1",
            arrival_time=int(datetime(2026, 10, 20, 5, 32, tzinfo=TZ).timestamp()),
        ),
        StopTimeUpdate(stop_id="S1", arrival_delay=120),
    ],
    ids=["absolute", "delay"],
)
def test_early_morning_prediction_pairs_with_todays_run(
    make_index, gtfs_files: dict[str, str], stop_update: StopTimeUpdate
) -> None:
    # WK runs Monday and Tuesday, so before the cutoff TE is anchored twice.
    files = dict(gtfs_files)
    files["trips.txt"] += "R2,WK,TE,Early,SH2\n"
    files["stop_times.txt"] += "TE,05:30:00,05:30:00,S1,1\n"
    index = make_index(files)
    now = datetime(2026, 10, 20, 5, 0, tzinfo=TZ)
    feed = _feed(now, TripUpdate(trip_id="TE", stop_time_updates=(stop_update,)))

    arrivals = _fuse(index, now, feed)

    te = [a for a in arrivals if a.trip_id == "TE"]
    assert len(te) == 1
    assert te[0].is_realtime
    assert te[0].delay_s == 120
    assert te[0].effective_at == datetime(2026, 10, 20, 5, 32, tzinfo=TZ)


def test_partition_gives_prediction_to_one_anchored_copy(
    sample_index: StaticIndex,
) -> None:
    now = datetime(2026, 10, 20, 0, 10, tzinfo=TZ)
    scheduled = scheduled_arrivals_for_stop(
        "S1", index=sample_index, active=_active(sample_index, now), tz=TZ
    )
    epoch = int(datetime(2026, 10, 20, 8, 3, tzinfo=TZ).timestamp())

    part = partition_arrivals(
        scheduled,
        {"T1": Prediction(predicted_epoch=epoch, delay_s=None)},
        now=now,
    )

    assert [(a.trip_id, a.delay_s) for a in part.realtime] == [("T1", 180)]
    assert sum(a.trip_id == "T1" for a in part.static) == 1
    assert len(part.realtime) + len(part.static) == len(scheduled)


def test_no_service_means_no_arrivals(sample_index: StaticIndex) -> None:
    # Sunday daytime: neither WK nor SAT runs.
    now = datetime(2026, 10, 25, 12, 0, tzinfo=TZ)
    assert _fuse(sample_index, now) == []


def test_scheduled_arrivals_anchor_overnight_times(sample_index: StaticIndex) -> None:
    active = ActiveServiceSet(day=date(2026, 10, 19), same_day=frozenset({"WK"}))

    scheduled = scheduled_arrivals_for_stop(
        "S1", index=sample_index, active=active, tz=TZ
    )

    t7 = next(s for s in scheduled if s.trip_id == "T7")
    assert t7.scheduled_at == datetime(2026, 10, 20, 0, 30, tzinfo=TZ)
    assert scheduled == sorted(scheduled, key=lambda s: s.scheduled_at)


def test_predictions_skip_other_stops_and_skipped_visits() -> None:
    updates = [
        TripUpdate(
            trip_id="A",
            stop_time_updates=(
                StopTimeUpdate(stop_id="S2", arrival_delay=30),
                StopTimeUpdate(stop_id="S1", arrival_delay=60, departure_delay=90),
            ),
        ),
        TripUpdate(
            trip_id="B",
            stop_time_updates=(StopTimeUpdate(stop_id="S1", skipped=True),),
        ),
        TripUpdate(trip_id=None, stop_time_updates=(StopTimeUpdate(stop_id="S1"),)),
        TripUpdate(trip_id="C", canceled=True),
    ]

    preds = predictions_for_stop("S1", updates)

    assert preds == {"A": Prediction(predicted_epoch=None, delay_s=90)}
    assert canceled_trip_ids(updates) == frozenset({"C"})


def test_partition_puts_each_arrival_in_one_bucket(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 8, 2, tzinfo=TZ)
    scheduled = scheduled_arrivals_for_stop(
        "S1", index=sample_index, active=_active(sample_index, now), tz=TZ
    )

    part = partition_arrivals(
        scheduled,
        {"T2": Prediction(predicted_epoch=None, delay_s=-60)},
        now=now,
        route_names=sample_index.route_short_names,
    )

    assert [a.trip_id for a in part.realtime] == ["T2"]
    assert part.realtime[0].effective_at == datetime(2026, 10, 19, 8, 29, tzinfo=TZ)
    assert len(part.realtime) + len(part.static) == len(scheduled)
    assert "T2" not in {a.trip_id for a in part.static}


@pytest.mark.parametrize(
    ("day", "expected"),
    [
        (
            date(2026, 10, 19),
            [
                ("1A", "00:30"),
                ("1A", "08:00"),
                ("2", "08:10"),
                ("1A", "08:30"),
                ("1A", "09:00"),
                ("1A", "09:30"),
            ],
        ),
        (date(2026, 10, 24), [("2", "10:00")]),
    ],
)
def test_timetable_lists_the_whole_day(
    sample_index: StaticIndex, day: date, expected: list[tuple[str, str]]
) -> None:
    active = ActiveServiceSet(
        day=day,
        same_day=services_on(
            day, sample_index.calendars, sample_index.calendar_exceptions
        ),
    )

    entries = timetable_for_stop("S1", index=sample_index, active=active, tz=TZ)

    assert sorted((e.route_name, e.arrival_time) for e in entries) == sorted(expected)


def test_timetable_filters_by_route(sample_index: StaticIndex) -> None:
    active = ActiveServiceSet(day=date(2026, 10, 19), same_day=frozenset({"WK"}))

    entries = timetable_for_stop(
        "S1", index=sample_index, active=active, tz=TZ, route_name="2"
    )

    assert [(e.route_name, e.arrival_time) for e in entries] == [("2", "08:10")]


def test_fusion_is_deterministic(sample_index: StaticIndex) -> None:
    now = datetime(2026, 10, 19, 8, 2, tzinfo=TZ)
    feed = _feed(now, _delayed("T1", "S1", 300))

    assert _fuse(sample_index, now, feed) == _fuse(sample_index, now, feed)
