from __future__ import annotations

from datetime import datetime, time
from zoneinfo import ZoneInfo

import pytest

from transit_fusion.domain.algorithms.display import (
    countdown_minutes,
    delay_text,
    format_arrival,
    minutes_until,
)


def test_countdown_wraps_to_next_day() -> None:
    assert countdown_minutes(time(8, 10), time(8, 2)) == 8
    assert countdown_minutes(time(0, 5), time(23, 55)) == 10


@pytest.mark.parametrize(
    ("arrival", "now", "expected"),
    [
        (time(8, 2), time(8, 2), "Due"),
        (time(8, 3), time(8, 2), "1 min"),
        (time(8, 30), time(8, 2), "28 mins"),
        (time(9, 15), time(8, 2), "09:15"),
    ],
)
def test_format_arrival_static(arrival: time, now: time, expected: str) -> None:
    assert format_arrival(arrival, now, is_realtime=False) == expected


def test_format_arrival_from_instants_never_wraps() -> None:
    tz = ZoneInfo("America/New_York")
    now = datetime(2026, 10, 19, 8, 20, 30, tzinfo=tz)

    just_passed = datetime(2026, 10, 19, 8, 20, tzinfo=tz)
    assert format_arrival(just_passed, now, is_realtime=True) == "Due"
    assert minutes_until(just_passed, now) == 0

    after_midnight = datetime(2026, 10, 20, 0, 5, tzinfo=tz)
    late = datetime(2026, 10, 19, 23, 55, tzinfo=tz)
    assert format_arrival(after_midnight, late, is_realtime=False) == "10 mins"
    assert format_arrival(after_midnight, now, is_realtime=False) == "00:05"


def test_format_arrival_realtime_shows_delay() -> None:
    now = time(8, 2)
    assert format_arrival(time(8, 5), now, is_realtime=True, delay_s=300) == (
        "3 mins (+5m)"
    )
    assert format_arrival(time(8, 5), now, is_realtime=True, delay_s=-120) == (
        "3 mins (-2m)"
    )
    assert format_arrival(time(8, 5), now, is_realtime=True, delay_s=30) == "3 mins"
    # Static entries never carry a delay suffix.
    assert format_arrival(time(8, 5), now, is_realtime=False, delay_s=300) == "3 mins"


@pytest.mark.parametrize(
    ("delay_s", "expected"),
    [
        (0, "On time"),
        (59, "On time"),
        (60, "1 min late"),
        (-90, "1 min early"),
        (300, "5 min late"),
        (-420, "7 min early"),
    ],
)
def test_delay_text(delay_s: int, expected: str) -> None:
    assert delay_text(delay_s) == expected
