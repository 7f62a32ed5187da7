from __future__ import annotations

from datetime import date, datetime, time

SECONDS_PER_DAY = 24 * 3600


def parse_gtfs_time(raw: str) -> int:
    """Parse GTFS ``H:MM:SS`` into seconds since service-day start.

    Hours may be 24 or more for trips that run past midnight. The seconds
    component is optional.
    """

    parts = raw.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid GTFS time: {raw!r}")
    hh = int(parts[0])
    mm = int(parts[1])
    ss = int(parts[2]) if len(parts) == 3 else 0
    if hh < 0 or not (0 <= mm < 60) or not (0 <= ss < 60):
        raise ValueError(f"Invalid GTFS time: {raw!r}")
    return hh * 3600 + mm * 60 + ss


def parse_gtfs_date(raw: str) -> date:
    return datetime.strptime(raw.strip(), "%Y%m%d").date()


def time_of_day(service_seconds: int) -> time:
    """Clock time for a service-day offset; 25:10:00 becomes 01:10:00."""

    s = int(service_seconds) % SECONDS_PER_DAY
    return time(hour=s // 3600, minute=(s % 3600) // 60, second=s % 60)


def seconds_of_day(t: time) -> int:
    return t.hour * 3600 + t.minute * 60 + t.second


def format_hhmm(t: time) -> str:
    return t.strftime("%H:%M")
