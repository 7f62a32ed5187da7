from __future__ import annotations

from datetime import datetime, time

from transit_fusion.domain.algorithms.gtfs_time import format_hhmm


def countdown_minutes(arrival: time, now: time) -> int:
    """Whole minutes until ``arrival``; a clock time already passed today
    is read as tomorrow's."""

    now_m = now.hour * 60 + now.minute
    arr_m = arrival.hour * 60 + arrival.minute
    if arrival < now:
        return (24 * 60 - now_m) + arr_m
    return arr_m - now_m


def minutes_until(arrival: datetime, now: datetime) -> int:
    """Whole clock minutes between two instants, never negative."""

    delta = arrival.replace(second=0, microsecond=0) - now.replace(
        second=0, microsecond=0
    )
    return max(0, int(delta.total_seconds() // 60))


def _delay_suffix(delay_s: int) -> str:
    minutes = int(delay_s / 60)
    if minutes > 0:
        return f" (+{minutes}m)"
    if minutes < 0:
        return f" ({minutes}m)"
    return ""


def format_arrival(
    arrival: time | datetime,
    now: time | datetime,
    *,
    is_realtime: bool,
    delay_s: int = 0,
) -> str:
    """Rider-facing label. Given two instants, an arrival already passed
    (still inside the grace window) reads "Due"; bare clock times wrap to
    tomorrow."""

    if isinstance(arrival, datetime) and isinstance(now, datetime):
        countdown = minutes_until(arrival, now)
        clock = arrival.time()
    else:
        countdown = countdown_minutes(arrival, now)
        clock = arrival
    if countdown < 1:
        label = "Due"
    elif countdown == 1:
        label = "1 min"
    elif countdown < 60:
        label = f"{countdown} mins"
    else:
        label = format_hhmm(clock)

    if is_realtime and delay_s:
        label += _delay_suffix(delay_s)
    return label


def delay_text(delay_s: int) -> str:
    minutes = int(delay_s / 60)
    if minutes > 1:
        return f"{minutes} min late"
    if minutes < -1:
        return f"{-minutes} min early"
    if minutes == 1:
        return "1 min late"
    if minutes == -1:
        return "1 min early"
    return "On time"
