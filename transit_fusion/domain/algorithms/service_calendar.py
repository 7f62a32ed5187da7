from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable

from transit_fusion.domain.models.gtfs import (
    ActiveServiceSet,
    CalendarException,
    ServiceCalendar,
)

DEFAULT_CUTOFF_HOUR = 6


def services_on(
    day: date,
    calendars: Iterable[ServiceCalendar],
    exceptions: Iterable[CalendarException] = (),
) -> frozenset[str]:
    """Service ids operating on one civil date.

    Weekly recurrence inside [start_date, end_date] first, then explicit
    calendar_dates exceptions for that date (added wins over recurrence,
    removed takes it away).
    """

    active = {c.service_id for c in calendars if c.runs_on(day)}
    for exc in exceptions:
        if exc.day != day:
            continue
        if exc.added:
            active.add(exc.service_id)
        else:
            active.discard(exc.service_id)
    return frozenset(active)


def is_late_night(now: datetime, *, cutoff_hour: int = DEFAULT_CUTOFF_HOUR) -> bool:
    return now.hour < cutoff_hour


def active_service_ids(
    day: date,
    *,
    now: datetime,
    calendars: Iterable[ServiceCalendar],
    exceptions: Iterable[CalendarException] = (),
    cutoff_hour: int = DEFAULT_CUTOFF_HOUR,
) -> ActiveServiceSet:
    """Resolve the services that matter for ``day`` as seen at ``now``.

    Between midnight and the cutoff the previous service day is still
    running (trips stamped 24:00 and later), so when ``day`` is today its
    services are unioned with yesterday's. Pure for a given set of inputs.
    """

    calendars = tuple(calendars)
    exceptions = tuple(exceptions)

    same_day = services_on(day, calendars, exceptions)
    previous_day: frozenset[str] = frozenset()
    if day == now.date() and is_late_night(now, cutoff_hour=cutoff_hour):
        previous_day = services_on(day - timedelta(days=1), calendars, exceptions)
    return ActiveServiceSet(day=day, same_day=same_day, previous_day=previous_day)
