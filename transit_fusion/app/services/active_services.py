from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from transit_fusion.app.services.schedule_indexer import ScheduleRepository
from transit_fusion.domain.algorithms.service_calendar import (
    DEFAULT_CUTOFF_HOUR,
    active_service_ids,
    is_late_night,
)
from transit_fusion.domain.models.gtfs import ActiveServiceSet, StaticIndex

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"


def local_zone(index: StaticIndex, fallback: str | None = None) -> tzinfo:
    """The agency's zone from agency.txt, else ``fallback``, else the default."""

    for name in (index.timezone, fallback, DEFAULT_TIMEZONE):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, trying the next candidate", name)
    raise ZoneInfoNotFoundError(DEFAULT_TIMEZONE)


@dataclass(slots=True)
class ActiveServiceResolver:
    """Caches ActiveServiceSets per (date, late-night) for the current index.

    The cache is dropped when the repository swaps in a new index and when
    the civil date of ``now`` changes.
    """

    repository: ScheduleRepository
    cutoff_hour: int = DEFAULT_CUTOFF_HOUR

    _cache: dict[tuple[date, bool], ActiveServiceSet] = field(
        default_factory=dict, init=False, repr=False
    )
    _cache_index: StaticIndex | None = field(default=None, init=False, repr=False)
    _cache_day: date | None = field(default=None, init=False, repr=False)

    def clear(self) -> None:
        self._cache = {}
        self._cache_index = None
        self._cache_day = None

    def resolve(self, day: date, *, now: datetime) -> ActiveServiceSet:
        index = self.repository.current()
        if index is not self._cache_index or now.date() != self._cache_day:
            self._cache = {}
            self._cache_index = index
            self._cache_day = now.date()

        late_night = day == now.date() and is_late_night(
            now, cutoff_hour=self.cutoff_hour
        )
        key = (day, late_night)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = active_service_ids(
            day,
            now=now,
            calendars=index.calendars,
            exceptions=index.calendar_exceptions,
            cutoff_hour=self.cutoff_hour,
        )
        self._cache[key] = result
        logger.debug(
            "Resolved %d active service(s) for %s (late night: %s)",
            len(result),
            day.isoformat(),
            late_night,
        )
        return result
