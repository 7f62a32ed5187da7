from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time


@dataclass(frozen=True, slots=True)
class ScheduledArrival:
    """A static stop-time anchored to a concrete service day."""

    route_id: str
    trip_id: str
    service_id: str
    scheduled_at: datetime

    @property
    def scheduled_time(self) -> time:
        return self.scheduled_at.time()


@dataclass(frozen=True, slots=True)
class MergedArrival:
    route_id: str
    route_name: str
    trip_id: str
    scheduled_time: time
    effective_time: time
    is_realtime: bool
    delay_s: int = 0
    feed_fresh: bool = False
    effective_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.route_id, self.trip_id)


@dataclass(frozen=True, slots=True)
class TimetableEntry:
    route_name: str
    arrival_time: str  # HH:MM
