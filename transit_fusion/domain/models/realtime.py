from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class FeedKind(str, Enum):
    VEHICLE_POSITIONS = "vehicle_positions"
    TRIP_UPDATES = "trip_updates"
    ALERTS = "alerts"


@dataclass(frozen=True, slots=True)
class FeedSnapshot:
    """One decoded GTFS-Realtime message.

    ``generated_at`` comes from the feed header (epoch seconds) and is what
    staleness and freshness are judged on. ``decoded_at`` is our own wall
    clock at decode time and is only used when the header has no timestamp.
    """

    kind: FeedKind
    decoded_at: float
    generated_at: int | None
    payload: tuple[Any, ...] = ()

    def age_s(self, now: float) -> float:
        reference = self.generated_at if self.generated_at else self.decoded_at
        return max(0.0, float(now) - float(reference))

    def is_stale(self, now: float, *, stale_after_s: float) -> bool:
        return self.age_s(now) > stale_after_s

    def is_fresh(self, now: float, *, fresh_within_s: float) -> bool:
        return self.age_s(now) <= fresh_within_s


@dataclass(frozen=True, slots=True)
class StopTimeUpdate:
    stop_id: str | None
    stop_sequence: int | None = None
    arrival_time: int | None = None
    arrival_delay: int | None = None
    departure_time: int | None = None
    departure_delay: int | None = None
    skipped: bool = False


@dataclass(frozen=True, slots=True)
class TripUpdate:
    trip_id: str | None
    route_id: str | None = None
    canceled: bool = False
    stop_time_updates: tuple[StopTimeUpdate, ...] = ()


@dataclass(frozen=True, slots=True)
class VehiclePosition:
    """A vehicle record as reported upstream, before route resolution."""

    vehicle_id: str | None
    trip_id: str | None
    route_id: str | None
    lat: float
    lon: float
    bearing: float | None = None
    speed_mps: float | None = None
    timestamp: datetime | None = None
    stop_id: str | None = None
    label: str | None = None
    occupancy_status: str | None = None


class ResolutionMethod(str, Enum):
    TRIP = "trip"
    ROUTE = "route"
    GEOMETRY = "geometry"


@dataclass(frozen=True, slots=True)
class ResolvedVehicle:
    vehicle_id: str | None
    route_id: str
    route_name: str
    lat: float
    lon: float
    method: ResolutionMethod
    trip_id: str | None = None
    bearing: float | None = None
    speed_mps: float | None = None
    timestamp: datetime | None = None
    label: str | None = None
    occupancy_status: str | None = None
    headsign: str | None = None


@dataclass(frozen=True, slots=True)
class InformedEntity:
    route_id: str | None = None
    trip_id: str | None = None
    stop_id: str | None = None


@dataclass(frozen=True, slots=True)
class ActivePeriod:
    start: int | None = None
    end: int | None = None

    def contains(self, epoch_s: float) -> bool:
        if self.start is not None and epoch_s < self.start:
            return False
        if self.end is not None and epoch_s > self.end:
            return False
        return True


@dataclass(frozen=True, slots=True)
class AlertEntity:
    """Alert as decoded from the feed, route references not yet normalised."""

    alert_id: str
    informed_entities: tuple[InformedEntity, ...] = ()
    header_text: str | None = None
    description_text: str | None = None
    effect: str | None = None
    cause: str | None = None
    active_periods: tuple[ActivePeriod, ...] = ()


class AlertType(str, Enum):
    NO_SERVICE = "no_service"
    REDUCED_SERVICE = "reduced_service"
    SIGNIFICANT_DELAYS = "significant_delays"
    DETOUR = "detour"
    ADDITIONAL_SERVICE = "additional_service"
    MODIFIED_SERVICE = "modified_service"
    STOP_MOVED = "stop_moved"
    STOP_CLOSED = "stop_closed"
    OTHER_EFFECT = "other_effect"
    UNKNOWN_EFFECT = "unknown_effect"
    DELAY = "delay"
    SERVICE_CHANGE = "service_change"
    OTHER = "other"


class AlertSeverity(str, Enum):
    UNKNOWN = "unknown"
    INFO = "info"
    WARNING = "warning"
    SEVERE = "severe"


@dataclass(frozen=True, slots=True)
class ServiceAlert:
    alert_id: str
    affected_routes: frozenset[str]  # route display names
    header_text: str
    description_text: str
    alert_type: AlertType
    severity: AlertSeverity
    active_periods: tuple[ActivePeriod, ...] = ()

    def is_active_at(self, epoch_s: float) -> bool:
        if not self.active_periods:
            return True
        return any(p.contains(epoch_s) for p in self.active_periods)


class OperationalWarningType(str, Enum):
    SIGNIFICANT_DELAYS = "significant_delays"
    MODERATE_DELAYS = "moderate_delays"
    TRIP_CANCELLATION = "trip_cancellation"


@dataclass(frozen=True, slots=True)
class OperationalWarning:
    route_name: str
    warning_type: OperationalWarningType
    delay_minutes: int
    affected_trips: int
