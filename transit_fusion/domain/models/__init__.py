from .arrival import MergedArrival, ScheduledArrival, TimetableEntry
from .geo import GeoPoint, Polyline
from .gtfs import (
    ActiveServiceSet,
    Agency,
    CalendarException,
    LoadReport,
    Route,
    ServiceCalendar,
    StaticIndex,
    Stop,
    StopTime,
    Trip,
)
from .realtime import (
    FeedKind,
    FeedSnapshot,
    ResolvedVehicle,
    ServiceAlert,
    TripUpdate,
    VehiclePosition,
)

__all__ = [
    "ActiveServiceSet",
    "Agency",
    "CalendarException",
    "FeedKind",
    "FeedSnapshot",
    "GeoPoint",
    "LoadReport",
    "MergedArrival",
    "Polyline",
    "ResolvedVehicle",
    "Route",
    "ScheduledArrival",
    "ServiceAlert",
    "ServiceCalendar",
    "StaticIndex",
    "Stop",
    "StopTime",
    "TimetableEntry",
    "Trip",
    "TripUpdate",
    "VehiclePosition",
]
