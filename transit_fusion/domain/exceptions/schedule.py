class ScheduleError(Exception):
    """Base exception for static schedule failures."""


class ScheduleSourceError(ScheduleError):
    """Raised when a schedule source is misconfigured or unreachable."""


class UnknownStop(ScheduleError):
    """Raised when a stop id is not in the loaded schedule."""

    def __init__(self, stop_id: str) -> None:
        super().__init__(f"Unknown stop: {stop_id}")
        self.stop_id = stop_id


class UnknownRoute(ScheduleError):
    """Raised when a route id or short name is not in the loaded schedule."""

    def __init__(self, route: str) -> None:
        super().__init__(f"Unknown route: {route}")
        self.route = route


class DateOutOfRange(ScheduleError):
    """Raised when a timetable is requested too far from today."""
