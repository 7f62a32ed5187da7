from .feeds import FeedDecodeError, FeedError, FeedUnavailable
from .schedule import (
    DateOutOfRange,
    ScheduleError,
    ScheduleSourceError,
    UnknownRoute,
    UnknownStop,
)

__all__ = [
    "DateOutOfRange",
    "FeedDecodeError",
    "FeedError",
    "FeedUnavailable",
    "ScheduleError",
    "ScheduleSourceError",
    "UnknownRoute",
    "UnknownStop",
]
