from .realtime_feed_provider import IRealtimeFeedProvider
from .schedule_source import IScheduleSource

__all__ = [
    "IRealtimeFeedProvider",
    "IScheduleSource",
]
