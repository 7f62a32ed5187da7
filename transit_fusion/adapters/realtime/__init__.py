from .gtfs_rt_decoder import decode_feed
from .http_gtfs_realtime_feed_provider import HttpGtfsRealtimeFeedProvider

__all__ = [
    "HttpGtfsRealtimeFeedProvider",
    "decode_feed",
]
