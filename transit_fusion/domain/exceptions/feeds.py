from __future__ import annotations

from transit_fusion.domain.models.realtime import FeedKind


class FeedError(Exception):
    """Base exception for realtime feed failures."""


class FeedDecodeError(FeedError):
    """Raised when a feed payload is not a valid GTFS-Realtime message."""


class FeedUnavailable(FeedError):
    """Raised when a feed cannot be fetched and nothing is cached for it."""

    def __init__(self, kind: FeedKind, reason: str) -> None:
        super().__init__(f"{kind.value} feed unavailable: {reason}")
        self.kind = kind
        self.reason = reason
