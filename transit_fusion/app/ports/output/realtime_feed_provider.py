from __future__ import annotations

from abc import ABC, abstractmethod

from transit_fusion.domain.models.realtime import FeedKind, FeedSnapshot


class IRealtimeFeedProvider(ABC):
    """Port for obtaining decoded GTFS-Realtime feeds."""

    @abstractmethod
    async def fetch(self, kind: FeedKind) -> FeedSnapshot:
        """Fetch and decode one feed.

        Raises FeedUnavailable on network errors and non-2xx responses,
        FeedDecodeError when the payload is not a FeedMessage.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
