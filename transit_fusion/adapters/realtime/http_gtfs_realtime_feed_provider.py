from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Mapping

import httpx

from transit_fusion.adapters.realtime.gtfs_rt_decoder import decode_feed
from transit_fusion.adapters.settings import FusionSettings
from transit_fusion.app.ports.output import IRealtimeFeedProvider
from transit_fusion.domain.exceptions import FeedUnavailable
from transit_fusion.domain.models.realtime import FeedKind, FeedSnapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HttpGtfsRealtimeFeedProvider(IRealtimeFeedProvider):
    """Fetches GTFS-Realtime feeds over HTTP and decodes them.

    URLs, headers and timeout come from FusionSettings (see its env vars).
    A shared httpx.AsyncClient is created lazily and reused across fetches;
    tests inject one built on httpx.MockTransport.

    Notes:
      - Network errors and non-2xx responses surface as FeedUnavailable.
      - Undecodable payloads surface as FeedDecodeError.
      - No caching here; RealtimeFeedCache owns that.
    """

    urls: Mapping[FeedKind, str]
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout_s: float = 10.0
    client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: FusionSettings) -> "HttpGtfsRealtimeFeedProvider":
        return cls(
            urls=dict(settings.feed_urls),
            headers=dict(settings.feed_headers),
            timeout_s=settings.feed_timeout_s,
        )

    def _client(self) -> httpx.AsyncClient:
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout_s)
        return self.client

    async def fetch_bytes(self, kind: FeedKind) -> bytes:
        url = self.urls.get(kind)
        if not url:
            raise FeedUnavailable(kind, "no URL configured")

        try:
            resp = await self._client().get(url, headers=dict(self.headers))
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "GTFS-RT %s returned HTTP %s", kind.value, exc.response.status_code
            )
            raise FeedUnavailable(kind, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("GTFS-RT %s fetch failed: %s", kind.value, exc)
            raise FeedUnavailable(kind, str(exc) or type(exc).__name__) from exc

        return resp.content

    async def fetch(self, kind: FeedKind) -> FeedSnapshot:
        content = await self.fetch_bytes(kind)
        return decode_feed(kind, content, decoded_at=time.time())

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
