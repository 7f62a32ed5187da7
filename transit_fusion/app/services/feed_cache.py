from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from transit_fusion.app.ports.output import IRealtimeFeedProvider
from transit_fusion.domain.exceptions import FeedError, FeedUnavailable
from transit_fusion.domain.models.realtime import FeedKind, FeedSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TTL_S: Mapping[FeedKind, float] = {
    FeedKind.VEHICLE_POSITIONS: 5.0,
    FeedKind.TRIP_UPDATES: 5.0,
    FeedKind.ALERTS: 60.0,
}
DEFAULT_STALE_AFTER_S = 300.0


@dataclass(frozen=True, slots=True)
class _Entry:
    snapshot: FeedSnapshot
    stored_at: float
    # Upstream was already stale when we got it; refetching inside the TTL
    # would not help.
    stale_on_arrival: bool


@dataclass(frozen=True, slots=True)
class FeedStatus:
    kind: FeedKind
    available: bool
    age_s: float | None
    stale: bool
    fresh: bool


class RealtimeFeedCache:
    """Per-kind cache of decoded GTFS-Realtime snapshots.

    Reads inside the TTL are served from memory. Expired or stale entries
    trigger a fetch; when that fetch fails the previous snapshot is served
    as-is and only a cold cache raises FeedUnavailable. One lock per kind
    means concurrent readers share a single upstream request.
    """

    def __init__(
        self,
        provider: IRealtimeFeedProvider,
        *,
        ttl_s: Mapping[FeedKind, float] | None = None,
        stale_after_s: float = DEFAULT_STALE_AFTER_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.provider = provider
        self.ttl_s = dict(DEFAULT_TTL_S)
        if ttl_s:
            self.ttl_s.update(ttl_s)
        self.stale_after_s = stale_after_s
        self._clock = clock
        self._entries: dict[FeedKind, _Entry] = {}
        self._locks = {kind: asyncio.Lock() for kind in FeedKind}

    def _usable(self, entry: _Entry, kind: FeedKind, now: float) -> bool:
        if now - entry.stored_at >= self.ttl_s[kind]:
            return False
        if entry.stale_on_arrival:
            return True
        return not entry.snapshot.is_stale(now, stale_after_s=self.stale_after_s)

    def peek(self, kind: FeedKind) -> FeedSnapshot | None:
        """Last snapshot for ``kind`` without touching the network."""

        entry = self._entries.get(kind)
        return entry.snapshot if entry is not None else None

    async def get(self, kind: FeedKind, *, force: bool = False) -> FeedSnapshot:
        entry = self._entries.get(kind)
        if not force and entry is not None and self._usable(entry, kind, self._clock()):
            return entry.snapshot

        async with self._locks[kind]:
            # Another reader may have refreshed while we waited.
            entry = self._entries.get(kind)
            now = self._clock()
            if entry is not None and not force and self._usable(entry, kind, now):
                return entry.snapshot

            if entry is not None and entry.snapshot.is_stale(
                now, stale_after_s=self.stale_after_s
            ):
                logger.warning(
                    "%s feed is stale (%.0fs old), refetching",
                    kind.value,
                    entry.snapshot.age_s(now),
                )

            try:
                snapshot = await self.provider.fetch(kind)
            except FeedError as exc:
                if entry is not None:
                    logger.warning(
                        "Serving cached %s feed after failed refresh: %s",
                        kind.value,
                        exc,
                    )
                    return entry.snapshot
                if isinstance(exc, FeedUnavailable):
                    raise
                raise FeedUnavailable(kind, str(exc)) from exc

            stored_at = self._clock()
            stale = snapshot.is_stale(stored_at, stale_after_s=self.stale_after_s)
            if stale:
                logger.warning(
                    "%s feed arrived stale (%.0fs old)",
                    kind.value,
                    snapshot.age_s(stored_at),
                )
            self._entries[kind] = _Entry(
                snapshot=snapshot, stored_at=stored_at, stale_on_arrival=stale
            )
            return snapshot

    async def get_or_none(self, kind: FeedKind) -> FeedSnapshot | None:
        try:
            return await self.get(kind)
        except FeedUnavailable as exc:
            logger.info("%s", exc)
            return None

    def status(self, kind: FeedKind, *, fresh_within_s: float) -> FeedStatus:
        snapshot = self.peek(kind)
        if snapshot is None:
            return FeedStatus(
                kind=kind, available=False, age_s=None, stale=False, fresh=False
            )
        now = self._clock()
        return FeedStatus(
            kind=kind,
            available=True,
            age_s=snapshot.age_s(now),
            stale=snapshot.is_stale(now, stale_after_s=self.stale_after_s),
            fresh=snapshot.is_fresh(now, fresh_within_s=fresh_within_s),
        )
