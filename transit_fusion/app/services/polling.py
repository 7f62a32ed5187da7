from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from transit_fusion.app.services.arrivals_service import ArrivalsService
from transit_fusion.app.services.feed_cache import RealtimeFeedCache
from transit_fusion.app.services.realtime_view_service import RealtimeViewService
from transit_fusion.domain.models.realtime import FeedKind

logger = logging.getLogger(__name__)

Tick = Callable[[], Awaitable[None]]

DEFAULT_INTERVALS_S: dict[str, float] = {
    "vehicle_positions": 20.0,
    "trip_updates": 15.0,
    "alerts": 60.0,
    "operational_warnings": 30.0,
    "active_services": 300.0,
}


@dataclass(slots=True)
class PeriodicTask:
    """Runs ``tick`` every ``interval_s`` until stopped.

    A failing tick is logged and the loop carries on; ``stop()`` wakes the
    sleeper immediately and waits for the current tick to finish.
    """

    name: str
    interval_s: float
    tick: Tick

    ticks: int = field(default=0, init=False)
    failures: int = field(default=0, init=False)
    _stop: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=f"poll:{self.name}")

    async def stop(self) -> None:
        self._stop.set()
        task = self._task
        self._task = None
        if task is not None:
            await task

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception:
                self.failures += 1
                logger.exception("Poller %s tick failed", self.name)
            self.ticks += 1

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                pass


@dataclass(slots=True)
class PollerSet:
    """The background refreshers of a running service."""

    tasks: list[PeriodicTask] = field(default_factory=list)

    def start(self) -> None:
        for task in self.tasks:
            task.start()
        logger.info("Started %d poller(s)", len(self.tasks))

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self.tasks))
        logger.info("Stopped %d poller(s)", len(self.tasks))


def _refresh(feeds: RealtimeFeedCache, kind: FeedKind) -> Tick:
    async def tick() -> None:
        await feeds.get(kind, force=True)

    return tick


def build_pollers(
    feeds: RealtimeFeedCache,
    view: RealtimeViewService,
    arrivals: ArrivalsService,
    *,
    intervals_s: dict[str, float] | None = None,
) -> PollerSet:
    intervals = dict(DEFAULT_INTERVALS_S)
    if intervals_s:
        intervals.update(intervals_s)

    async def services_tick() -> None:
        # Keeps the active-service cache warm across midnight and the cutoff.
        arrivals.refresh_active_services()

    async def warnings_tick() -> None:
        warnings = await view.operational_warnings()
        if warnings:
            logger.info(
                "Operational warnings: %s",
                ", ".join(f"{w.route_name}={w.warning_type.value}" for w in warnings),
            )

    tasks = [
        PeriodicTask(
            name=kind.value,
            interval_s=intervals[kind.value],
            tick=_refresh(feeds, kind),
        )
        for kind in FeedKind
    ]
    tasks.append(
        PeriodicTask(
            name="operational_warnings",
            interval_s=intervals["operational_warnings"],
            tick=warnings_tick,
        )
    )
    tasks.append(
        PeriodicTask(
            name="active_services",
            interval_s=intervals["active_services"],
            tick=services_tick,
        )
    )
    return PollerSet(tasks=tasks)
