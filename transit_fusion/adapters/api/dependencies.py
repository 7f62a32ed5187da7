from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request

from transit_fusion.adapters.persistence import LocalScheduleSource, S3ScheduleSource
from transit_fusion.adapters.realtime import HttpGtfsRealtimeFeedProvider
from transit_fusion.adapters.settings import FusionSettings
from transit_fusion.app.ports.output import IRealtimeFeedProvider, IScheduleSource
from transit_fusion.app.services.active_services import ActiveServiceResolver
from transit_fusion.app.services.arrivals_service import ArrivalsService
from transit_fusion.app.services.feed_cache import RealtimeFeedCache
from transit_fusion.app.services.realtime_view_service import RealtimeViewService
from transit_fusion.app.services.schedule_indexer import ScheduleRepository
from transit_fusion.domain.algorithms.vehicle_resolution import HourWindow
from transit_fusion.domain.models.realtime import FeedKind


@dataclass(slots=True)
class ServiceContainer:
    """Everything one process shares: the schedule, the feed cache and the
    services reading them."""

    settings: FusionSettings
    repository: ScheduleRepository
    active_services: ActiveServiceResolver
    provider: IRealtimeFeedProvider
    feeds: RealtimeFeedCache
    arrivals: ArrivalsService
    realtime: RealtimeViewService

    async def aclose(self) -> None:
        await self.provider.aclose()


def schedule_source(settings: FusionSettings) -> IScheduleSource:
    if settings.gtfs_s3_bucket:
        return S3ScheduleSource(
            bucket=settings.gtfs_s3_bucket, prefix=settings.gtfs_s3_prefix
        )
    return LocalScheduleSource(base_path=settings.gtfs_path)


def build_container(
    settings: FusionSettings | None = None,
    *,
    source: IScheduleSource | None = None,
    provider: IRealtimeFeedProvider | None = None,
) -> ServiceContainer:
    settings = settings or FusionSettings.from_env()
    repository = ScheduleRepository(source=source or schedule_source(settings))
    active_services = ActiveServiceResolver(
        repository=repository, cutoff_hour=settings.cutoff_hour
    )
    provider = provider or HttpGtfsRealtimeFeedProvider.from_settings(settings)
    feeds = RealtimeFeedCache(
        provider,
        ttl_s={kind: settings.ttl_for(kind) for kind in FeedKind},
        stale_after_s=settings.stale_after_s,
    )
    arrivals = ArrivalsService(
        repository=repository,
        services=active_services,
        feeds=feeds,
        timezone=settings.timezone,
        grace_s=settings.grace_s,
        fresh_within_s=settings.fresh_within_s,
    )
    realtime = RealtimeViewService(
        repository=repository,
        feeds=feeds,
        timezone=settings.timezone,
        unreliable_window=HourWindow(
            start_hour=settings.unreliable_start_hour,
            end_hour=settings.unreliable_end_hour,
        ),
        match_radius_m=settings.match_radius_m,
        stale_after_s=settings.stale_after_s,
        fresh_within_s=settings.fresh_within_s,
    )
    return ServiceContainer(
        settings=settings,
        repository=repository,
        active_services=active_services,
        provider=provider,
        feeds=feeds,
        arrivals=arrivals,
        realtime=realtime,
    )


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        container = build_container()
        request.app.state.container = container
    return container


def get_arrivals_service(
    container: ServiceContainer = Depends(get_container),
) -> ArrivalsService:
    return container.arrivals


def get_realtime_view_service(
    container: ServiceContainer = Depends(get_container),
) -> RealtimeViewService:
    return container.realtime
