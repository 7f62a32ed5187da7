from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from transit_fusion.adapters.api.dependencies import get_arrivals_service
from transit_fusion.adapters.api.schemas.arrivals import (
    ArrivalSchema,
    FavoriteArrivalsSchema,
    FavoritesRequestSchema,
    NearbyStopSchema,
    StatsSchema,
    StopArrivalsSchema,
    StopSchema,
    TimetableEntrySchema,
    TimetableSchema,
)
from transit_fusion.adapters.api.schemas.geo import GeoPointSchema
from transit_fusion.app.services.arrivals_service import ArrivalsService
from transit_fusion.domain.algorithms.display import delay_text, format_arrival
from transit_fusion.domain.algorithms.gtfs_time import format_hhmm
from transit_fusion.domain.exceptions import DateOutOfRange, UnknownStop
from transit_fusion.domain.models.arrival import MergedArrival
from transit_fusion.domain.models.geo import GeoPoint
from transit_fusion.domain.models.gtfs import Stop

router = APIRouter(prefix="/stops", tags=["arrivals"])
stats_router = APIRouter(tags=["stats"])

NO_UPCOMING = "no_upcoming_arrivals"


def _stop_to_schema(stop: Stop, routes: tuple[str, ...] = ()) -> StopSchema:
    return StopSchema(
        stop_id=stop.stop_id,
        name=stop.name,
        code=stop.code,
        location=GeoPointSchema(lat=stop.location.lat, lon=stop.location.lon),
        routes=list(routes),
    )


def _arrival_to_schema(a: MergedArrival, now: datetime) -> ArrivalSchema:
    return ArrivalSchema(
        route_id=a.route_id,
        route_name=a.route_name,
        trip_id=a.trip_id,
        scheduled_time=format_hhmm(a.scheduled_time),
        effective_time=format_hhmm(a.effective_time),
        is_realtime=a.is_realtime,
        delay_s=a.delay_s,
        delay_text=delay_text(a.delay_s),
        display=format_arrival(
            a.effective_at or a.effective_time,
            now if a.effective_at is not None else now.time(),
            is_realtime=a.is_realtime,
            delay_s=a.delay_s,
        ),
        feed_fresh=a.feed_fresh,
    )


@router.get("/nearby", response_model=list[NearbyStopSchema])
def list_nearby_stops(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lon: float = Query(..., ge=-180.0, le=180.0),
    radius_m: float = Query(default=500.0, gt=0.0, le=5000.0),
    limit: int | None = Query(default=None, ge=1),
    service: ArrivalsService = Depends(get_arrivals_service),
) -> list[NearbyStopSchema]:
    return [
        NearbyStopSchema(
            stop=_stop_to_schema(n.stop, n.route_names), distance_m=n.distance_m
        )
        for n in service.nearby(
            GeoPoint(lat=lat, lon=lon), radius_m=radius_m, limit=limit
        )
    ]


@router.get("/search", response_model=list[StopSchema])
def search_stops(
    q: str = Query(..., min_length=1),
    service: ArrivalsService = Depends(get_arrivals_service),
) -> list[StopSchema]:
    return [_stop_to_schema(s) for s in service.search_stops(q)]


@stats_router.get("/stats", response_model=StatsSchema)
def get_stats(
    service: ArrivalsService = Depends(get_arrivals_service),
) -> StatsSchema:
    stats = service.stats()
    return StatsSchema(
        routes=stats.routes,
        stops=stats.stops,
        trips=stats.trips,
        active_services=stats.active_services,
        vehicles=stats.vehicles,
        skipped_rows={k: v for k, v in stats.report.skipped.items() if v},
        missing_relations=list(stats.report.missing),
    )


@router.post("/favorites/arrivals", response_model=list[FavoriteArrivalsSchema])
async def favorite_arrivals(
    req: FavoritesRequestSchema,
    service: ArrivalsService = Depends(get_arrivals_service),
) -> list[FavoriteArrivalsSchema]:
    results = await service.favorites((f.stop_id, f.route) for f in req.favorites)
    now = service.local_now()
    return [
        FavoriteArrivalsSchema(
            stop=_stop_to_schema(r.stop),
            route=r.route_name,
            arrivals=[_arrival_to_schema(a, now) for a in r.arrivals],
        )
        for r in results
    ]


@router.get("/{stop_id}/arrivals", response_model=StopArrivalsSchema)
async def get_stop_arrivals(
    stop_id: str,
    route: str | None = Query(default=None),
    service: ArrivalsService = Depends(get_arrivals_service),
) -> StopArrivalsSchema:
    try:
        result = await service.arrivals_for_stop(stop_id, route=route)
    except UnknownStop as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return StopArrivalsSchema(
        stop=_stop_to_schema(result.stop),
        as_of=result.as_of,
        status="ok" if result.arrivals else NO_UPCOMING,
        realtime_available=result.realtime_available,
        feed_fresh=result.feed_fresh,
        arrivals=[_arrival_to_schema(a, result.as_of) for a in result.arrivals],
    )


@router.get("/{stop_id}/timetable", response_model=TimetableSchema)
def get_stop_timetable(
    stop_id: str,
    on: date | None = Query(default=None, alias="date"),
    route: str | None = Query(default=None),
    service: ArrivalsService = Depends(get_arrivals_service),
) -> TimetableSchema:
    day = on or service.local_now().date()
    try:
        entries = service.timetable(stop_id, day=day, route=route)
    except UnknownStop as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DateOutOfRange as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return TimetableSchema(
        stop_id=stop_id,
        service_date=day,
        route=route,
        entries=[
            TimetableEntrySchema(route_name=e.route_name, arrival_time=e.arrival_time)
            for e in entries
        ],
    )
