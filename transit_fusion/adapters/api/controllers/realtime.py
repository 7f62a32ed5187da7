from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query

from transit_fusion.adapters.api.dependencies import get_realtime_view_service
from transit_fusion.adapters.api.schemas.geo import GeoPointSchema
from transit_fusion.adapters.api.schemas.realtime import (
    ActivePeriodSchema,
    AlertSchema,
    OperationalWarningSchema,
    RouteShapesSchema,
    RouteStopSchema,
    TransitRouteSchema,
    VehicleSchema,
    VehiclesResponseSchema,
)
from transit_fusion.app.services.realtime_view_service import RealtimeViewService
from transit_fusion.domain.algorithms.stops import search_routes
from transit_fusion.domain.exceptions import UnknownRoute
from transit_fusion.domain.models.gtfs import Route

router = APIRouter(prefix="/realtime", tags=["realtime"])


def _epoch(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _route_to_schema(r: Route) -> TransitRouteSchema:
    return TransitRouteSchema(
        route_id=r.route_id,
        short_name=r.short_name,
        long_name=r.long_name,
        color=r.color,
        text_color=r.text_color,
    )


@router.get("/routes", response_model=list[TransitRouteSchema])
def list_routes(
    q: str | None = Query(default=None),
    service: RealtimeViewService = Depends(get_realtime_view_service),
) -> list[TransitRouteSchema]:
    routes = service.list_routes()
    if q:
        routes = tuple(search_routes(q, routes))
    return [_route_to_schema(r) for r in routes]


@router.get("/routes/{route}/shapes", response_model=RouteShapesSchema)
def get_route_shapes(
    route: str,
    service: RealtimeViewService = Depends(get_realtime_view_service),
) -> RouteShapesSchema:
    try:
        shapes = service.route_shapes(route=route)
    except UnknownRoute as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return RouteShapesSchema(
        route_id=route,
        shapes=[[GeoPointSchema(lat=p.lat, lon=p.lon) for p in pts] for pts in shapes],
    )


@router.get("/routes/{route}/stops", response_model=list[RouteStopSchema])
def get_route_stops(
    route: str,
    service: RealtimeViewService = Depends(get_realtime_view_service),
) -> list[RouteStopSchema]:
    try:
        stops = service.route_stops(route=route)
    except UnknownRoute as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [
        RouteStopSchema(
            stop_id=s.stop_id,
            name=s.name,
            location=GeoPointSchema(lat=s.location.lat, lon=s.location.lon),
        )
        for s in stops
    ]


@router.get("/vehicles", response_model=VehiclesResponseSchema)
async def list_vehicles(
    route: list[str] | None = Query(default=None),
    service: RealtimeViewService = Depends(get_realtime_view_service),
) -> VehiclesResponseSchema:
    view = await service.list_vehicles(routes=set(route) if route else None)

    return VehiclesResponseSchema(
        fetched_at=view.fetched_at,
        is_stale=view.is_stale,
        is_fresh=view.is_fresh,
        dropped=view.report.dropped,
        vehicles=[
            VehicleSchema(
                vehicle_id=v.vehicle_id,
                trip_id=v.trip_id,
                route_id=v.route_id,
                route_name=v.route_name,
                resolved_by=v.method.value,
                lat=v.lat,
                lon=v.lon,
                bearing=v.bearing,
                speed_mps=v.speed_mps,
                timestamp=v.timestamp,
                label=v.label,
                occupancy_status=v.occupancy_status,
                headsign=v.headsign,
            )
            for v in view.vehicles
        ],
    )


@router.get("/alerts", response_model=list[AlertSchema])
async def list_alerts(
    route: str | None = Query(default=None),
    service: RealtimeViewService = Depends(get_realtime_view_service),
) -> list[AlertSchema]:
    try:
        alerts = await service.alerts(route=route)
    except UnknownRoute as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [
        AlertSchema(
            alert_id=a.alert_id,
            routes=sorted(a.affected_routes),
            header=a.header_text,
            description=a.description_text,
            alert_type=a.alert_type.value,
            severity=a.severity.value,
            active_periods=[
                ActivePeriodSchema(start=_epoch(p.start), end=_epoch(p.end))
                for p in a.active_periods
            ],
        )
        for a in alerts
    ]


@router.get("/warnings", response_model=list[OperationalWarningSchema])
async def list_operational_warnings(
    service: RealtimeViewService = Depends(get_realtime_view_service),
) -> list[OperationalWarningSchema]:
    return [
        OperationalWarningSchema(
            route_name=w.route_name,
            warning_type=w.warning_type.value,
            delay_minutes=w.delay_minutes,
            affected_trips=w.affected_trips,
        )
        for w in await service.operational_warnings()
    ]
