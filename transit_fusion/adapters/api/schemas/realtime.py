from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from transit_fusion.adapters.api.schemas.geo import GeoPointSchema


class TransitRouteSchema(BaseModel):
    route_id: str
    short_name: str | None = None
    long_name: str | None = None
    color: str | None = None
    text_color: str | None = None


class RouteShapesSchema(BaseModel):
    route_id: str
    shapes: list[list[GeoPointSchema]]


class RouteStopSchema(BaseModel):
    stop_id: str
    name: str
    location: GeoPointSchema


class VehicleSchema(BaseModel):
    vehicle_id: str | None = None
    trip_id: str | None = None
    route_id: str
    route_name: str
    resolved_by: str
    lat: float
    lon: float
    bearing: float | None = None
    speed_mps: float | None = None
    timestamp: datetime | None = None
    label: str | None = None
    occupancy_status: str | None = None
    headsign: str | None = None


class VehiclesResponseSchema(BaseModel):
    fetched_at: datetime | None = None
    is_stale: bool
    is_fresh: bool
    dropped: int
    vehicles: list[VehicleSchema]


class ActivePeriodSchema(BaseModel):
    start: datetime | None = None
    end: datetime | None = None


class AlertSchema(BaseModel):
    alert_id: str
    routes: list[str]
    header: str
    description: str
    alert_type: str
    severity: str
    active_periods: list[ActivePeriodSchema]


class OperationalWarningSchema(BaseModel):
    route_name: str
    warning_type: str
    delay_minutes: int
    affected_trips: int
