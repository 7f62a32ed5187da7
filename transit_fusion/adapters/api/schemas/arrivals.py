from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from transit_fusion.adapters.api.schemas.geo import GeoPointSchema


class StopSchema(BaseModel):
    stop_id: str
    name: str
    code: str | None = None
    location: GeoPointSchema
    routes: list[str] = Field(default_factory=list)


class ArrivalSchema(BaseModel):
    route_id: str
    route_name: str
    trip_id: str
    scheduled_time: str  # HH:MM
    effective_time: str  # HH:MM
    is_realtime: bool
    delay_s: int
    delay_text: str
    display: str
    feed_fresh: bool


class StopArrivalsSchema(BaseModel):
    stop: StopSchema
    as_of: datetime
    status: str
    realtime_available: bool
    feed_fresh: bool
    arrivals: list[ArrivalSchema]


class FavoriteSchema(BaseModel):
    stop_id: str
    route: str


class FavoritesRequestSchema(BaseModel):
    favorites: list[FavoriteSchema]


class FavoriteArrivalsSchema(BaseModel):
    stop: StopSchema
    route: str
    arrivals: list[ArrivalSchema]


class TimetableEntrySchema(BaseModel):
    route_name: str
    arrival_time: str  # HH:MM


class TimetableSchema(BaseModel):
    stop_id: str
    service_date: date
    route: str | None = None
    entries: list[TimetableEntrySchema]


class NearbyStopSchema(BaseModel):
    stop: StopSchema
    distance_m: float


class StatsSchema(BaseModel):
    routes: int
    stops: int
    trips: int
    active_services: int
    vehicles: int | None = None
    skipped_rows: dict[str, int]
    missing_relations: list[str]
