from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2  # type: ignore

from transit_fusion.domain.exceptions import FeedDecodeError
from transit_fusion.domain.models.realtime import (
    ActivePeriod,
    AlertEntity,
    FeedKind,
    FeedSnapshot,
    InformedEntity,
    StopTimeUpdate,
    TripUpdate,
    VehiclePosition,
)

_CANCELED = gtfs_realtime_pb2.TripDescriptor.CANCELED
_SKIPPED = gtfs_realtime_pb2.TripUpdate.StopTimeUpdate.SKIPPED


def decode_feed(kind: FeedKind, content: bytes, *, decoded_at: float) -> FeedSnapshot:
    """Decode one GTFS-Realtime FeedMessage into a FeedSnapshot of domain records.

    Raises FeedDecodeError when the bytes are not a FeedMessage.
    """

    if not content:
        raise FeedDecodeError(f"{kind.value}: empty payload")

    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(content)
    except DecodeError as exc:
        raise FeedDecodeError(f"{kind.value}: {exc}") from exc

    generated_at: int | None = None
    if feed.HasField("header") and feed.header.HasField("timestamp"):
        generated_at = int(feed.header.timestamp) or None

    if kind == FeedKind.VEHICLE_POSITIONS:
        payload: tuple[Any, ...] = _vehicle_positions(feed)
    elif kind == FeedKind.TRIP_UPDATES:
        payload = _trip_updates(feed)
    else:
        payload = _alerts(feed)

    return FeedSnapshot(
        kind=kind,
        decoded_at=decoded_at,
        generated_at=generated_at,
        payload=payload,
    )


def _vehicle_positions(feed: Any) -> tuple[VehiclePosition, ...]:
    out: list[VehiclePosition] = []

    for ent in feed.entity:
        if not ent.HasField("vehicle"):
            continue

        v = ent.vehicle
        if not v.HasField("position"):
            continue

        pos = v.position
        lat = float(pos.latitude)
        lon = float(pos.longitude)

        trip_id = None
        route_id = None
        if v.HasField("trip"):
            trip_id = v.trip.trip_id or None
            route_id = v.trip.route_id or None

        vehicle_id = None
        label = None
        if v.HasField("vehicle"):
            vehicle_id = v.vehicle.id or None
            label = v.vehicle.label or None

        bearing = float(pos.bearing) if pos.HasField("bearing") else None
        speed = float(pos.speed) if pos.HasField("speed") else None

        timestamp = None
        if v.HasField("timestamp") and int(v.timestamp) > 0:
            timestamp = datetime.fromtimestamp(int(v.timestamp), tz=timezone.utc)

        occupancy = None
        if v.HasField("occupancy_status"):
            occupancy = gtfs_realtime_pb2.VehiclePosition.OccupancyStatus.Name(
                v.occupancy_status
            )

        out.append(
            VehiclePosition(
                vehicle_id=vehicle_id or ent.id or None,
                trip_id=trip_id,
                route_id=route_id,
                lat=lat,
                lon=lon,
                bearing=bearing,
                speed_mps=speed,
                timestamp=timestamp,
                stop_id=v.stop_id or None,
                label=label,
                occupancy_status=occupancy,
            )
        )

    return tuple(out)


def _event(stu: Any, name: str) -> tuple[int | None, int | None]:
    if not stu.HasField(name):
        return None, None
    ev = getattr(stu, name)
    at = int(ev.time) if ev.HasField("time") and int(ev.time) > 0 else None
    delay = int(ev.delay) if ev.HasField("delay") else None
    return at, delay


def _trip_updates(feed: Any) -> tuple[TripUpdate, ...]:
    out: list[TripUpdate] = []

    for ent in feed.entity:
        if not ent.HasField("trip_update"):
            continue

        tu = ent.trip_update
        stus: list[StopTimeUpdate] = []
        for stu in tu.stop_time_update:
            arrival_time, arrival_delay = _event(stu, "arrival")
            departure_time, departure_delay = _event(stu, "departure")
            stus.append(
                StopTimeUpdate(
                    stop_id=stu.stop_id or None,
                    stop_sequence=(
                        int(stu.stop_sequence)
                        if stu.HasField("stop_sequence")
                        else None
                    ),
                    arrival_time=arrival_time,
                    arrival_delay=arrival_delay,
                    departure_time=departure_time,
                    departure_delay=departure_delay,
                    skipped=stu.schedule_relationship == _SKIPPED,
                )
            )

        out.append(
            TripUpdate(
                trip_id=tu.trip.trip_id or None,
                route_id=tu.trip.route_id or None,
                canceled=tu.trip.schedule_relationship == _CANCELED,
                stop_time_updates=tuple(stus),
            )
        )

    return tuple(out)


def _first_translation(text: Any) -> str | None:
    for tr in text.translation:
        if tr.text:
            return str(tr.text)
    return None


def _alerts(feed: Any) -> tuple[AlertEntity, ...]:
    out: list[AlertEntity] = []

    for ent in feed.entity:
        if not ent.HasField("alert"):
            continue

        a = ent.alert
        informed = tuple(
            InformedEntity(
                route_id=ie.route_id or None,
                trip_id=(ie.trip.trip_id or None) if ie.HasField("trip") else None,
                stop_id=ie.stop_id or None,
            )
            for ie in a.informed_entity
        )
        periods = tuple(
            ActivePeriod(
                start=int(p.start) if p.HasField("start") and p.start else None,
                end=int(p.end) if p.HasField("end") and p.end else None,
            )
            for p in a.active_period
        )

        effect = None
        if a.HasField("effect"):
            effect = gtfs_realtime_pb2.Alert.Effect.Name(a.effect)
        cause = None
        if a.HasField("cause"):
            cause = gtfs_realtime_pb2.Alert.Cause.Name(a.cause)

        out.append(
            AlertEntity(
                alert_id=ent.id,
                informed_entities=informed,
                header_text=_first_translation(a.header_text),
                description_text=_first_translation(a.description_text),
                effect=effect,
                cause=cause,
                active_periods=periods,
            )
        )

    return tuple(out)
