from __future__ import annotations

from collections import Counter
from typing import Iterable

from transit_fusion.domain.models.gtfs import StaticIndex
from transit_fusion.domain.models.realtime import (
    AlertEntity,
    AlertSeverity,
    AlertType,
    OperationalWarning,
    OperationalWarningType,
    ServiceAlert,
    TripUpdate,
)

DEFAULT_HEADER = "Service Alert"

# Keyed by the GTFS-Realtime Alert.Effect enum name.
_EFFECT_TYPES: dict[str, AlertType] = {
    "NO_SERVICE": AlertType.NO_SERVICE,
    "REDUCED_SERVICE": AlertType.REDUCED_SERVICE,
    "SIGNIFICANT_DELAYS": AlertType.SIGNIFICANT_DELAYS,
    "DETOUR": AlertType.DETOUR,
    "ADDITIONAL_SERVICE": AlertType.ADDITIONAL_SERVICE,
    "MODIFIED_SERVICE": AlertType.MODIFIED_SERVICE,
    "STOP_MOVED": AlertType.STOP_MOVED,
    "OTHER_EFFECT": AlertType.OTHER_EFFECT,
}

_SEVERE_CAUSES = frozenset({"ACCIDENT", "STRIKE", "POLICE_ACTIVITY"})
_WARNING_CAUSES = frozenset({"CONSTRUCTION", "MAINTENANCE", "TECHNICAL_PROBLEM"})

# Checked in order; first keyword found wins.
_TEXT_TYPES: tuple[tuple[str, AlertType], ...] = (
    ("detour", AlertType.DETOUR),
    ("delay", AlertType.DELAY),
    ("stop moved", AlertType.STOP_MOVED),
    ("stop closed", AlertType.STOP_CLOSED),
    ("no service", AlertType.NO_SERVICE),
    ("reduced service", AlertType.REDUCED_SERVICE),
    ("service change", AlertType.SERVICE_CHANGE),
)

SIGNIFICANT_DELAY_S = 300
MIN_DELAYED_SAMPLES = 2


def alert_type_from_text(text: str) -> AlertType:
    lowered = text.lower()
    for keyword, alert_type in _TEXT_TYPES:
        if keyword in lowered:
            return alert_type
    return AlertType.OTHER


def severity_from_text(text: str, alert_type: AlertType) -> AlertSeverity:
    lowered = text.lower()
    if "severe" in lowered or "emergency" in lowered:
        return AlertSeverity.SEVERE
    if alert_type == AlertType.NO_SERVICE:
        return AlertSeverity.SEVERE
    if "warning" in lowered or alert_type in (
        AlertType.DETOUR,
        AlertType.SIGNIFICANT_DELAYS,
    ):
        return AlertSeverity.WARNING
    if "info" in lowered:
        return AlertSeverity.INFO
    return AlertSeverity.UNKNOWN


def classify_alert(entity: AlertEntity) -> tuple[AlertType, AlertSeverity]:
    """Effect and cause enums first; keyword sniffing of the description
    only when the feed leaves them unknown or unset."""

    description = entity.description_text or ""

    if entity.effect is None or entity.effect == "UNKNOWN_EFFECT":
        alert_type = alert_type_from_text(description)
    else:
        alert_type = _EFFECT_TYPES.get(entity.effect, AlertType.UNKNOWN_EFFECT)

    if entity.cause in _SEVERE_CAUSES:
        severity = AlertSeverity.SEVERE
    elif entity.cause in _WARNING_CAUSES:
        severity = AlertSeverity.WARNING
    else:
        severity = severity_from_text(description, alert_type)

    return alert_type, severity


def _affected_routes(entity: AlertEntity, index: StaticIndex) -> frozenset[str]:
    if not entity.informed_entities:
        # Agency-wide.
        return frozenset(index.display_name(r) for r in index.routes_by_id)

    names: set[str] = set()
    for informed in entity.informed_entities:
        if informed.route_id:
            names.add(index.display_name(informed.route_id))
        if informed.trip_id:
            route_id = index.trip_to_route.get(informed.trip_id)
            if route_id:
                names.add(index.display_name(route_id))
    return frozenset(names)


def normalize_alerts(
    entities: Iterable[AlertEntity], index: StaticIndex
) -> tuple[ServiceAlert, ...]:
    """Turn decoded alert entities into ServiceAlerts keyed by route display name.

    Route ids and trip ids in informed entities are both mapped to the
    route's short name. Alerts that end up affecting no known route are
    dropped.
    """

    out: list[ServiceAlert] = []
    for entity in entities:
        routes = _affected_routes(entity, index)
        if not routes:
            continue
        alert_type, severity = classify_alert(entity)
        out.append(
            ServiceAlert(
                alert_id=entity.alert_id,
                affected_routes=routes,
                header_text=entity.header_text or DEFAULT_HEADER,
                description_text=entity.description_text or "",
                alert_type=alert_type,
                severity=severity,
                active_periods=entity.active_periods,
            )
        )
    return tuple(out)


def active_alerts(
    alerts: Iterable[ServiceAlert], *, at_epoch: float
) -> tuple[ServiceAlert, ...]:
    return tuple(a for a in alerts if a.is_active_at(at_epoch))


def alerts_for_route(
    alerts: Iterable[ServiceAlert], route_name: str, *, at_epoch: float
) -> tuple[ServiceAlert, ...]:
    return tuple(
        a
        for a in alerts
        if route_name in a.affected_routes and a.is_active_at(at_epoch)
    )


def has_active_detour(
    alerts: Iterable[ServiceAlert], route_name: str, *, at_epoch: float
) -> bool:
    return any(
        a.alert_type == AlertType.DETOUR
        for a in alerts_for_route(alerts, route_name, at_epoch=at_epoch)
    )


def severity_summary(
    alerts: Iterable[ServiceAlert], route_name: str, *, at_epoch: float
) -> dict[AlertSeverity, int]:
    return dict(
        Counter(
            a.severity for a in alerts_for_route(alerts, route_name, at_epoch=at_epoch)
        )
    )


def derive_operational_warnings(
    updates: Iterable[TripUpdate], index: StaticIndex
) -> tuple[OperationalWarning, ...]:
    """Delay and cancellation warnings that the agency did not publish as alerts.

    A route needs at least two stop-time delays above five minutes to get a
    delay warning; the average decides moderate (5-10 min) or significant
    (10+ min). Every cancelled trip counts toward a cancellation warning.
    """

    delays: dict[str, list[int]] = {}
    cancellations: Counter[str] = Counter()

    for tu in updates:
        if not tu.trip_id:
            continue
        route_id = index.trip_to_route.get(tu.trip_id)
        if route_id is None:
            continue
        name = index.display_name(route_id)

        if tu.canceled:
            cancellations[name] += 1

        for stu in tu.stop_time_updates:
            if stu.arrival_delay is not None:
                delay = stu.arrival_delay
            elif stu.departure_delay is not None:
                delay = stu.departure_delay
            else:
                continue
            if delay > SIGNIFICANT_DELAY_S:
                delays.setdefault(name, []).append(delay)

    warnings: list[OperationalWarning] = []
    for name, samples in delays.items():
        if len(samples) < MIN_DELAYED_SAMPLES:
            continue
        avg_minutes = int(sum(samples) / len(samples)) // 60
        if avg_minutes >= 10:
            kind = OperationalWarningType.SIGNIFICANT_DELAYS
        elif avg_minutes >= 5:
            kind = OperationalWarningType.MODERATE_DELAYS
        else:
            continue
        warnings.append(
            OperationalWarning(
                route_name=name,
                warning_type=kind,
                delay_minutes=avg_minutes,
                affected_trips=len(samples),
            )
        )

    for name, count in cancellations.items():
        warnings.append(
            OperationalWarning(
                route_name=name,
                warning_type=OperationalWarningType.TRIP_CANCELLATION,
                delay_minutes=0,
                affected_trips=count,
            )
        )

    return tuple(warnings)
