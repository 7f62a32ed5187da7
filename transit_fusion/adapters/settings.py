from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from transit_fusion.domain.models.realtime import FeedKind

DEFAULT_RT_BASE_URL = "https://windsor.mapstrat.com/current/"

_FEED_FILES: dict[FeedKind, str] = {
    FeedKind.VEHICLE_POSITIONS: "gtfrealtime_VehiclePositions.bin",
    FeedKind.TRIP_UPDATES: "gtfrealtime_TripUpdates.bin",
    FeedKind.ALERTS: "gtfrealtime_ServiceAlerts.bin",
}

_FEED_URL_ENV: dict[FeedKind, str] = {
    FeedKind.VEHICLE_POSITIONS: "GTFS_RT_VEHICLE_POSITIONS_URL",
    FeedKind.TRIP_UPDATES: "GTFS_RT_TRIP_UPDATES_URL",
    FeedKind.ALERTS: "GTFS_RT_ALERTS_URL",
}


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    return float(raw)


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    return int(raw)


def env_str(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip() or default


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parse 'Key:Value;Key2:Value2' into a header dict; malformed parts are ignored."""

    raw = (raw or "").strip()
    if not raw:
        return {}
    headers: dict[str, str] = {}
    for part in raw.split(";"):
        part = part.strip()
        if not part:
            continue
        if ":" not in part:
            continue
        k, v = part.split(":", 1)
        k = k.strip()
        v = v.strip()
        if k:
            headers[k] = v
    return headers


def _feed_urls(base_url: str) -> dict[FeedKind, str]:
    base = base_url if base_url.endswith("/") else base_url + "/"
    urls: dict[FeedKind, str] = {}
    for kind, filename in _FEED_FILES.items():
        urls[kind] = env_str(_FEED_URL_ENV[kind]) or base + filename
    return urls


@dataclass(frozen=True, slots=True)
class FusionSettings:
    """Runtime configuration, read once from the environment.

    Env vars:
      - GTFS_PATH: local schedule directory (default: data/gtfs)
      - GTFS_S3_BUCKET / GTFS_S3_PREFIX: read the schedule from S3 instead
      - GTFS_RT_BASE_URL: base URL of the three GTFS-Realtime feeds
      - GTFS_RT_VEHICLE_POSITIONS_URL / _TRIP_UPDATES_URL / _ALERTS_URL: overrides
      - GTFS_RT_HEADERS: optional headers, as 'Key:Value;Key2:Value2'
      - GTFS_RT_TIMEOUT_S: request timeout (default 10)
      - FEED_TTL_S / ALERTS_TTL_S: cache TTLs (default 5 / 60)
      - FEED_STALE_AFTER_S: header age that forces a refetch (default 300)
      - FEED_FRESH_WITHIN_S: header age still labelled live (default 180)
      - REALTIME_GRACE_S: how far in the past a prediction may be (default 60)
      - SERVICE_DAY_CUTOFF_HOUR: end of the previous service day (default 6)
      - UNRELIABLE_IDS_START_HOUR / UNRELIABLE_IDS_END_HOUR: default 22 / 6
      - VEHICLE_MATCH_RADIUS_M: geometric match radius (default 100)
      - TRANSIT_TIMEZONE: local zone when agency.txt has none
      - FUSION_REVEAL_ERRORS: 1|true to include exception text in 500 bodies
      - FUSION_POLLING: 1|true to run the feed pollers inside the API process
    """

    gtfs_path: str = "data/gtfs"
    gtfs_s3_bucket: str | None = None
    gtfs_s3_prefix: str = "gtfs"

    feed_urls: Mapping[FeedKind, str] = field(
        default_factory=lambda: _feed_urls(DEFAULT_RT_BASE_URL)
    )
    feed_headers: Mapping[str, str] = field(default_factory=dict)
    feed_timeout_s: float = 10.0

    feed_ttl_s: float = 5.0
    alerts_ttl_s: float = 60.0
    stale_after_s: float = 300.0
    fresh_within_s: float = 180.0
    grace_s: float = 60.0

    cutoff_hour: int = 6
    unreliable_start_hour: int = 22
    unreliable_end_hour: int = 6
    match_radius_m: float = 100.0

    timezone: str | None = None
    reveal_errors: bool = False
    polling: bool = False

    @staticmethod
    def from_env() -> "FusionSettings":
        base_url = env_str("GTFS_RT_BASE_URL", DEFAULT_RT_BASE_URL)
        return FusionSettings(
            gtfs_path=env_str("GTFS_PATH", "data/gtfs") or "data/gtfs",
            gtfs_s3_bucket=env_str("GTFS_S3_BUCKET"),
            gtfs_s3_prefix=os.getenv("GTFS_S3_PREFIX", "gtfs"),
            feed_urls=_feed_urls(base_url or DEFAULT_RT_BASE_URL),
            feed_headers=parse_headers(os.getenv("GTFS_RT_HEADERS")),
            feed_timeout_s=env_float("GTFS_RT_TIMEOUT_S", 10.0),
            feed_ttl_s=env_float("FEED_TTL_S", 5.0),
            alerts_ttl_s=env_float("ALERTS_TTL_S", 60.0),
            stale_after_s=env_float("FEED_STALE_AFTER_S", 300.0),
            fresh_within_s=env_float("FEED_FRESH_WITHIN_S", 180.0),
            grace_s=env_float("REALTIME_GRACE_S", 60.0),
            cutoff_hour=env_int("SERVICE_DAY_CUTOFF_HOUR", 6),
            unreliable_start_hour=env_int("UNRELIABLE_IDS_START_HOUR", 22),
            unreliable_end_hour=env_int("UNRELIABLE_IDS_END_HOUR", 6),
            match_radius_m=env_float("VEHICLE_MATCH_RADIUS_M", 100.0),
            timezone=env_str("TRANSIT_TIMEZONE"),
            reveal_errors=env_bool("FUSION_REVEAL_ERRORS", False),
            polling=env_bool("FUSION_POLLING", False),
        )

    def ttl_for(self, kind: FeedKind) -> float:
        if kind == FeedKind.ALERTS:
            return self.alerts_ttl_s
        return self.feed_ttl_s
