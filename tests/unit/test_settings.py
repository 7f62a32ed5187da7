from __future__ import annotations

import pytest

from transit_fusion.adapters.settings import (
    DEFAULT_RT_BASE_URL,
    FusionSettings,
    parse_headers,
)
from transit_fusion.domain.models.realtime import FeedKind


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("GTFS_RT_BASE_URL", "GTFS_RT_ALERTS_URL", "GTFS_S3_BUCKET"):
        monkeypatch.delenv(name, raising=False)

    s = FusionSettings.from_env()

    assert s.feed_urls[FeedKind.TRIP_UPDATES] == (
        DEFAULT_RT_BASE_URL + "gtfrealtime_TripUpdates.bin"
    )
    assert s.gtfs_s3_bucket is None
    assert s.ttl_for(FeedKind.ALERTS) == 60.0
    assert s.ttl_for(FeedKind.VEHICLE_POSITIONS) == 5.0
    assert (s.unreliable_start_hour, s.unreliable_end_hour) == (22, 6)
    assert s.match_radius_m == 100.0
    assert not s.polling


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GTFS_RT_BASE_URL", "https://feeds.test/rt")
    monkeypatch.setenv("GTFS_RT_ALERTS_URL", "https://alerts.test/a.pb")
    monkeypatch.setenv(
        "GTFS_RT_HEADERS", "X-Api-Key: abc; Accept:application/x-protobuf"
    )
    monkeypatch.setenv("FEED_FRESH_WITHIN_S", "90")
    monkeypatch.setenv("SERVICE_DAY_CUTOFF_HOUR", "4")
    monkeypatch.setenv("FUSION_POLLING", "yes")
    monkeypatch.setenv("GTFS_S3_BUCKET", "schedules")

    s = FusionSettings.from_env()

    assert s.feed_urls[FeedKind.VEHICLE_POSITIONS] == (
        "https://feeds.test/rt/gtfrealtime_VehiclePositions.bin"
    )
    assert s.feed_urls[FeedKind.ALERTS] == "https://alerts.test/a.pb"
    assert s.feed_headers == {"X-Api-Key": "abc", "Accept": "application/x-protobuf"}
    assert s.fresh_within_s == 90.0
    assert s.cutoff_hour == 4
    assert s.polling
    assert s.gtfs_s3_bucket == "schedules"


def test_parse_headers_ignores_malformed_parts() -> None:
    assert parse_headers(None) == {}
    assert parse_headers("novalue; :x; A:1;;B: two words") == {
        "A": "1",
        "B": "two words",
    }
