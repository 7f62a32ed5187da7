from __future__ import annotations

import io
from textwrap import dedent
from typing import BinaryIO, Callable, Mapping
from zoneinfo import ZoneInfo

import pytest

from transit_fusion.app.ports.output import IRealtimeFeedProvider, IScheduleSource
from transit_fusion.app.services.schedule_indexer import ScheduleIndexer
from transit_fusion.domain.exceptions import FeedUnavailable
from transit_fusion.domain.models.gtfs import StaticIndex
from transit_fusion.domain.models.realtime import FeedKind, FeedSnapshot

TZ = ZoneInfo("America/New_York")


def _csv(text: str) -> str:
    return dedent(text).lstrip("\n")


# Small Windsor-like network. 2026-10-19 is a Monday.
SAMPLE_FILES: dict[str, str] = {
    "agency.txt": _csv(
        """
        agency_id,agency_name,agency_url,agency_timezone
        TW,Transit Windsor,https://example.org,America/New_York
        """
    ),
    "routes.txt": _csv(
        """
        route_id,route_short_name,route_long_name,route_type,route_color,route_text_color
        R1,1A,Tecumseh,3,FF0000,FFFFFF
        R2,2,Crosstown,3,,
        R3,,Airport Express,3,,
        """
    ),
    "stops.txt": _csv(
        """
        stop_id,stop_code,stop_name,stop_lat,stop_lon
        S1,1001,Main at First,42.3000,-83.0300
        S2,1002,Main at Second,42.3010,-83.0300
        S3,1003,Airport,42.2750,-82.9600
        """
    ),
    "trips.txt": _csv(
        """
        route_id,service_id,trip_id,trip_headsign,shape_id
        R1,WK,T1,Downtown,SH1
        R1,WK,T2,Downtown,SH1
        R1,WK,T3,Downtown,SH1
        R1,WK,T4,Downtown,SH1
        R2,WK,T5,Crosstown,SH2
        R2,SAT,T6,Crosstown,SH2
        R1,WK,T7,Late Night,SH1
        """
    ),
    "stop_times.txt": _csv(
        """
        trip_id,arrival_time,departure_time,stop_id,stop_sequence
        T1,08:00:00,08:00:00,S1,1
        T1,08:05:00,08:05:00,S2,2
        T2,08:30:00,08:30:00,S1,1
        T2,08:35:00,08:35:00,S2,2
        T3,09:00:00,09:00:00,S1,1
        T4,09:30:00,09:30:00,S1,1
        T5,08:10:00,08:10:00,S1,1
        T6,10:00:00,10:00:00,S1,1
        T7,24:30:00,24:30:00,S1,1
        """
    ),
    "calendar.txt": _csv(
        """
        service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,start_date,end_date
        WK,1,1,1,1,1,0,0,20260101,20261231
        SAT,0,0,0,0,0,1,0,20260101,20261231
        """
    ),
    "calendar_dates.txt": _csv(
        """
        service_id,date,exception_type
        WK,20261225,2
        SAT,20261225,1
        """
    ),
    "shapes.txt": _csv(
        """
        shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence
        SH1,42.3000,-83.0300,1
        SH1,42.3100,-83.0300,2
        SH2,42.3000,-83.0400,2
        SH2,42.3000,-83.0300,1
        """
    ),
}


class DictScheduleSource(IScheduleSource):
    def __init__(self, files: Mapping[str, str]) -> None:
        self.files = dict(files)
        self.opened: list[str] = []

    def open(self, name: str) -> BinaryIO | None:
        self.opened.append(name)
        text = self.files.get(name)
        if text is None:
            return None
        return io.BytesIO(text.encode("utf-8"))


@pytest.fixture
def gtfs_files() -> dict[str, str]:
    return dict(SAMPLE_FILES)


@pytest.fixture
def make_index() -> Callable[..., StaticIndex]:
    def _make(files: Mapping[str, str] | None = None) -> StaticIndex:
        source = DictScheduleSource(SAMPLE_FILES if files is None else files)
        return ScheduleIndexer(source).build()

    return _make


@pytest.fixture
def sample_index(make_index: Callable[..., StaticIndex]) -> StaticIndex:
    return make_index()


@pytest.fixture
def tz() -> ZoneInfo:
    return TZ


@pytest.fixture
def make_source(gtfs_files: dict[str, str]) -> Callable[..., DictScheduleSource]:
    def _make(files: Mapping[str, str] | None = None) -> DictScheduleSource:
        return DictScheduleSource(gtfs_files if files is None else files)

    return _make


class SnapshotProvider(IRealtimeFeedProvider):
    """Serves prepared snapshots; kinds without one are unavailable."""

    def __init__(self) -> None:
        self.snapshots: dict[FeedKind, FeedSnapshot] = {}
        self.calls = 0

    def put(self, kind: FeedKind, *payload: object, generated_at: float) -> None:
        self.snapshots[kind] = FeedSnapshot(
            kind=kind,
            decoded_at=generated_at,
            generated_at=int(generated_at),
            payload=tuple(payload),
        )

    async def fetch(self, kind: FeedKind) -> FeedSnapshot:
        self.calls += 1
        snapshot = self.snapshots.get(kind)
        if snapshot is None:
            raise FeedUnavailable(kind, "HTTP 503")
        return snapshot


@pytest.fixture
def snapshot_provider() -> SnapshotProvider:
    return SnapshotProvider()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
