from __future__ import annotations

import io

import pytest
from botocore.exceptions import ClientError

from transit_fusion.adapters.persistence import S3ScheduleSource
from transit_fusion.domain.exceptions import ScheduleSourceError


class _FakeS3:
    def __init__(self, objects: dict[str, bytes], error_code: str = "NoSuchKey"):
        self.objects = objects
        self.error_code = error_code
        self.requested: list[tuple[str, str]] = []

    def get_object(self, *, Bucket: str, Key: str) -> dict:
        self.requested.append((Bucket, Key))
        if Key not in self.objects:
            raise ClientError(
                {"Error": {"Code": self.error_code, "Message": "x"}}, "GetObject"
            )
        return {"Body": io.BytesIO(self.objects[Key])}


def test_open_reads_object_under_prefix() -> None:
    fake = _FakeS3({"gtfs/stops.txt": b"stop_id\nS1\n"})
    source = S3ScheduleSource(bucket="b", prefix="/gtfs/", _client=fake)

    stream = source.open("stops.txt")

    assert stream is not None
    assert stream.read() == b"stop_id\nS1\n"
    assert fake.requested == [("b", "gtfs/stops.txt")]
    assert source.describe() == "s3://b/gtfs"


def test_missing_object_is_none() -> None:
    source = S3ScheduleSource(bucket="b", prefix="", _client=_FakeS3({}))

    assert source.open("shapes.txt") is None


def test_other_client_errors_raise() -> None:
    fake = _FakeS3({}, error_code="AccessDenied")
    source = S3ScheduleSource(bucket="b", _client=fake)

    with pytest.raises(ScheduleSourceError, match="AccessDenied"):
        source.open("stops.txt")


def test_bucket_is_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GTFS_S3_BUCKET", raising=False)

    with pytest.raises(ScheduleSourceError):
        S3ScheduleSource(_client=_FakeS3({})).open("stops.txt")
