from __future__ import annotations

import io
import os
from dataclasses import dataclass
from typing import Any, BinaryIO

from botocore.exceptions import ClientError

from transit_fusion.adapters.aws import s3_client
from transit_fusion.app.ports.output import IScheduleSource
from transit_fusion.domain.exceptions import ScheduleSourceError

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass(slots=True)
class S3ScheduleSource(IScheduleSource):
    """Schedule relations stored as objects under an S3 prefix.

    Env vars:
      - GTFS_S3_BUCKET: bucket name
      - GTFS_S3_PREFIX: key prefix (default: gtfs)
      - ENDPOINT_URL / USE_LOCALSTACK / AWS_REGION: see AwsRuntimeConfig
    """

    bucket: str | None = None
    prefix: str | None = None

    _client: Any | None = None

    def _bucket(self) -> str:
        value = self.bucket or os.getenv("GTFS_S3_BUCKET")
        if not value:
            raise ScheduleSourceError("Missing GTFS_S3_BUCKET")
        return value

    def _prefix(self) -> str:
        value = self.prefix
        if value is None:
            value = os.getenv("GTFS_S3_PREFIX", "gtfs")
        return value.strip("/")

    def _key(self, name: str) -> str:
        prefix = self._prefix()
        return f"{prefix}/{name}" if prefix else name

    def _s3(self) -> Any:
        if self._client is None:
            self._client = s3_client()
        return self._client

    def open(self, name: str) -> BinaryIO | None:
        bucket = self._bucket()
        key = self._key(name)
        try:
            obj = self._s3().get_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return None
            raise ScheduleSourceError(f"s3://{bucket}/{key}: {code}") from exc
        # Relations are read in one pass; buffering keeps the HTTP body short-lived.
        return io.BytesIO(obj["Body"].read())

    def describe(self) -> str:
        return f"s3://{self._bucket()}/{self._prefix()}"
