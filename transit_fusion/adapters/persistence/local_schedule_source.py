from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from transit_fusion.app.ports.output import IScheduleSource


@dataclass(slots=True)
class LocalScheduleSource(IScheduleSource):
    """Reads schedule relations from a directory of GTFS .txt files.

    Env vars:
      - GTFS_PATH: directory containing agency.txt, routes.txt, stops.txt, ...
    """

    base_path: str | Path | None = None

    def _base(self) -> Path:
        value = self.base_path or os.getenv("GTFS_PATH") or "data/gtfs"
        return Path(value)

    def open(self, name: str) -> BinaryIO | None:
        path = self._base() / name
        if not path.is_file():
            return None
        return path.open("rb")

    def describe(self) -> str:
        return f"dir:{self._base()}"
