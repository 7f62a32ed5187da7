from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO


class IScheduleSource(ABC):
    """Port for reading the static schedule relations (``<name>.txt`` files)."""

    @abstractmethod
    def open(self, name: str) -> BinaryIO | None:
        """Return a readable byte stream for ``name`` (e.g. ``stops.txt``),
        or None when the relation is absent."""

    def describe(self) -> str:
        return type(self).__name__
