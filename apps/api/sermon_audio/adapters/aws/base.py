"""Tracking store and object storage interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from sermon_audio.schemas.job import RemoteJobStatus

# The external worker times out after 15 minutes.
RECLAIM_WINDOW_SECONDS = 20 * 60


@dataclass(slots=True)
class TrackingRow:
    input_key: str
    output_sub_key: str
    status: RemoteJobStatus
    queue_time: int
    metadata: dict[str, str] = field(default_factory=dict)
    audio_duration: float | None = None


def accepts_overwrite(existing: TrackingRow | None, *, now: int, reclaim_window: int) -> bool:
    """Guard for a conditional put: absent, terminal, or an abandoned in-progress row."""
    if existing is None:
        return True
    if existing.status is not RemoteJobStatus.IN_PROGRESS:
        return True
    return existing.queue_time < now - reclaim_window


class TrackingTable(ABC):
    """Job tracking table keyed by input identity."""

    @abstractmethod
    def conditional_put(self, row: TrackingRow, *, now: int, reclaim_window: int) -> None:
        """Insert or overwrite ``row`` if accepts_overwrite allows it.

        Raises ConflictError when the guard rejects the write and StoreError
        for any other store failure.
        """

    @abstractmethod
    def get(self, input_key: str) -> TrackingRow | None:
        """Return the row for ``input_key``, or None when there is none."""


class ObjectStorage(ABC):
    """Minimal object storage operations."""

    @abstractmethod
    def size_of(self, bucket: str, key: str) -> int:
        """Return the object size in bytes."""

    @abstractmethod
    def read_text(self, bucket: str, key: str) -> str:
        """Return the object body decoded as UTF-8."""


__all__ = [
    "ObjectStorage",
    "RECLAIM_WINDOW_SECONDS",
    "TrackingRow",
    "TrackingTable",
    "accepts_overwrite",
]
