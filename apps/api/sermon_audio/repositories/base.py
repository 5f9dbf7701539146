"""Persistence interfaces consumed by the job services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

from sermon_audio.schemas.job import JobKind

if TYPE_CHECKING:
    from sermon_audio.repositories.memory import ProcessingRecord, ResultArtifact

LoadListener = Callable[[list["ProcessingRecord"]], None]


class RecordRepository(ABC):
    """Load/save processing records; every variant of a record shares its id."""

    @abstractmethod
    def load_record(self, record_id: str) -> list[ProcessingRecord] | None:
        """Return all variants of a record, or None if it does not exist."""

    @abstractmethod
    def save_record(self, record: ProcessingRecord) -> None:
        """Persist one variant."""

    @abstractmethod
    def list_open_job_record_ids(self) -> list[str]:
        """Ids of records with at least one variant holding an open job."""

    @abstractmethod
    def find_record_ids_by_job(self, kind: JobKind, job_id: str) -> list[str]:
        """Ids of records with a variant whose open job of ``kind`` is ``job_id``."""

    @abstractmethod
    def add_load_listener(self, listener: LoadListener) -> None:
        """Register a callback run on the variants of every loaded record."""

    @abstractmethod
    def remove_load_listener(self, listener: LoadListener) -> None:
        """Unregister a callback added with add_load_listener."""


class ArtifactRepository(ABC):
    """Create and look up referenceable result artifacts."""

    @abstractmethod
    def create_artifact(
        self,
        *,
        uri: str,
        owner_id: str,
        filename: str,
        mime_type: str,
        size: int | None,
    ) -> ResultArtifact:
        """Create and persist a new artifact."""

    @abstractmethod
    def get_artifact(self, artifact_id: str) -> ResultArtifact | None:
        """Return an artifact by id."""


__all__ = ["ArtifactRepository", "LoadListener", "RecordRepository"]
