"""In-memory repositories used by the API service and tests."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from sermon_audio.repositories.base import ArtifactRepository, LoadListener, RecordRepository
from sermon_audio.schemas.job import JobKind

DEFAULT_LANGCODE = "en"


class RecordInvariantError(RuntimeError):
    """A record violates a field invariant; never an expected failure."""


@dataclass(slots=True)
class JobSlot:
    job_id: str | None = None
    failed: bool = False


@dataclass(slots=True)
class ProcessingRecord:
    id: str
    langcode: str = DEFAULT_LANGCODE
    source_ref: str | None = None
    source_owner_id: str | None = None
    cleaning_job: JobSlot = field(default_factory=JobSlot)
    transcription_job: JobSlot = field(default_factory=JobSlot)
    result_ref: str | None = None
    duration: float | None = None
    transcript_sub_key: str | None = None
    updated_at: datetime | None = None

    def job(self, kind: JobKind) -> JobSlot:
        if kind is JobKind.CLEANING:
            return self.cleaning_job
        return self.transcription_job

    def has_result(self, kind: JobKind) -> bool:
        if kind is JobKind.CLEANING:
            return self.result_ref is not None
        return self.transcript_sub_key is not None

    def has_open_job(self) -> bool:
        return self.cleaning_job.job_id is not None or self.transcription_job.job_id is not None

    def check_invariants(self) -> None:
        for kind in JobKind:
            slot = self.job(kind)
            if slot.job_id is not None and slot.failed:
                raise RecordInvariantError(f"{kind.value} job has both an id and the failed flag set")
        if (self.result_ref is None) != (self.duration is None):
            raise RecordInvariantError("result_ref and duration must be set or unset together")
        if self.duration is not None and self.duration < 0:
            raise RecordInvariantError("duration must not be negative")
        if self.transcript_sub_key is not None and self.transcription_job.job_id is not None:
            raise RecordInvariantError("transcript_sub_key is set while a transcription job is open")


@dataclass(slots=True)
class ResultArtifact:
    id: str
    uri: str
    owner_id: str
    filename: str
    mime_type: str
    size: int | None
    created_at: datetime


@dataclass(slots=True)
class InMemoryStore(RecordRepository, ArtifactRepository):
    """Simple, deterministic persistence layer for development and tests.

    Loads hand out copies, and every save is followed by a reload of the
    saved record, the way an entity cache is refreshed after a write. Load
    listeners therefore see the record again after each save.
    """

    records: dict[str, dict[str, ProcessingRecord]] = field(default_factory=dict)
    artifacts: dict[str, ResultArtifact] = field(default_factory=dict)
    load_listeners: list[LoadListener] = field(default_factory=list)
    record_write_count: int = 0
    artifact_write_count: int = 0
    load_count: int = 0
    record_save_failpoint_write: int | None = None
    record_save_failure_message: str = "Injected record persistence failure"

    def add_record(self, record: ProcessingRecord) -> ProcessingRecord:
        """Seed a variant without write bookkeeping or listener notification."""
        self.records.setdefault(record.id, {})[record.langcode] = copy.deepcopy(record)
        return record

    def get_variant(self, record_id: str, langcode: str = DEFAULT_LANGCODE) -> ProcessingRecord | None:
        """Raw stored variant, bypassing load listeners."""
        return self.records.get(record_id, {}).get(langcode)

    def load_record(self, record_id: str) -> list[ProcessingRecord] | None:
        stored = self.records.get(record_id)
        if stored is None:
            return None
        self.load_count += 1
        variants = [copy.deepcopy(variant) for variant in stored.values()]
        for listener in list(self.load_listeners):
            listener(variants)
        return variants

    def save_record(self, record: ProcessingRecord) -> None:
        next_write = self.record_write_count + 1
        if self.record_save_failpoint_write is not None and next_write >= self.record_save_failpoint_write:
            raise RuntimeError(self.record_save_failure_message)

        record.check_invariants()
        record.updated_at = datetime.now(UTC)
        self.records.setdefault(record.id, {})[record.langcode] = copy.deepcopy(record)
        self.record_write_count = next_write
        self.load_record(record.id)

    def list_open_job_record_ids(self) -> list[str]:
        return [
            record_id
            for record_id, variants in self.records.items()
            if any(variant.has_open_job() for variant in variants.values())
        ]

    def find_record_ids_by_job(self, kind: JobKind, job_id: str) -> list[str]:
        return [
            record_id
            for record_id, variants in self.records.items()
            if any(variant.job(kind).job_id == job_id for variant in variants.values())
        ]

    def add_load_listener(self, listener: LoadListener) -> None:
        self.load_listeners.append(listener)

    def remove_load_listener(self, listener: LoadListener) -> None:
        self.load_listeners.remove(listener)

    def create_artifact(
        self,
        *,
        uri: str,
        owner_id: str,
        filename: str,
        mime_type: str,
        size: int | None,
    ) -> ResultArtifact:
        artifact = ResultArtifact(
            id=str(uuid4()),
            uri=uri,
            owner_id=owner_id,
            filename=filename,
            mime_type=mime_type,
            size=size,
            created_at=datetime.now(UTC),
        )
        self.artifacts[artifact.id] = artifact
        self.artifact_write_count += 1
        return artifact

    def get_artifact(self, artifact_id: str) -> ResultArtifact | None:
        return self.artifacts.get(artifact_id)
