"""Observed job outcomes and reconciliation results."""

from __future__ import annotations

from dataclasses import dataclass

from sermon_audio.errors import SermonAudioError
from sermon_audio.schemas.job import JobKind, ReconcileStatus


@dataclass(frozen=True, slots=True)
class NoChange:
    """The job has not finished yet."""


@dataclass(frozen=True, slots=True)
class Failed:
    """The job finished without producing a result."""


@dataclass(frozen=True, slots=True)
class CleaningCompleted:
    output_uri: str
    output_sub_key: str | None
    duration: float
    display_filename: str


@dataclass(frozen=True, slots=True)
class TranscriptionCompleted:
    sub_key: str


JobOutcome = NoChange | Failed | CleaningCompleted | TranscriptionCompleted


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Outcome of reconciling one job slot: a status, or an expected error."""

    record_id: str
    langcode: str
    kind: JobKind
    status: ReconcileStatus | None = None
    error: SermonAudioError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool:
        return self.status is ReconcileStatus.CHANGED
