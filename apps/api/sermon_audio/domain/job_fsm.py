"""Per-record job slot lifecycle rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sermon_audio.errors import InvalidStateError
from sermon_audio.schemas.job import JobKind, JobState

if TYPE_CHECKING:
    from sermon_audio.repositories.memory import ProcessingRecord

_ALLOWED_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.NO_JOB: {JobState.PENDING},
    JobState.PENDING: {JobState.PENDING, JobState.COMPLETED, JobState.FAILED},
    # Resubmission after a terminal outcome starts a new job.
    JobState.COMPLETED: {JobState.PENDING},
    JobState.FAILED: {JobState.PENDING},
}


def allowed_next_states(state: JobState) -> list[JobState]:
    """Return deterministically ordered allowed successors for a state."""
    return sorted(_ALLOWED_TRANSITIONS.get(state, set()), key=lambda s: s.value)


def job_state(record: ProcessingRecord, kind: JobKind) -> JobState:
    """Derive the lifecycle state of one job slot from the record fields."""
    slot = record.job(kind)
    if slot.job_id is not None:
        return JobState.PENDING
    if slot.failed:
        return JobState.FAILED
    if record.has_result(kind):
        return JobState.COMPLETED
    return JobState.NO_JOB


def ensure_transition(kind: JobKind, old_state: JobState, new_state: JobState) -> None:
    """Validate a slot transition according to lifecycle rules."""
    if new_state not in _ALLOWED_TRANSITIONS.get(old_state, set()):
        raise InvalidStateError(
            "Invalid job state transition",
            details={
                "job_kind": kind.value,
                "current_state": old_state.value,
                "attempted_state": new_state.value,
                "allowed_next_states": [state.value for state in allowed_next_states(old_state)],
            },
        )


def ensure_pending(record: ProcessingRecord, kind: JobKind) -> str:
    """Return the open job id, or raise when the slot has no open job."""
    job_id = record.job(kind).job_id
    if job_id is None:
        raise InvalidStateError(
            f"Record has no open {kind.value} job",
            details={"job_kind": kind.value, "current_state": job_state(record, kind).value},
        )
    return job_id
