"""Job lifecycle schemas."""

from enum import Enum, IntEnum

from pydantic import BaseModel


class JobKind(str, Enum):
    CLEANING = "cleaning"
    TRANSCRIPTION = "transcription"


class JobState(str, Enum):
    NO_JOB = "NO_JOB"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RemoteJobStatus(IntEnum):
    """Status codes shared by the results endpoints and the tracking table."""

    FAILED = -1
    NOT_STARTED = 0
    IN_PROGRESS = 1
    COMPLETED = 2


class ReconcileStatus(str, Enum):
    CHANGED = "CHANGED"
    UNCHANGED = "UNCHANGED"


class JobSlotView(BaseModel):
    state: JobState
    has_job: bool
    failed: bool
