"""Record API schemas."""

from pydantic import BaseModel, Field

from sermon_audio.schemas.error import ErrorResponse
from sermon_audio.schemas.job import JobSlotView


class ResultArtifactView(BaseModel):
    id: str
    uri: str
    filename: str
    mime_type: str
    size: int | None = None


class RecordVariantView(BaseModel):
    langcode: str
    source_ref: str | None = None
    cleaning_job: JobSlotView
    transcription_job: JobSlotView
    result: ResultArtifactView | None = None
    duration: float | None = None
    has_transcript: bool


class RecordView(BaseModel):
    id: str
    variants: list[RecordVariantView]


class SubmitJobRequest(BaseModel):
    langcode: str = "en"
    sermon_name: str = Field(min_length=1)
    sermon_speaker: str = Field(min_length=1)
    sermon_year: str = Field(min_length=1)
    sermon_congregation: str = Field(min_length=1)
    display_filename: str = Field(min_length=1)
    transcribe: bool = False


class SubmitJobResponse(BaseModel):
    record_id: str
    langcode: str
    mode: str
    cleaning_job_id: str
    transcription_job_id: str | None = None


class RefreshRecordResponse(BaseModel):
    record_id: str
    changed: bool
    skipped: bool = False
    updated_transcript_langcodes: list[str] = Field(default_factory=list)
    error: ErrorResponse | None = None
