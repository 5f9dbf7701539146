"""Job submission service layer."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import secrets
import time

from sermon_audio.adapters.aws.base import RECLAIM_WINDOW_SECONDS, TrackingRow, TrackingTable
from sermon_audio.adapters.aws.invoker import ApiInvoker, decode_json_object
from sermon_audio.core.config import Settings
from sermon_audio.core.logging_safety import describe_error, safe_log_identifier
from sermon_audio.domain.job_fsm import ensure_transition, job_state
from sermon_audio.errors import (
    AggregateError,
    ApiError,
    ConfigurationError,
    ConflictError,
    SermonAudioError,
    ValidationError,
)
from sermon_audio.repositories.base import RecordRepository
from sermon_audio.repositories.memory import JobSlot, ProcessingRecord
from sermon_audio.schemas.job import JobKind, JobState, RemoteJobStatus

logger = logging.getLogger(__name__)

DEBUG_CLEANING_JOB_ID = "debug-cleaning-job"
DEBUG_TRANSCRIPTION_JOB_ID = "debug-transcription-job"
OUTPUT_EXTENSION = "m4a"


@dataclass(frozen=True, slots=True)
class SubmissionMetadata:
    sermon_name: str
    sermon_speaker: str
    sermon_year: str
    sermon_congregation: str
    display_filename: str

    def validate(self) -> None:
        for name in ("sermon_name", "sermon_speaker", "sermon_year", "sermon_congregation", "display_filename"):
            if not getattr(self, name).strip():
                raise ValidationError(f"{name} must not be empty.", details={"field": name})

    def as_attributes(self) -> dict[str, str]:
        return {
            "sermon-name": self.sermon_name,
            "sermon-speaker": self.sermon_speaker,
            "sermon-year": self.sermon_year,
            "sermon-congregation": self.sermon_congregation,
            "output-display-filename": self.display_filename,
        }


@dataclass(slots=True)
class SubmissionResult:
    record_id: str
    langcode: str
    mode: str
    cleaning_job_id: str
    transcription_job_id: str | None = None


class JobSubmitter:
    def __init__(
        self,
        *,
        settings: Settings,
        records: RecordRepository,
        invoker: ApiInvoker | None = None,
        tracking_table: TrackingTable | None = None,
        clock: Callable[[], float] = time.time,
        token_factory: Callable[[int], str] = secrets.token_hex,
    ) -> None:
        self._settings = settings
        self._records = records
        self._invoker = invoker
        self._tracking_table = tracking_table
        self._clock = clock
        self._token_factory = token_factory

    def submit(
        self,
        record: ProcessingRecord,
        metadata: SubmissionMetadata,
        *,
        transcribe: bool = False,
    ) -> SubmissionResult:
        """Start cleaning (and optionally transcription) for one record variant.

        The record is saved with the new job state before this returns.
        """
        metadata.validate()
        ensure_transition(JobKind.CLEANING, job_state(record, JobKind.CLEANING), JobState.PENDING)
        if transcribe:
            ensure_transition(JobKind.TRANSCRIPTION, job_state(record, JobKind.TRANSCRIPTION), JobState.PENDING)

        if self._settings.debug_mode:
            return self._submit_debug(record, transcribe=transcribe)
        if self._settings.submission_mode == "store":
            if transcribe:
                raise ValidationError("Transcription can only be requested through the job submission API.")
            return self._submit_via_store(record, metadata)
        return self._submit_via_api(record, metadata, transcribe=transcribe)

    def input_identity(self, record: ProcessingRecord) -> str:
        """Key of the record's source audio relative to the unprocessed audio prefix."""
        if not record.source_ref:
            raise ValidationError("Record has no source audio reference.", details={"record_id": record.id})
        prefix = self._settings.require("unprocessed_audio_uri_prefix")
        if not record.source_ref.startswith(prefix):
            raise ValidationError("Source audio reference has an incorrect prefix.", details={"record_id": record.id})
        identity = record.source_ref[len(prefix) :]
        if not identity:
            raise ValidationError("Source audio reference has an empty sub-key.", details={"record_id": record.id})
        return identity

    def _submit_debug(self, record: ProcessingRecord, *, transcribe: bool) -> SubmissionResult:
        if not record.source_ref:
            raise ValidationError("Record has no source audio reference.", details={"record_id": record.id})
        record.cleaning_job = JobSlot(job_id=DEBUG_CLEANING_JOB_ID)
        if transcribe:
            record.transcription_job = JobSlot(job_id=DEBUG_TRANSCRIPTION_JOB_ID)
            record.transcript_sub_key = None
        self._records.save_record(record)
        logger.info("submit.debug_queued record_id=%s langcode=%s transcribe=%s", record.id, record.langcode, transcribe)
        return SubmissionResult(
            record_id=record.id,
            langcode=record.langcode,
            mode="debug",
            cleaning_job_id=DEBUG_CLEANING_JOB_ID,
            transcription_job_id=DEBUG_TRANSCRIPTION_JOB_ID if transcribe else None,
        )

    def _submit_via_api(
        self,
        record: ProcessingRecord,
        metadata: SubmissionMetadata,
        *,
        transcribe: bool,
    ) -> SubmissionResult:
        if self._invoker is None:
            raise ConfigurationError("No API invoker is configured for job submission.")
        identity = self.input_identity(record)
        endpoint = self._settings.require("job_submission_endpoint")
        region = self._settings.require("job_submission_endpoint_aws_region")

        body = {"input-ref": identity, "language": record.langcode, "transcribe": transcribe}
        body.update(metadata.as_attributes())
        body["display-filename"] = body.pop("output-display-filename")

        response = self._invoker.invoke(endpoint, region, body=body, method="POST")
        if not 200 <= response.status_code < 300:
            logger.warning("submit.rejected record_id=%s status=%s", record.id, response.status_code)
            raise ApiError(
                "Job submission endpoint returned an unsuccessful status.",
                details={"status": response.status_code},
            )
        data = decode_json_object(response)
        if data is None:
            raise ApiError("Job submission response is not a JSON object.")

        cleaning_job_id = _required_job_id(data, "cleaning-job-id")
        transcription_job_id = _required_job_id(data, "transcription-job-id") if transcribe else None

        record.cleaning_job = JobSlot(job_id=cleaning_job_id)
        if transcription_job_id is not None:
            record.transcription_job = JobSlot(job_id=transcription_job_id)
            record.transcript_sub_key = None
        self._records.save_record(record)

        logger.info(
            "submit.queued record_id=%s langcode=%s mode=api cleaning_job_id=%s transcription_job_id=%s",
            record.id,
            record.langcode,
            safe_log_identifier(cleaning_job_id, prefix="jid"),
            safe_log_identifier(transcription_job_id, prefix="jid"),
        )
        return SubmissionResult(
            record_id=record.id,
            langcode=record.langcode,
            mode="api",
            cleaning_job_id=cleaning_job_id,
            transcription_job_id=transcription_job_id,
        )

    def _submit_via_store(self, record: ProcessingRecord, metadata: SubmissionMetadata) -> SubmissionResult:
        if self._tracking_table is None:
            raise ConfigurationError("No tracking table is configured for job submission.")
        identity = self.input_identity(record)
        output_sub_key = f"{record.id}-{self._token_factory(8)}.{OUTPUT_EXTENSION}"
        now = int(self._clock())
        safe_identity = safe_log_identifier(identity, prefix="ikey")

        # Mark the job as initiated before queueing so a crash in between
        # leaves a job the reconciler can still find.
        record.result_ref = None
        record.duration = None
        record.cleaning_job = JobSlot(job_id=identity)
        self._records.save_record(record)

        row = TrackingRow(
            input_key=identity,
            output_sub_key=output_sub_key,
            status=RemoteJobStatus.IN_PROGRESS,
            queue_time=now,
            metadata=metadata.as_attributes(),
        )
        try:
            self._tracking_table.conditional_put(row, now=now, reclaim_window=RECLAIM_WINDOW_SECONDS)
        except ConflictError:
            # The active job belongs to the same input, so the record keeps tracking it.
            logger.info("submit.conflict record_id=%s input_key=%s", record.id, safe_identity)
            raise
        except SermonAudioError as exc:
            logger.warning(
                "submit.store_failed record_id=%s input_key=%s error=%s",
                record.id,
                safe_identity,
                describe_error(exc),
            )
            self._compensate(record, exc)
            raise

        logger.info(
            "submit.queued record_id=%s langcode=%s mode=store input_key=%s",
            record.id,
            record.langcode,
            safe_identity,
        )
        return SubmissionResult(
            record_id=record.id,
            langcode=record.langcode,
            mode="store",
            cleaning_job_id=identity,
        )

    def _compensate(self, record: ProcessingRecord, cause: SermonAudioError) -> None:
        """Clear the initiated marker after a failed queue write."""
        record.cleaning_job = JobSlot()
        try:
            self._records.save_record(record)
        except Exception as exc:
            logger.error(
                "submit.compensation_failed record_id=%s error=%s cause=%s",
                record.id,
                describe_error(exc),
                describe_error(cause),
            )
            raise AggregateError(
                "Failed to clear the job marker after a tracking store error.",
                [exc, cause],
            ) from cause


def _required_job_id(data: dict, name: str) -> str:
    value = data.get(name)
    if not isinstance(value, str) or not value:
        raise ApiError(f'Job submission response has a missing or invalid "{name}".', details={"field": name})
    return value


__all__ = [
    "DEBUG_CLEANING_JOB_ID",
    "DEBUG_TRANSCRIPTION_JOB_ID",
    "JobSubmitter",
    "SubmissionMetadata",
    "SubmissionResult",
]
