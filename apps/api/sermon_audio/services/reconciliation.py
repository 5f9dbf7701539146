"""Job reconciliation service layer."""

from __future__ import annotations

from collections.abc import Mapping
import logging
import math
import posixpath
from typing import Any

from sermon_audio.adapters.aws.base import ObjectStorage, TrackingTable
from sermon_audio.adapters.aws.invoker import ApiInvoker, decode_json_object
from sermon_audio.core.config import Settings
from sermon_audio.core.logging_safety import describe_error, safe_log_identifier
from sermon_audio.domain.job_fsm import ensure_pending, ensure_transition, job_state
from sermon_audio.domain.outcomes import (
    CleaningCompleted,
    Failed,
    JobOutcome,
    NoChange,
    ReconcileResult,
    TranscriptionCompleted,
)
from sermon_audio.errors import (
    ApiError,
    ConfigurationError,
    MalformedDataError,
    SermonAudioError,
    is_expected_error,
)
from sermon_audio.repositories.base import ArtifactRepository
from sermon_audio.repositories.memory import ProcessingRecord, RecordInvariantError
from sermon_audio.schemas.job import JobKind, JobState, ReconcileStatus, RemoteJobStatus

logger = logging.getLogger(__name__)

DEBUG_TRANSCRIPT_SUB_KEY = "debug-transcription.xml"
PROCESSED_AUDIO_MIME_TYPE = "audio/m4a"

_RESULTS_ENDPOINT_SETTINGS: dict[JobKind, tuple[str, str]] = {
    JobKind.CLEANING: ("cleaning_job_results_endpoint", "cleaning_job_results_endpoint_aws_region"),
    JobKind.TRANSCRIPTION: ("transcription_job_results_endpoint", "transcription_job_results_endpoint_aws_region"),
}


class JobReconciler:
    """Polls open jobs and applies their outcome to record variants.

    Polling and applying are separate steps: ``poll`` only observes and
    returns a ``JobOutcome``; ``apply`` performs the state transition and any
    artifact creation. Records are never saved here.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        artifacts: ArtifactRepository,
        invoker: ApiInvoker | None = None,
        tracking_table: TrackingTable | None = None,
        audio_storage: ObjectStorage | None = None,
        size_cache: Mapping[str, int] | None = None,
    ) -> None:
        self._settings = settings
        self._artifacts = artifacts
        self._invoker = invoker
        self._tracking_table = tracking_table
        self._audio_storage = audio_storage
        self._size_cache = size_cache

    def reconcile(self, record: ProcessingRecord, kind: JobKind) -> ReconcileStatus:
        """Poll the open job of ``kind`` and apply what was observed.

        Raises InvalidStateError when the slot has no open job. If polling
        fails, the job id is kept so a later pass can try again.
        """
        job_id = ensure_pending(record, kind)
        outcome = self.poll(record, kind, job_id)
        return self.apply(record, kind, outcome)

    def try_reconcile(self, record: ProcessingRecord, kind: JobKind) -> ReconcileResult:
        """Like ``reconcile``, but expected failures are returned, not raised."""
        try:
            status = self.reconcile(record, kind)
        except SermonAudioError as exc:
            if not is_expected_error(exc):
                raise
            logger.warning(
                "reconcile.failed record_id=%s langcode=%s kind=%s error=%s",
                record.id,
                record.langcode,
                kind.value,
                describe_error(exc),
            )
            return ReconcileResult(record_id=record.id, langcode=record.langcode, kind=kind, error=exc)
        return ReconcileResult(record_id=record.id, langcode=record.langcode, kind=kind, status=status)

    def poll(self, record: ProcessingRecord, kind: JobKind, job_id: str | None = None) -> JobOutcome:
        if job_id is None:
            job_id = ensure_pending(record, kind)
        if self._settings.debug_mode:
            return self._debug_outcome(record, kind)
        if kind is JobKind.CLEANING and self._settings.submission_mode == "store":
            return self._poll_store(job_id)
        return self._poll_api(kind, job_id)

    def apply(self, record: ProcessingRecord, kind: JobKind, outcome: JobOutcome) -> ReconcileStatus:
        current = job_state(record, kind)
        slot = record.job(kind)
        safe_job_id = safe_log_identifier(slot.job_id, prefix="jid")

        if isinstance(outcome, NoChange):
            ensure_transition(kind, current, JobState.PENDING)
            return ReconcileStatus.UNCHANGED

        if isinstance(outcome, Failed):
            ensure_transition(kind, current, JobState.FAILED)
            slot.job_id = None
            slot.failed = True
            logger.info(
                "reconcile.job_failed record_id=%s langcode=%s kind=%s job_id=%s",
                record.id,
                record.langcode,
                kind.value,
                safe_job_id,
            )
            return ReconcileStatus.CHANGED

        ensure_transition(kind, current, JobState.COMPLETED)
        status = ReconcileStatus.CHANGED
        if isinstance(outcome, CleaningCompleted):
            if kind is not JobKind.CLEANING:
                raise ValueError("cleaning outcome applied to a transcription job")
            if self._current_result_uri(record) == outcome.output_uri:
                status = ReconcileStatus.UNCHANGED
            else:
                artifact = self._artifacts.create_artifact(
                    uri=outcome.output_uri,
                    owner_id=self._artifact_owner(record),
                    filename=outcome.display_filename,
                    mime_type=PROCESSED_AUDIO_MIME_TYPE,
                    size=self._result_size(outcome),
                )
                record.result_ref = artifact.id
                record.duration = outcome.duration
        else:
            if kind is not JobKind.TRANSCRIPTION:
                raise ValueError("transcription outcome applied to a cleaning job")
            if record.transcript_sub_key == outcome.sub_key:
                status = ReconcileStatus.UNCHANGED
            else:
                record.transcript_sub_key = outcome.sub_key

        # The remote job is finished even when its result is already stored.
        slot.job_id = None
        slot.failed = False
        logger.info(
            "reconcile.job_completed record_id=%s langcode=%s kind=%s job_id=%s status=%s",
            record.id,
            record.langcode,
            kind.value,
            safe_job_id,
            status.value,
        )
        return status

    def _debug_outcome(self, record: ProcessingRecord, kind: JobKind) -> JobOutcome:
        if kind is JobKind.TRANSCRIPTION:
            return TranscriptionCompleted(sub_key=DEBUG_TRANSCRIPT_SUB_KEY)
        if not record.source_ref:
            raise MalformedDataError("Record has no source audio reference.", details={"record_id": record.id})
        return CleaningCompleted(
            output_uri=record.source_ref,
            output_sub_key=None,
            duration=0.0,
            display_filename=posixpath.basename(record.source_ref) or record.source_ref,
        )

    def _poll_api(self, kind: JobKind, job_id: str) -> JobOutcome:
        if self._invoker is None:
            raise ConfigurationError("No API invoker is configured for job polling.")
        endpoint_setting, region_setting = _RESULTS_ENDPOINT_SETTINGS[kind]
        endpoint = self._settings.require(endpoint_setting)
        region = self._settings.require(region_setting)

        response = self._invoker.invoke(endpoint, region, query={"id": job_id}, method="GET")
        if not 200 <= response.status_code < 300:
            raise ApiError(
                "Job results endpoint returned an unsuccessful status.",
                details={"status": response.status_code, "job_kind": kind.value},
            )
        data = decode_json_object(response)
        if data is None:
            raise ApiError("Job results response is not a JSON object.", details={"job_kind": kind.value})

        status = _remote_status(data.get("status"))
        if status is RemoteJobStatus.FAILED:
            return Failed()
        if status is not RemoteJobStatus.COMPLETED:
            return NoChange()

        sub_key = data.get("output-sub-key")
        if not isinstance(sub_key, str) or not sub_key:
            raise ApiError('Job results response has a missing or invalid "output-sub-key".')
        if kind is JobKind.TRANSCRIPTION:
            return TranscriptionCompleted(sub_key=sub_key)

        duration = _api_duration(data.get("duration"))
        display_filename = data.get("output-display-filename")
        if not isinstance(display_filename, str) or not display_filename:
            display_filename = posixpath.basename(sub_key)
        return CleaningCompleted(
            output_uri=self._settings.require("processed_audio_uri_prefix") + sub_key,
            output_sub_key=sub_key,
            duration=duration,
            display_filename=display_filename,
        )

    def _poll_store(self, input_key: str) -> JobOutcome:
        if self._tracking_table is None:
            raise ConfigurationError("No tracking table is configured for job polling.")
        row = self._tracking_table.get(input_key)
        if row is None:
            return NoChange()
        if row.status is RemoteJobStatus.FAILED:
            return Failed()
        if row.status is not RemoteJobStatus.COMPLETED:
            return NoChange()

        if row.audio_duration is None:
            raise MalformedDataError("Completed tracking row has no audio duration.")
        display_filename = row.metadata.get("output-display-filename")
        if not display_filename:
            raise MalformedDataError("Completed tracking row has no output display filename.")
        return CleaningCompleted(
            output_uri=self._settings.require("processed_audio_uri_prefix") + row.output_sub_key,
            output_sub_key=row.output_sub_key,
            duration=row.audio_duration,
            display_filename=display_filename,
        )

    def _current_result_uri(self, record: ProcessingRecord) -> str | None:
        if record.result_ref is None:
            return None
        artifact = self._artifacts.get_artifact(record.result_ref)
        if artifact is None:
            raise RecordInvariantError(f"Result artifact {record.result_ref!r} does not exist")
        return artifact.uri

    def _artifact_owner(self, record: ProcessingRecord) -> str:
        if record.source_owner_id:
            return record.source_owner_id
        return self._settings.require("fallback_owner_id")

    def _result_size(self, outcome: CleaningCompleted) -> int | None:
        if self._size_cache is not None and outcome.output_uri in self._size_cache:
            return self._size_cache[outcome.output_uri]
        if outcome.output_sub_key is None or self._audio_storage is None:
            return None
        bucket = self._settings.require("audio_bucket_name")
        key_prefix = self._settings.processed_audio_key_prefix or ""
        return self._audio_storage.size_of(bucket, key_prefix + outcome.output_sub_key)


def _remote_status(raw: Any) -> RemoteJobStatus:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ApiError('Job results response has a missing or invalid "status".')
    try:
        return RemoteJobStatus(raw)
    except ValueError as exc:
        raise ApiError('Job results response has an unknown "status".', details={"status": raw}) from exc


def _api_duration(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ApiError('Job results response has a missing or invalid "duration".')
    duration = float(raw)
    if not math.isfinite(duration) or duration < 0:
        raise ApiError('Job results response "duration" is not finite or is negative.')
    return duration


__all__ = ["DEBUG_TRANSCRIPT_SUB_KEY", "JobReconciler", "PROCESSED_AUDIO_MIME_TYPE"]
