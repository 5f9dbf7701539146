"""Record service layer used by the HTTP routes."""

from __future__ import annotations

from sermon_audio.domain.job_fsm import job_state
from sermon_audio.errors import InvalidStateError, NotFoundError
from sermon_audio.repositories.memory import InMemoryStore, ProcessingRecord
from sermon_audio.schemas.job import JobKind, JobSlotView
from sermon_audio.schemas.record import (
    RecordVariantView,
    RecordView,
    RefreshRecordResponse,
    ResultArtifactView,
    SubmitJobRequest,
    SubmitJobResponse,
)
from sermon_audio.services.submission import JobSubmitter, SubmissionMetadata
from sermon_audio.services.sweep import RefreshSweep
from sermon_audio.services.transcripts import TranscriptRenderer


class RecordService:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        submitter: JobSubmitter,
        sweep: RefreshSweep,
        renderer: TranscriptRenderer,
    ) -> None:
        self._store = store
        self._submitter = submitter
        self._sweep = sweep
        self._renderer = renderer

    def get_record(self, *, record_id: str) -> RecordView:
        # Loading inside a session refreshes variants with open jobs first.
        with self._sweep.session():
            variants = self._load(record_id)
        return RecordView(id=record_id, variants=[self._to_variant_view(variant) for variant in variants])

    def submit(self, *, record_id: str, payload: SubmitJobRequest) -> SubmitJobResponse:
        variant = self._variant(self._load(record_id), payload.langcode)
        metadata = SubmissionMetadata(
            sermon_name=payload.sermon_name,
            sermon_speaker=payload.sermon_speaker,
            sermon_year=payload.sermon_year,
            sermon_congregation=payload.sermon_congregation,
            display_filename=payload.display_filename,
        )
        result = self._submitter.submit(variant, metadata, transcribe=payload.transcribe)
        return SubmitJobResponse(
            record_id=result.record_id,
            langcode=result.langcode,
            mode=result.mode,
            cleaning_job_id=result.cleaning_job_id,
            transcription_job_id=result.transcription_job_id,
        )

    def refresh(self, *, record_id: str, capture_errors: bool) -> RefreshRecordResponse:
        with self._sweep.session() as session:
            result = session.refresh_record(record_id, capture_errors=capture_errors)
        error = result.error
        return RefreshRecordResponse(
            record_id=record_id,
            changed=result.changed,
            skipped=result.skipped,
            updated_transcript_langcodes=result.updated_transcript_langcodes,
            error=error.payload if error is not None else None,
        )

    def transcript_html(self, *, record_id: str, langcode: str) -> str:
        variant = self._variant(self._load(record_id), langcode)
        if variant.transcript_sub_key is None:
            raise InvalidStateError(
                "Record has no transcription",
                details={"current_state": job_state(variant, JobKind.TRANSCRIPTION).value},
            )
        return self._renderer.render_html(variant.transcript_sub_key)

    def _load(self, record_id: str) -> list[ProcessingRecord]:
        variants = self._store.load_record(record_id)
        if not variants:
            raise NotFoundError("Resource not found")
        return variants

    @staticmethod
    def _variant(variants: list[ProcessingRecord], langcode: str) -> ProcessingRecord:
        for variant in variants:
            if variant.langcode == langcode:
                return variant
        raise NotFoundError("Resource not found")

    def _to_variant_view(self, variant: ProcessingRecord) -> RecordVariantView:
        artifact = self._store.get_artifact(variant.result_ref) if variant.result_ref else None
        return RecordVariantView(
            langcode=variant.langcode,
            source_ref=variant.source_ref,
            cleaning_job=self._slot_view(variant, JobKind.CLEANING),
            transcription_job=self._slot_view(variant, JobKind.TRANSCRIPTION),
            result=(
                ResultArtifactView(
                    id=artifact.id,
                    uri=artifact.uri,
                    filename=artifact.filename,
                    mime_type=artifact.mime_type,
                    size=artifact.size,
                )
                if artifact is not None
                else None
            ),
            duration=variant.duration,
            has_transcript=variant.transcript_sub_key is not None,
        )

    @staticmethod
    def _slot_view(variant: ProcessingRecord, kind: JobKind) -> JobSlotView:
        slot = variant.job(kind)
        return JobSlotView(state=job_state(variant, kind), has_job=slot.job_id is not None, failed=slot.failed)
