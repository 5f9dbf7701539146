"""Reconciliation drivers: interactive refresh, announced jobs and periodic sweeps."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging

from sermon_audio.core.logging_safety import describe_error, safe_log_identifier
from sermon_audio.domain.outcomes import ReconcileResult
from sermon_audio.errors import NotFoundError, SermonAudioError
from sermon_audio.repositories.base import RecordRepository
from sermon_audio.repositories.memory import ProcessingRecord
from sermon_audio.schemas.job import JobKind
from sermon_audio.services.reconciliation import JobReconciler

logger = logging.getLogger(__name__)

ALL_JOB_KINDS: tuple[JobKind, ...] = (JobKind.CLEANING, JobKind.TRANSCRIPTION)


@dataclass(slots=True)
class RefreshResult:
    record_id: str
    changed: bool = False
    skipped: bool = False
    results: list[ReconcileResult] = field(default_factory=list)

    @property
    def error(self) -> SermonAudioError | None:
        """First captured expected error, if any."""
        for result in self.results:
            if result.error is not None:
                return result.error
        return None

    @property
    def updated_transcript_langcodes(self) -> list[str]:
        return [
            result.langcode
            for result in self.results
            if result.kind is JobKind.TRANSCRIPTION and result.changed
        ]


@dataclass(slots=True)
class SweepReport:
    examined: int = 0
    changed: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)


class ReconciliationSession:
    """Reconciles records for one request or batch run.

    The session remembers which record ids it has handled. Saving a record
    makes the repository reload it, and while the session is open every load
    is offered to the session so variants with open jobs are refreshed as
    soon as they are read; the memo keeps that from recursing.
    """

    def __init__(self, *, records: RecordRepository, reconciler: JobReconciler) -> None:
        self._records = records
        self._reconciler = reconciler
        self._visited: set[str] = set()
        self._listening = False

    def __enter__(self) -> ReconciliationSession:
        self._records.add_load_listener(self._on_load)
        self._listening = True
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._listening:
            self._records.remove_load_listener(self._on_load)
            self._listening = False
        self._visited.clear()

    def has_visited(self, record_id: str) -> bool:
        return record_id in self._visited

    def refresh_record(
        self,
        record_id: str,
        *,
        capture_errors: bool = False,
        kinds: Iterable[JobKind] = ALL_JOB_KINDS,
    ) -> RefreshResult:
        """Reconcile every open job of ``kinds`` across the record's variants.

        With ``capture_errors`` expected failures are kept on the result and
        the remaining variants are still processed; otherwise the first one
        is raised once the variants already reconciled are saved. Unexpected
        failures always propagate.
        """
        if record_id in self._visited:
            return RefreshResult(record_id=record_id, skipped=True)
        # Marked before loading so the load notification is ignored.
        self._visited.add(record_id)

        variants = self._records.load_record(record_id)
        if variants is None:
            raise NotFoundError("Resource not found", details={"record_id": record_id})
        return self._refresh_variants(record_id, variants, capture_errors=capture_errors, kinds=tuple(kinds))

    def _on_load(self, variants: list[ProcessingRecord]) -> None:
        if not variants:
            return
        record_id = variants[0].id
        if record_id in self._visited:
            return
        self._visited.add(record_id)
        if not any(variant.has_open_job() for variant in variants):
            return
        self._refresh_variants(record_id, variants, capture_errors=True, kinds=ALL_JOB_KINDS)

    def _refresh_variants(
        self,
        record_id: str,
        variants: list[ProcessingRecord],
        *,
        capture_errors: bool,
        kinds: tuple[JobKind, ...],
    ) -> RefreshResult:
        result = RefreshResult(record_id=record_id)
        changed_variants: list[ProcessingRecord] = []
        first_error: SermonAudioError | None = None
        for variant in variants:
            variant_changed = False
            for kind in kinds:
                job_id = variant.job(kind).job_id
                if job_id is None:
                    continue
                outcome = self._reconciler.try_reconcile(variant, kind)
                if outcome.error is not None and not capture_errors:
                    first_error = outcome.error
                    break
                result.results.append(outcome)
                # An UNCHANGED completion still closes the slot.
                if outcome.changed or variant.job(kind).job_id != job_id:
                    variant_changed = True
            if variant_changed:
                changed_variants.append(variant)
            if first_error is not None:
                break

        # Applied results are saved before an error is raised, or their
        # artifacts would be orphaned and created again on the next pass.
        for variant in changed_variants:
            self._records.save_record(variant)
        if first_error is not None:
            raise first_error
        result.changed = bool(changed_variants)
        return result


class RefreshSweep:
    """Entry points for background reconciliation."""

    def __init__(self, *, records: RecordRepository, reconciler: JobReconciler) -> None:
        self._records = records
        self._reconciler = reconciler

    def session(self) -> ReconciliationSession:
        return ReconciliationSession(records=self._records, reconciler=self._reconciler)

    def run(self) -> SweepReport:
        """Reconcile every record with an open job, logging expected failures."""
        report = SweepReport()
        with self.session() as session:
            for record_id in self._records.list_open_job_record_ids():
                if session.has_visited(record_id):
                    continue
                result = session.refresh_record(record_id, capture_errors=True)
                report.examined += 1
                if result.changed:
                    report.changed += 1
                for outcome in result.results:
                    if outcome.error is None:
                        continue
                    report.failures.append((record_id, outcome.error.code))
                    logger.warning(
                        "sweep.record_failed record_id=%s langcode=%s kind=%s error=%s",
                        record_id,
                        outcome.langcode,
                        outcome.kind.value,
                        describe_error(outcome.error),
                    )
        logger.info(
            "sweep.completed examined=%s changed=%s failed=%s",
            report.examined,
            report.changed,
            len(report.failures),
        )
        return report

    def refresh_announced_job(self, kind: JobKind, job_id: str) -> list[RefreshResult]:
        """Reconcile the records whose open job of ``kind`` is ``job_id``."""
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        record_ids = self._records.find_record_ids_by_job(kind, job_id)
        if not record_ids:
            logger.info("announce.no_match kind=%s job_id=%s", kind.value, safe_job_id)
            return []

        results = []
        with self.session() as session:
            for record_id in record_ids:
                result = session.refresh_record(record_id, capture_errors=True, kinds=(kind,))
                for outcome in result.results:
                    if outcome.error is not None:
                        logger.warning(
                            "announce.record_failed record_id=%s kind=%s job_id=%s error=%s",
                            record_id,
                            kind.value,
                            safe_job_id,
                            describe_error(outcome.error),
                        )
                results.append(result)
        logger.info("announce.processed kind=%s job_id=%s records=%s", kind.value, safe_job_id, len(results))
        return results


__all__ = ["ReconciliationSession", "RefreshResult", "RefreshSweep", "SweepReport"]
