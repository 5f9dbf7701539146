"""Reconciliation session, sweep and announcement tests."""

from __future__ import annotations

import unittest

from sermon_audio.core.config import Settings
from sermon_audio.errors import ApiError, NotFoundError, TransportError
from sermon_audio.repositories.memory import InMemoryStore, JobSlot, ProcessingRecord
from sermon_audio.schemas.job import JobKind
from sermon_audio.services.reconciliation import JobReconciler
from sermon_audio.services.sweep import RefreshSweep


class _FakeResponse:
    def __init__(self, status_code: int, payload: object) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> object:
        return self._payload


class _JobStatusInvoker:
    """Answers results queries from a job id -> payload (or exception) table."""

    def __init__(self, results: dict[str, object]) -> None:
        self.results = results
        self.queried: list[str] = []

    def invoke(self, endpoint, region, *, body=None, query=None, method="GET"):
        job_id = query["id"]
        self.queried.append(job_id)
        result = self.results[job_id]
        if isinstance(result, Exception):
            raise result
        return _FakeResponse(200, result)


def _settings() -> Settings:
    return Settings(
        cleaning_job_results_endpoint="https://jobs.example.test/cleaning",
        cleaning_job_results_endpoint_aws_region="us-east-1",
        transcription_job_results_endpoint="https://jobs.example.test/transcription",
        transcription_job_results_endpoint_aws_region="us-east-1",
        processed_audio_uri_prefix="s3://sermon-audio/processed/",
        fallback_owner_id="site-admin",
    )


def _completed(sub_key: str) -> dict:
    return {"status": 2, "output-sub-key": sub_key, "duration": 60.0}


IN_PROGRESS = {"status": 1}


class _SweepCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()

    def _sweep(self, results: dict[str, object]) -> tuple[RefreshSweep, _JobStatusInvoker]:
        invoker = _JobStatusInvoker(results)
        reconciler = JobReconciler(settings=_settings(), artifacts=self.store, invoker=invoker)
        return RefreshSweep(records=self.store, reconciler=reconciler), invoker

    def _seed(self, record_id: str, *, langcode: str = "en", cleaning: str | None = None, transcription: str | None = None):
        self.store.add_record(
            ProcessingRecord(
                id=record_id,
                langcode=langcode,
                cleaning_job=JobSlot(job_id=cleaning),
                transcription_job=JobSlot(job_id=transcription),
            )
        )


class RefreshRecordTests(_SweepCase):
    def test_changed_variants_are_saved_once(self) -> None:
        self._seed("rec-1", cleaning="clean-1", transcription="trans-1")
        sweep, _ = self._sweep({"clean-1": _completed("rec-1.m4a"), "trans-1": _completed("rec-1.xml")})

        with sweep.session() as session:
            result = session.refresh_record("rec-1")

        self.assertTrue(result.changed)
        self.assertEqual(result.updated_transcript_langcodes, ["en"])
        self.assertEqual(self.store.record_write_count, 1)
        stored = self.store.get_variant("rec-1")
        self.assertIsNone(stored.cleaning_job.job_id)
        self.assertEqual(stored.transcript_sub_key, "rec-1.xml")

    def test_unchanged_record_is_not_saved(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        sweep, _ = self._sweep({"clean-1": IN_PROGRESS})

        with sweep.session() as session:
            result = session.refresh_record("rec-1")

        self.assertFalse(result.changed)
        self.assertEqual(self.store.record_write_count, 0)

    def test_missing_record_is_not_found(self) -> None:
        sweep, _ = self._sweep({})
        with sweep.session() as session:
            with self.assertRaises(NotFoundError):
                session.refresh_record("rec-404")

    def test_first_expected_error_is_raised_without_capture(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        self._seed("rec-1", langcode="es", cleaning="clean-2")
        sweep, _ = self._sweep({"clean-1": TransportError("timed out"), "clean-2": _completed("es.m4a")})

        with sweep.session() as session:
            with self.assertRaises(TransportError):
                session.refresh_record("rec-1")
        self.assertEqual(self.store.record_write_count, 0)

    def test_results_applied_before_an_error_are_saved(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        self._seed("rec-1", langcode="es", cleaning="clean-2")
        sweep, invoker = self._sweep({"clean-1": _completed("en.m4a"), "clean-2": TransportError("timed out")})

        with sweep.session() as session:
            with self.assertRaises(TransportError):
                session.refresh_record("rec-1")

        stored = self.store.get_variant("rec-1")
        self.assertIsNone(stored.cleaning_job.job_id)
        self.assertIsNotNone(stored.result_ref)
        self.assertEqual(self.store.get_variant("rec-1", "es").cleaning_job.job_id, "clean-2")

        with sweep.session() as session:
            with self.assertRaises(TransportError):
                session.refresh_record("rec-1")

        self.assertEqual(len(self.store.artifacts), 1)
        self.assertEqual(invoker.queried, ["clean-1", "clean-2", "clean-2"])

    def test_captured_errors_do_not_stop_other_variants(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        self._seed("rec-1", langcode="es", cleaning="clean-2")
        sweep, _ = self._sweep({"clean-1": TransportError("timed out"), "clean-2": _completed("es.m4a")})

        with sweep.session() as session:
            result = session.refresh_record("rec-1", capture_errors=True)

        self.assertTrue(result.changed)
        self.assertIsInstance(result.error, TransportError)
        self.assertEqual(self.store.get_variant("rec-1").cleaning_job.job_id, "clean-1")
        self.assertIsNone(self.store.get_variant("rec-1", "es").cleaning_job.job_id)

    def test_record_is_reconciled_once_per_session(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        sweep, invoker = self._sweep({"clean-1": _completed("rec-1.m4a")})

        with sweep.session() as session:
            first = session.refresh_record("rec-1")
            second = session.refresh_record("rec-1")

        self.assertTrue(first.changed)
        self.assertTrue(second.skipped)
        self.assertEqual(invoker.queried, ["clean-1"])
        # Initial load plus the reload that follows the save.
        self.assertEqual(self.store.load_count, 2)
        self.assertEqual(self.store.load_listeners, [])

    def test_loading_inside_a_session_refreshes_open_jobs(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        sweep, invoker = self._sweep({"clean-1": _completed("rec-1.m4a")})

        with sweep.session():
            variants = self.store.load_record("rec-1")

        self.assertIsNone(variants[0].cleaning_job.job_id)
        self.assertIsNotNone(variants[0].result_ref)
        self.assertEqual(invoker.queried, ["clean-1"])
        self.assertEqual(self.store.record_write_count, 1)

    def test_loading_outside_a_session_does_not_refresh(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        _, invoker = self._sweep({"clean-1": _completed("rec-1.m4a")})

        variants = self.store.load_record("rec-1")

        self.assertEqual(variants[0].cleaning_job.job_id, "clean-1")
        self.assertEqual(invoker.queried, [])


class SweepRunTests(_SweepCase):
    def test_sweep_continues_past_failures(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        self._seed("rec-2", cleaning="clean-2")
        self._seed("rec-3", transcription="trans-3")
        self._seed("rec-4")
        sweep, invoker = self._sweep(
            {
                "clean-1": ApiError("bad gateway"),
                "clean-2": _completed("rec-2.m4a"),
                "trans-3": IN_PROGRESS,
            }
        )

        report = sweep.run()

        self.assertEqual(report.examined, 3)
        self.assertEqual(report.changed, 1)
        self.assertEqual(report.failures, [("rec-1", "UPSTREAM_API_ERROR")])
        self.assertEqual(sorted(invoker.queried), ["clean-1", "clean-2", "trans-3"])
        self.assertEqual(self.store.get_variant("rec-1").cleaning_job.job_id, "clean-1")

    def test_completion_matching_stored_result_closes_the_job(self) -> None:
        existing = self.store.create_artifact(
            uri="s3://sermon-audio/processed/rec-1.m4a",
            owner_id="owner-1",
            filename="rec-1.m4a",
            mime_type="audio/m4a",
            size=512,
        )
        self.store.add_record(
            ProcessingRecord(id="rec-1", result_ref=existing.id, duration=60.0, cleaning_job=JobSlot(job_id="clean-1"))
        )
        sweep, invoker = self._sweep({"clean-1": _completed("rec-1.m4a")})

        report = sweep.run()

        self.assertEqual((report.examined, report.changed), (1, 1))
        stored = self.store.get_variant("rec-1")
        self.assertIsNone(stored.cleaning_job.job_id)
        self.assertEqual(stored.result_ref, existing.id)
        self.assertEqual(len(self.store.artifacts), 1)
        self.assertEqual(self.store.list_open_job_record_ids(), [])

        self.assertEqual(sweep.run().examined, 0)
        self.assertEqual(invoker.queried, ["clean-1"])

    def test_sweep_with_no_open_jobs_is_empty(self) -> None:
        self._seed("rec-1")
        sweep, _ = self._sweep({})
        report = sweep.run()
        self.assertEqual((report.examined, report.changed, report.failures), (0, 0, []))


class AnnouncedJobTests(_SweepCase):
    def test_only_matching_job_kind_is_reconciled(self) -> None:
        self._seed("rec-1", cleaning="clean-1", transcription="trans-1")
        self._seed("rec-2", cleaning="clean-2")
        sweep, invoker = self._sweep({"trans-1": _completed("rec-1.xml")})

        results = sweep.refresh_announced_job(JobKind.TRANSCRIPTION, "trans-1")

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].updated_transcript_langcodes, ["en"])
        self.assertEqual(invoker.queried, ["trans-1"])
        stored = self.store.get_variant("rec-1")
        self.assertEqual(stored.cleaning_job.job_id, "clean-1")
        self.assertEqual(stored.transcript_sub_key, "rec-1.xml")

    def test_unknown_job_id_is_ignored(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        sweep, invoker = self._sweep({})
        self.assertEqual(sweep.refresh_announced_job(JobKind.CLEANING, "clean-unknown"), [])
        self.assertEqual(invoker.queried, [])

    def test_announced_failures_are_captured(self) -> None:
        self._seed("rec-1", cleaning="clean-1")
        sweep, _ = self._sweep({"clean-1": TransportError("timed out")})

        results = sweep.refresh_announced_job(JobKind.CLEANING, "clean-1")

        self.assertIsInstance(results[0].error, TransportError)
        self.assertEqual(self.store.get_variant("rec-1").cleaning_job.job_id, "clean-1")


if __name__ == "__main__":
    unittest.main()
