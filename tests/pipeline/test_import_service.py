"""
Tests for ImportJobService: the job lifecycle around the pipeline.

Covers process -> STAGED, approve (bulk and row-by-row fallback), reject,
illegal transitions, queries, preview, cleanup and clear_all.
"""

from uuid import uuid4

import pytest

from asset_kernel.exceptions import ImportJobNotFoundError, InvalidJobTransitionError

from asset_ingestion.domain.types import ImportJobStatus, PipelinePhase
from asset_ingestion.models.staging import ImportJobModel
from asset_ingestion.phases import SAMPLE_FILE_ID
from asset_ingestion.services.import_service import REJECTED_MESSAGE, ImportJobService


@pytest.fixture
def service(session, storage, settings, deterministic_clock):
    return ImportJobService(session, storage, settings=settings, clock=deterministic_clock)


@pytest.fixture
def staged_job(service, test_actor_id):
    job = service.create_job("assets.csv", test_actor_id)
    return service.process_import(job.job_id)


class TestProcessImport:
    def test_create_job_is_pending(self, service, test_actor_id, captured_logs):
        job = service.create_job("assets.csv", test_actor_id)
        assert job.status == ImportJobStatus.PENDING
        assert job.created_by_id == test_actor_id
        assert any(r["message"] == "job_created" for r in captured_logs())

    def test_sample_csv_is_staged(self, service, staged_job, deterministic_clock):
        assert staged_job.status == ImportJobStatus.STAGED
        assert staged_job.total_rows == 4
        assert staged_job.processed_rows == 3
        assert staged_job.error_rows == 1
        assert staged_job.errors == ()
        assert staged_job.started_at is not None
        assert staged_job.completed_at is None

    def test_staged_rows(self, service, staged_job):
        staged = service.get_staged_rows(staged_job.job_id)
        assert staged.valid_count == 3
        assert staged.invalid_count == 1
        assert [r.row_number for r in staged.rows] == [1, 2, 3, 4]

        first = staged.rows[0]
        assert first.mapped_data["asset_tag"] == "A-001"
        assert first.mapped_data["name"] == "Pump One"
        assert first.mapped_data["purchase_cost"] == "1500.00"
        assert first.mapped_data["purchase_date"] == "2023-01-15"
        assert staged.rows[1].mapped_data["status"] == "INACTIVE"
        assert staged.rows[2].mapped_data["condition"] == "BROKEN"

        invalid = staged.rows[3]
        assert not invalid.is_valid
        assert invalid.validation_errors == ("Missing required field: Asset Tag",)

    def test_phase_results_for_every_phase(self, service, staged_job):
        results = service.get_phase_results(staged_job.job_id)
        assert [r.phase for r in results] == [
            PipelinePhase.EXTRACT,
            PipelinePhase.VALIDATE,
            PipelinePhase.CLEAN,
            PipelinePhase.TRANSFORM,
            PipelinePhase.MAP,
            PipelinePhase.LOAD,
        ]

    def test_missing_file_fails_job(self, service, test_actor_id):
        job = service.create_job("nope.csv", test_actor_id)
        result = service.process_import(job.job_id)

        assert result.status == ImportJobStatus.FAILED
        assert result.errors[0].startswith("EXTRACT failed:")
        assert result.completed_at is not None

    def test_orchestrator_crash_fails_job(self, session, storage, settings, test_actor_id):
        class Exploding:
            def orchestrate(self, file_id, job_id=None):
                raise RuntimeError("database went away")

        service = ImportJobService(session, storage, orchestrator=Exploding(), settings=settings)
        job = service.create_job("assets.csv", test_actor_id)
        result = service.process_import(job.job_id)
        assert result.status == ImportJobStatus.FAILED
        assert result.errors == ("Import failed: database went away",)

    def test_cannot_process_twice(self, service, staged_job):
        with pytest.raises(InvalidJobTransitionError):
            service.process_import(staged_job.job_id)

    def test_unknown_job(self, service):
        with pytest.raises(ImportJobNotFoundError):
            service.process_import(uuid4())


class TestApprove:
    def test_approve_inserts_valid_rows(self, service, storage, staged_job, captured_logs):
        result = service.approve_import(staged_job.job_id)

        assert result.success
        assert result.stats.total == 3
        assert result.stats.successful == 3
        assert result.stats.failed == 0
        assert result.stats.skipped == 1
        assert storage.bulk_calls == 1
        assert [r["asset_tag"] for r in storage.inserted] == ["A-001", "A-002", "A-003"]
        assert all(r["source_job_id"] == str(staged_job.job_id) for r in storage.inserted)

        job = service.get_job(staged_job.job_id)
        assert job.status == ImportJobStatus.COMPLETED
        assert job.completed_at is not None
        assert service.get_staged_rows(staged_job.job_id).total == 0
        assert any(r["message"] == "import_approved" for r in captured_logs())

    def test_bulk_failure_falls_back_to_row_by_row(self, service, storage, staged_job):
        storage.fail_bulk = True
        result = service.approve_import(staged_job.job_id)

        assert result.success
        assert result.stats.successful == 3
        assert storage.bulk_calls == 4

    def test_partial_failure_reported(self, service, storage, staged_job):
        storage.rejected_tags = {"A-002"}
        result = service.approve_import(staged_job.job_id)

        assert not result.success
        assert result.stats.successful == 2
        assert result.stats.failed == 1
        assert result.errors == ("Failed to insert A-002: duplicate asset_tag A-002",)
        assert service.get_job(staged_job.job_id).status == ImportJobStatus.COMPLETED

    def test_no_valid_rows(self, service, storage, test_actor_id):
        storage.add_file("bad.csv", "Asset Tag,Asset Name\n,No tag\n")
        job = service.create_job("bad.csv", test_actor_id)
        service.process_import(job.job_id)

        result = service.approve_import(job.job_id)
        assert not result.success
        assert result.errors == ("No valid assets to import",)
        assert result.stats.skipped == 1
        assert storage.inserted == []
        assert service.get_job(job.job_id).status == ImportJobStatus.STAGED

    def test_approve_requires_staged(self, service, test_actor_id):
        job = service.create_job("assets.csv", test_actor_id)
        with pytest.raises(InvalidJobTransitionError):
            service.approve_import(job.job_id)

    def test_cannot_approve_twice(self, service, staged_job):
        service.approve_import(staged_job.job_id)
        with pytest.raises(InvalidJobTransitionError):
            service.approve_import(staged_job.job_id)


class TestReject:
    def test_reject_clears_staging(self, service, storage, staged_job):
        cleared = service.reject_import(staged_job.job_id)

        assert cleared == 4
        job = service.get_job(staged_job.job_id)
        assert job.status == ImportJobStatus.FAILED
        assert job.errors == (REJECTED_MESSAGE,)
        assert storage.inserted == []

    def test_reject_after_approve_illegal(self, service, staged_job):
        service.approve_import(staged_job.job_id)
        with pytest.raises(InvalidJobTransitionError):
            service.reject_import(staged_job.job_id)


class TestQueries:
    def test_job_status_report(self, service, staged_job):
        report = service.get_job_status(staged_job.job_id)
        assert report.status == ImportJobStatus.STAGED
        assert report.progress.total == 4
        assert report.progress.processed == 3

    def test_list_jobs(self, service, test_actor_id):
        a = service.create_job("a.csv", test_actor_id)
        b = service.create_job("b.csv", test_actor_id)
        ids = {j.job_id for j in service.list_jobs()}
        assert {a.job_id, b.job_id} <= ids
        assert len(service.list_jobs(limit=1)) == 1

    def test_staged_rows_unknown_job(self, service):
        with pytest.raises(ImportJobNotFoundError):
            service.get_staged_rows(uuid4())

    def test_list_files(self, service):
        assert [f.file_id for f in service.list_files()] == ["assets.csv"]


class TestPreview:
    def test_long_values_truncated(self, service, storage, settings):
        storage.add_file("long.csv", "Asset Tag,Description\nA-1," + "d" * 150 + "\n")
        preview = service.preview_file("long.csv")

        assert preview.columns == ("Asset Tag", "Description")
        assert preview.total_rows == 1
        limit = settings.preview_value_length
        assert preview.rows[0]["Description"] == "d" * limit + "..."
        assert preview.rows[0]["Asset Tag"] == "A-1"

    def test_row_limit(self, service):
        preview = service.preview_file("assets.csv", max_rows=2)
        assert len(preview.rows) == 2
        assert preview.total_rows == 4

    def test_sample_file(self, service):
        preview = service.preview_file(SAMPLE_FILE_ID)
        assert preview.total_rows == 2


class TestCleanup:
    def test_only_finished_old_jobs_removed(self, service, test_actor_id, deterministic_clock):
        finished = service.create_job("assets.csv", test_actor_id)
        service.process_import(finished.job_id)
        service.reject_import(finished.job_id)

        pending = service.create_job("assets.csv", test_actor_id)
        staged = service.create_job("assets.csv", test_actor_id)
        service.process_import(staged.job_id)

        deterministic_clock.advance(seconds=25 * 3600)
        result = service.cleanup_old_jobs()

        assert result.jobs_deleted == 1
        assert result.phase_results_deleted == 6
        with pytest.raises(ImportJobNotFoundError):
            service.get_job(finished.job_id)
        assert service.get_job(pending.job_id).status == ImportJobStatus.PENDING
        assert service.get_job(staged.job_id).status == ImportJobStatus.STAGED

    def test_aged_running_job_kept_and_aged_failed_job_removed(
        self, service, session, test_actor_id, deterministic_clock
    ):
        running = service.create_job("assets.csv", test_actor_id)
        model = session.get(ImportJobModel, running.job_id)
        model.status = ImportJobStatus.RUNNING.value
        model.started_at = deterministic_clock.now_utc()
        session.flush()

        failed = service.process_import(service.create_job("missing.csv", test_actor_id).job_id)
        assert failed.status == ImportJobStatus.FAILED

        deterministic_clock.advance(seconds=48 * 3600)
        result = service.cleanup_old_jobs(older_than_hours=24)

        assert result.jobs_deleted == 1
        with pytest.raises(ImportJobNotFoundError):
            service.get_job(failed.job_id)
        assert service.get_job(running.job_id).status == ImportJobStatus.RUNNING

    def test_recent_jobs_kept(self, service, staged_job):
        service.reject_import(staged_job.job_id)
        assert service.cleanup_old_jobs().jobs_deleted == 0
        assert service.cleanup_old_jobs(older_than_hours=0).jobs_deleted == 0

    def test_clear_all(self, service, staged_job, test_actor_id, captured_logs):
        service.create_job("assets.csv", test_actor_id)
        result = service.clear_all()

        assert result.jobs_deleted >= 2
        assert result.staging_rows_deleted >= 4
        assert service.list_jobs() == ()
        assert any(r["message"] == "import_data_cleared" for r in captured_logs())
