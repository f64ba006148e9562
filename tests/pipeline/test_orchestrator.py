"""
Tests for PipelineOrchestrator.

Covers phase sequencing, halting on failure, skipped phases, strict mode,
audit persistence and the orchestration log trail.
"""

from uuid import uuid4

import pytest

from asset_kernel.exceptions import PhaseNotRegisteredError

from asset_ingestion.domain.types import PIPELINE_ORDER, ImportJobStatus, PhaseStatus, PipelinePhase
from asset_ingestion.models.staging import ImportJobModel
from asset_ingestion.orchestrator import PipelineOrchestrator
from asset_ingestion.phases import (
    SAMPLE_FILE_ID,
    ExtractPhase,
    PhaseRegistry,
    TransformPhase,
    ValidatePhase,
)
from asset_ingestion.services.phase_recorder import PhaseResultRecorder


class RecordingPhase:
    """Phase stub that records the blobs it sees."""

    def __init__(self, phase, raises=None):
        self.phase = phase
        self.raises = raises
        self.seen = []

    def process(self, data, context):
        self.seen.append((dict(data), context))
        if self.raises is not None:
            raise self.raises
        return TransformPhase().process(data, context)


@pytest.fixture
def orchestrator(session, storage, settings, deterministic_clock):
    return PipelineOrchestrator.from_session(
        session, storage, settings=settings, clock=deterministic_clock
    )


@pytest.fixture
def job(session, test_actor_id):
    model = ImportJobModel(
        id=uuid4(),
        file_id="assets.csv",
        status=ImportJobStatus.RUNNING.value,
        created_by_id=test_actor_id,
    )
    session.add(model)
    session.flush()
    return model


class TestFullPipeline:
    def test_sample_file_runs_all_phases(self, orchestrator):
        result = orchestrator.orchestrate(SAMPLE_FILE_ID)

        assert result.success
        assert [o.phase for o in result.phases] == list(PIPELINE_ORDER)
        assert result.summary.phases_completed == 6
        assert result.summary.phases_skipped == 0
        assert result.summary.total_records == 2
        assert result.failure is None
        assert result.correlation_id.startswith("orchestration-")

    def test_blob_flows_between_phases(self, orchestrator):
        result = orchestrator.orchestrate(SAMPLE_FILE_ID)

        cleaned = result.outcome(PipelinePhase.CLEAN).data["cleaned_rows"]
        assert cleaned[0]["Asset Tag"] == "HVAC-001"
        assert cleaned[0]["Asset Name"] == "HVAC Unit 001"

        mapped = result.data["mapped_rows"]
        assert [r["asset_tag"] for r in mapped] == ["HVAC-001", "HVAC-002"]
        assert mapped[1]["status"].value == "MAINTENANCE"

    def test_phase_results_persisted_for_job(self, orchestrator, session, settings, job):
        result = orchestrator.orchestrate("assets.csv", job_id=job.id)
        assert result.success
        assert result.job_id == job.id

        records = PhaseResultRecorder(session, settings).list_for_job(job.id)
        assert [r.phase for r in records] == list(PIPELINE_ORDER)
        assert all(r.status == PhaseStatus.SUCCESS for r in records)

        clean = next(r for r in records if r.phase == PipelinePhase.CLEAN)
        assert clean.sample_before[0]["Asset Tag"] == "  A-001 "
        assert clean.sample_after[0]["Asset Tag"] == "A-001"
        assert "Asset Tag TRIM Rule" in clean.applied_rules

    def test_missing_job_does_not_stop_run(self, orchestrator, captured_logs):
        result = orchestrator.orchestrate(SAMPLE_FILE_ID, job_id=uuid4())
        assert result.success
        assert any(r["message"] == "phase_result_persist_failed" for r in captured_logs())

    def test_log_trail_carries_correlation_id(self, orchestrator, captured_logs):
        result = orchestrator.orchestrate(SAMPLE_FILE_ID)
        logs = captured_logs()

        completed = [r for r in logs if r["message"] == "orchestration_completed"]
        assert len(completed) == 1
        assert completed[0]["correlation_id"] == result.correlation_id
        assert completed[0]["phases_completed"] == 6

        phase_logs = [r for r in logs if r["message"] == "phase_completed" and r.get("success") is not None]
        assert [r["phase"] for r in phase_logs] == [p.value for p in PIPELINE_ORDER]


class TestHalting:
    def test_extract_failure_halts(self, orchestrator):
        result = orchestrator.orchestrate("missing.csv")

        assert not result.success
        assert [o.phase for o in result.phases] == [PipelinePhase.EXTRACT]
        assert result.failure.phase == "EXTRACT"
        assert result.errors[0].startswith("EXTRACT failed:")
        assert result.summary.phases_skipped == 5

    def test_crashing_processor_becomes_failed_outcome(self, storage, settings):
        registry = PhaseRegistry()
        registry.register(ExtractPhase(storage))
        crasher = RecordingPhase(PipelinePhase.VALIDATE, raises=RuntimeError("kaboom"))
        registry.register(crasher)
        after = RecordingPhase(PipelinePhase.CLEAN)
        registry.register(after)

        result = PipelineOrchestrator(registry).orchestrate(SAMPLE_FILE_ID)

        assert not result.success
        assert result.outcome(PipelinePhase.VALIDATE).errors == ("VALIDATE failed: kaboom",)
        assert result.outcome(PipelinePhase.VALIDATE).metrics.records_failed == 1
        assert after.seen == []

    def test_failure_without_errors_continues(self, storage, settings):
        class QuietFailure(RecordingPhase):
            def process(self, data, context):
                outcome = super().process(data, context)
                return type(outcome)(
                    phase=self.phase, success=False, data=outcome.data, metrics=outcome.metrics,
                )

        registry = PhaseRegistry()
        registry.register(ExtractPhase(storage))
        registry.register(QuietFailure(PipelinePhase.VALIDATE))
        last = RecordingPhase(PipelinePhase.CLEAN)
        registry.register(last)

        result = PipelineOrchestrator(registry).orchestrate(SAMPLE_FILE_ID)

        assert len(last.seen) == 1
        assert not result.success


class TestSkippedPhases:
    def test_unregistered_phases_skipped(self, storage, settings, captured_logs):
        registry = PhaseRegistry()
        registry.register(ExtractPhase(storage))
        registry.register(ValidatePhase(settings))

        result = PipelineOrchestrator(registry).orchestrate(SAMPLE_FILE_ID)

        assert result.success
        assert result.summary.phases_completed == 2
        assert result.summary.phases_skipped == 4
        skipped = [r["phase"] for r in captured_logs() if r["message"] == "phase_skipped"]
        assert skipped == ["CLEAN", "TRANSFORM", "MAP", "LOAD"]

    def test_previous_phases_in_context(self, storage):
        registry = PhaseRegistry()
        registry.register(ExtractPhase(storage))
        recording = RecordingPhase(PipelinePhase.TRANSFORM)
        registry.register(recording)

        PipelineOrchestrator(registry).orchestrate(SAMPLE_FILE_ID)

        blob, context = recording.seen[0]
        assert context.previous_phases == (PipelinePhase.EXTRACT,)
        assert blob["total_rows"] == 2

    def test_strict_mode_raises_before_running(self, storage):
        registry = PhaseRegistry()
        recording = RecordingPhase(PipelinePhase.EXTRACT)
        registry.register(recording)

        with pytest.raises(PhaseNotRegisteredError):
            PipelineOrchestrator(registry, require_all_phases=True).orchestrate(SAMPLE_FILE_ID)
        assert recording.seen == []

    def test_empty_registry_is_not_success(self):
        result = PipelineOrchestrator(PhaseRegistry()).orchestrate(SAMPLE_FILE_ID)
        assert not result.success
        assert result.phases == ()
