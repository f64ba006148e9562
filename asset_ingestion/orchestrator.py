"""
PipelineOrchestrator -- sequencing engine and DI container for the pipeline.

Contract:
    ``orchestrate(file_id, job_id=None)`` runs the phases in PIPELINE_ORDER,
    feeding each phase the blob the previous one produced, and persists one
    PhaseResult per executed phase.  Returns an OrchestrationResult with
    every outcome, a summary, and the final blob.
    ``from_session()`` wires the default processor registry, rule store,
    rule engine, phases and recorder around one session.

Architecture: asset_ingestion (top-level).  The orchestrator never commits;
    the caller owns the transaction.

Invariants enforced:
    - Phases run strictly in pipeline order; the pipeline halts at the first
      phase that reports failure with errors.
    - A phase with no registered processor is skipped (logged, counted in
      ``phases_skipped``) unless ``require_all_phases`` is set, in which case
      PhaseNotRegisteredError is raised before anything runs.
    - Failing to persist an audit record is logged and never stops the run.
    - ``success`` requires at least one executed phase and no failed phase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from asset_config import get_pipeline_settings
from asset_config.schema import PipelineSettings
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.exceptions import PersistenceError, PhaseFailure, PhaseNotRegisteredError
from asset_kernel.logging_config import LogContext, get_logger

from asset_ingestion.adapters.base import StorageCollaborator
from asset_ingestion.domain.types import PIPELINE_ORDER, PipelinePhase
from asset_ingestion.phases import default_phase_registry
from asset_ingestion.phases.base import (
    PhaseContext,
    PhaseOutcome,
    PhaseProcessor,
    PhaseRegistry,
    failed_outcome,
)
from asset_ingestion.rules.engine import RuleEngine
from asset_ingestion.rules.registry import ProcessorRegistry, default_processor_registry
from asset_ingestion.rules.store import RuleStore
from asset_ingestion.services.phase_recorder import PhaseResultRecorder

logger = get_logger("ingestion.orchestrator")

# Blob keys sampled into the audit record: (before, after).
_SAMPLE_KEYS: dict[PipelinePhase, tuple[str | None, str | None]] = {
    PipelinePhase.EXTRACT: (None, "rows"),
    PipelinePhase.VALIDATE: ("rows", "valid_rows"),
    PipelinePhase.CLEAN: ("valid_rows", "cleaned_rows"),
    PipelinePhase.TRANSFORM: ("cleaned_rows", "transformed_rows"),
    PipelinePhase.MAP: ("transformed_rows", "mapped_rows"),
    PipelinePhase.LOAD: ("mapped_rows", None),
}


@dataclass(frozen=True)
class OrchestrationSummary:
    total_records: int
    successful_records: int
    failed_records: int
    phases_completed: int
    phases_skipped: int


@dataclass(frozen=True)
class OrchestrationResult:
    """Outcome of one orchestration run."""

    success: bool
    phases: tuple[PhaseOutcome, ...]
    summary: OrchestrationSummary
    job_id: UUID
    correlation_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def outcome(self, phase: PipelinePhase) -> PhaseOutcome | None:
        return next((o for o in self.phases if o.phase == phase), None)

    @property
    def failure(self) -> PhaseFailure | None:
        """The halting failure, if the run stopped on a failed phase."""
        for outcome in self.phases:
            if not outcome.success:
                return PhaseFailure(outcome.phase.value, outcome.errors)
        return None

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(e for o in self.phases for e in o.errors if not o.success)


def summarize(outcomes: tuple[PhaseOutcome, ...]) -> OrchestrationSummary:
    return OrchestrationSummary(
        total_records=max((o.metrics.records_processed for o in outcomes), default=0),
        successful_records=sum(o.metrics.records_success for o in outcomes),
        failed_records=sum(o.metrics.records_failed for o in outcomes),
        phases_completed=len(outcomes),
        phases_skipped=len(PIPELINE_ORDER) - len(outcomes),
    )


def _sample(blob: Mapping[str, Any], key: str | None, limit: int) -> list[dict[str, Any]]:
    if key is None:
        return []
    rows = blob.get(key)
    if not isinstance(rows, (list, tuple)):
        return []
    return [dict(r) for r in rows[:limit] if isinstance(r, Mapping)]


class PipelineOrchestrator:
    """Runs the six-phase import pipeline.

    Non-goals:
        - Does NOT manage job status -- ImportJobService does.
        - Does NOT commit -- callers control the transaction.
    """

    def __init__(
        self,
        phase_registry: PhaseRegistry,
        recorder: PhaseResultRecorder | None = None,
        clock: Clock | None = None,
        sample_limit: int = 5,
        require_all_phases: bool = False,
    ):
        self._phases = phase_registry
        self._recorder = recorder
        self._clock = clock or SystemClock()
        self._sample_limit = sample_limit
        self._require_all = require_all_phases

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        storage: StorageCollaborator,
        settings: PipelineSettings | None = None,
        clock: Clock | None = None,
        processor_registry: ProcessorRegistry | None = None,
        require_all_phases: bool = False,
    ) -> PipelineOrchestrator:
        """Create a fully wired orchestrator around one session.

        Args:
            session: Session used by the rule store, Load and the recorder.
            storage: File / asset store collaborator used by Extract.
            settings: Pipeline settings; loaded from the default config set
                when omitted.
            clock: Optional clock for deterministic testing.
            processor_registry: Optional pre-built registry.  If None, uses
                every built-in processor.
            require_all_phases: Raise instead of skipping unregistered phases.
        """
        effective_clock = clock or SystemClock()
        effective_settings = settings or get_pipeline_settings()
        registry = processor_registry if processor_registry is not None else default_processor_registry()

        rule_store = RuleStore(session, registry)
        engine = RuleEngine(rule_store, registry)
        phases = default_phase_registry(
            session, storage, effective_settings, rule_store, engine, clock=effective_clock,
        )
        return cls(
            phase_registry=phases,
            recorder=PhaseResultRecorder(session, effective_settings),
            clock=effective_clock,
            sample_limit=effective_settings.sample_limit,
            require_all_phases=require_all_phases,
        )

    @property
    def phase_registry(self) -> PhaseRegistry:
        return self._phases

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def orchestrate(
        self,
        file_id: str,
        job_id: UUID | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> OrchestrationResult:
        """Run every registered phase for ``file_id``.

        Raises:
            PhaseNotRegisteredError: Only with ``require_all_phases`` set.
        """
        if self._require_all:
            for phase in PIPELINE_ORDER:
                if phase not in self._phases:
                    raise PhaseNotRegisteredError(phase.value)

        job_id = job_id or uuid4()
        correlation_id = f"orchestration-{uuid4()}"

        with LogContext.bind(
            correlation_id=correlation_id, job_id=str(job_id), producer="asset_pipeline",
        ):
            logger.info("orchestration_started", extra={"file_id": file_id})

            blob: dict[str, Any] = {"file_id": file_id}
            outcomes: list[PhaseOutcome] = []
            completed: list[PipelinePhase] = []

            for phase in PIPELINE_ORDER:
                processor = self._phases.find(phase)
                if processor is None:
                    logger.warning("phase_skipped", extra={"phase": phase.value})
                    continue

                context = PhaseContext(
                    job_id=job_id,
                    correlation_id=correlation_id,
                    metadata=dict(metadata or {}),
                    previous_phases=tuple(completed),
                )
                with LogContext.bind(phase=phase.value):
                    outcome = self._run_phase(processor, phase, blob, context)
                    outcomes.append(outcome)
                    self._persist(job_id, outcome, blob)

                    logger.info(
                        "phase_completed",
                        extra={
                            "success": outcome.success,
                            "duration_ms": outcome.metrics.duration_ms,
                            "records_processed": outcome.metrics.records_processed,
                            "records_failed": outcome.metrics.records_failed,
                        },
                    )

                if not outcome.success and outcome.errors:
                    logger.warning(
                        "orchestration_halted",
                        extra={"phase": phase.value, "errors": list(outcome.errors)},
                    )
                    break

                completed.append(phase)
                if outcome.data:
                    blob = outcome.data

            phases = tuple(outcomes)
            summary = summarize(phases)
            success = bool(phases) and all(o.success for o in phases)

            logger.info(
                "orchestration_completed",
                extra={
                    "success": success,
                    "phases_completed": summary.phases_completed,
                    "phases_skipped": summary.phases_skipped,
                    "total_records": summary.total_records,
                },
            )

        return OrchestrationResult(
            success=success,
            phases=phases,
            summary=summary,
            job_id=job_id,
            correlation_id=correlation_id,
            data=blob,
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_phase(
        self,
        processor: PhaseProcessor,
        phase: PipelinePhase,
        blob: dict[str, Any],
        context: PhaseContext,
    ) -> PhaseOutcome:
        started_at = self._clock.now_utc()
        try:
            return processor.process(blob, context)
        except Exception as exc:
            logger.error("phase_crashed", extra={"error": str(exc)}, exc_info=True)
            return failed_outcome(phase, blob, exc, started_at, self._clock.now_utc())

    def _persist(self, job_id: UUID, outcome: PhaseOutcome, blob_before: Mapping[str, Any]) -> None:
        if self._recorder is None:
            return
        before_key, after_key = _SAMPLE_KEYS[outcome.phase]
        try:
            self._recorder.record(
                job_id,
                outcome,
                sample_before=_sample(blob_before, before_key, self._sample_limit),
                sample_after=_sample(outcome.data, after_key, self._sample_limit),
            )
        except PersistenceError as exc:
            logger.warning(
                "phase_result_persist_failed",
                extra={"phase": outcome.phase.value, "error": str(exc)},
                exc_info=True,
            )
