"""
PhaseProcessor protocol, supporting types, and PhaseRegistry.

Contract:
    ``PhaseProcessor`` defines the interface every pipeline phase implements:
        phase -> PipelinePhase
        process(data, context) -> PhaseOutcome
    ``BasePhase`` is the shared helper: it times the phase, calls the
    subclass's ``_run`` and converts any exception into a failed outcome.
    ``PhaseRegistry`` stores one processor per PipelinePhase.

Architecture:
    asset_ingestion/phases.  Phases receive their collaborators (session,
    storage, rule engine, settings, clock) through their constructors.

Invariants enforced:
    - A phase never mutates the blob it receives; ``data`` in the outcome is
      a new dict extending the input.
    - ``process`` never raises.  An exception inside ``_run`` yields
      ``success=False``, one error ``"<PHASE> failed: <message>"``, and
      ``records_failed=1``.
    - Phase registry: one processor per phase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol, runtime_checkable
from uuid import UUID

from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import PipelinePhase

logger = get_logger("ingestion.phases")


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class PhaseContext:
    """Per-run context handed to every phase."""

    job_id: UUID
    correlation_id: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    previous_phases: tuple[PipelinePhase, ...] = ()


@dataclass(frozen=True)
class PhaseMetrics:
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    records_processed: int = 0
    records_success: int = 0
    records_failed: int = 0


@dataclass(frozen=True)
class PhaseDebug:
    """Trace attached to an outcome for the audit record."""

    rules_applied: tuple[str, ...] = ()
    transformations: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class PhaseOutcome:
    """Result of running one phase."""

    phase: PipelinePhase
    success: bool
    data: dict[str, Any]
    metrics: PhaseMetrics
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    debug: PhaseDebug = field(default_factory=PhaseDebug)


@dataclass(frozen=True)
class PhaseWork:
    """What a phase body produced, before timing is attached."""

    data: dict[str, Any]
    processed: int
    succeeded: int
    failed: int = 0
    success: bool = True
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    rules_applied: tuple[str, ...] = ()
    transformations: tuple[dict[str, Any], ...] = ()


# =============================================================================
# PhaseProcessor Protocol
# =============================================================================


@runtime_checkable
class PhaseProcessor(Protocol):
    """Protocol every pipeline phase implements.

    Contract:
        - ``phase``: the PipelinePhase this processor runs; the registry key.
        - ``process()``: consumes the blob, returns a PhaseOutcome; never
          raises for bad data.

    Non-goals:
        - Does NOT persist audit records; the orchestrator does.
        - Does NOT decide whether the pipeline halts.
    """

    @property
    def phase(self) -> PipelinePhase: ...

    def process(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseOutcome:
        ...


class BasePhase:
    """Timing and failure handling shared by the built-in phases.

    Subclasses set ``phase`` and implement ``_run(data, context) -> PhaseWork``.
    """

    phase: PipelinePhase

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def process(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseOutcome:
        started_at = self._clock.now_utc()
        logger.debug(
            "phase_started",
            extra={"phase": self.phase.value, "correlation_id": context.correlation_id},
        )
        try:
            work = self._run(data, context)
        except Exception as exc:
            completed_at = self._clock.now_utc()
            logger.error(
                "phase_failed",
                extra={"phase": self.phase.value, "error": str(exc)},
                exc_info=True,
            )
            return failed_outcome(self.phase, data, exc, started_at, completed_at)

        completed_at = self._clock.now_utc()
        logger.debug(
            "phase_completed",
            extra={
                "phase": self.phase.value,
                "records_processed": work.processed,
                "records_failed": work.failed,
            },
        )
        return PhaseOutcome(
            phase=self.phase,
            success=work.success,
            data=work.data,
            errors=work.errors,
            warnings=work.warnings,
            metrics=PhaseMetrics(
                started_at=started_at,
                completed_at=completed_at,
                duration_ms=duration_ms(started_at, completed_at),
                records_processed=work.processed,
                records_success=work.succeeded,
                records_failed=work.failed,
            ),
            debug=PhaseDebug(
                rules_applied=work.rules_applied,
                transformations=work.transformations,
            ),
        )

    def _run(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseWork:
        raise NotImplementedError


def duration_ms(started_at: datetime, completed_at: datetime) -> int:
    return max(0, int((completed_at - started_at).total_seconds() * 1000))


def failed_outcome(
    phase: PipelinePhase,
    data: Mapping[str, Any],
    error: BaseException,
    started_at: datetime,
    completed_at: datetime,
) -> PhaseOutcome:
    """Outcome for a phase that raised instead of returning."""
    return PhaseOutcome(
        phase=phase,
        success=False,
        data=dict(data),
        errors=(f"{phase.value} failed: {error}",),
        metrics=PhaseMetrics(
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms(started_at, completed_at),
            records_processed=0,
            records_success=0,
            records_failed=1,
        ),
    )


def first_rows(data: Mapping[str, Any], *keys: str) -> list[dict[str, Any]] | None:
    """Return the first present list under ``keys``, or None."""
    for key in keys:
        rows = data.get(key)
        if isinstance(rows, (list, tuple)):
            return list(rows)
    return None


# =============================================================================
# PhaseRegistry
# =============================================================================


class PhaseRegistry:
    """Registry mapping PipelinePhase to its PhaseProcessor.

    Contract:
        - ``register()`` adds a processor; raises ValueError on duplicate.
        - ``get()`` retrieves by phase; raises KeyError if missing.
        - ``find()`` returns None when the phase has no processor.
    """

    def __init__(self) -> None:
        self._phases: dict[PipelinePhase, PhaseProcessor] = {}

    def register(self, processor: PhaseProcessor) -> None:
        """Register a phase processor.

        Raises:
            ValueError: If a processor for the same phase is already registered.
        """
        phase = PipelinePhase(processor.phase)
        if phase in self._phases:
            raise ValueError(f"Phase '{phase.value}' is already registered")
        self._phases[phase] = processor

    def get(self, phase: PipelinePhase) -> PhaseProcessor:
        """Retrieve the processor for a phase.

        Raises:
            KeyError: If no processor is registered for the phase.
        """
        try:
            return self._phases[PipelinePhase(phase)]
        except KeyError:
            raise KeyError(
                f"No processor registered for phase '{PipelinePhase(phase).value}'. "
                f"Available: {list(self.list_phases())}"
            ) from None

    def find(self, phase: PipelinePhase) -> PhaseProcessor | None:
        return self._phases.get(PipelinePhase(phase))

    def list_phases(self) -> tuple[str, ...]:
        """Return registered phase names, sorted."""
        return tuple(sorted(p.value for p in self._phases))

    def __len__(self) -> int:
        return len(self._phases)

    def __contains__(self, phase: object) -> bool:
        try:
            return PipelinePhase(phase) in self._phases
        except ValueError:
            return False
