"""
PhaseResultRecorder -- append-only audit of pipeline phases.

Contract:
    ``record()`` INSERTs one PhaseResult for (job, phase) inside a SAVEPOINT
    and returns its snapshot.  Any failure (unknown job, duplicate phase for
    the job, database error) surfaces as PersistenceError after the SAVEPOINT
    is rolled back, so the caller's transaction stays usable.
    ``list_for_job()`` returns a job's records in pipeline order.

Invariants enforced:
    - Records are never updated.
    - Samples are capped at ``sample_limit`` rows and the transformation
      trace at ``max_transformations`` entries.
"""

from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_config.schema import PipelineSettings
from asset_kernel.exceptions import PersistenceError
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import (
    PIPELINE_ORDER,
    PhaseResultRecord,
    PhaseStatus,
)
from asset_ingestion.models.audit import PhaseResultModel
from asset_ingestion.models.staging import ImportJobModel, _to_json_safe
from asset_ingestion.phases.base import PhaseOutcome
from asset_ingestion.rules.store import SYSTEM_ACTOR_ID

logger = get_logger("ingestion.phase_recorder")


class PhaseResultRecorder:
    """Writes and reads PhaseResult audit records."""

    def __init__(
        self,
        session: Session,
        settings: PipelineSettings,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        self._session = session
        self._settings = settings
        self._actor_id = actor_id

    def record(
        self,
        job_id: UUID,
        outcome: PhaseOutcome,
        sample_before: Sequence[dict[str, Any]] = (),
        sample_after: Sequence[dict[str, Any]] = (),
    ) -> PhaseResultRecord:
        """Persist the audit record for one phase execution.

        Raises:
            PersistenceError: The job does not exist or the write failed.
        """
        limit = self._settings.sample_limit
        metrics = outcome.metrics
        model = PhaseResultModel(
            id=uuid4(),
            job_id=job_id,
            phase=outcome.phase.value,
            status=(PhaseStatus.SUCCESS if outcome.success else PhaseStatus.FAILED).value,
            rows_processed=metrics.records_processed,
            rows_modified=len(outcome.debug.transformations),
            rows_failed=metrics.records_failed,
            applied_rules=list(outcome.debug.rules_applied),
            sample_before=_to_json_safe(list(sample_before)[:limit]),
            sample_after=_to_json_safe(list(sample_after)[:limit]),
            transformations=_to_json_safe(
                list(outcome.debug.transformations)[: self._settings.max_transformations]
            ),
            errors=list(outcome.errors),
            warnings=list(outcome.warnings),
            started_at=metrics.started_at,
            completed_at=metrics.completed_at,
            duration_ms=metrics.duration_ms,
            created_by_id=self._actor_id,
            updated_by_id=None,
        )

        operation = f"record {outcome.phase.value} result"
        savepoint = self._session.begin_nested()
        try:
            if self._session.get(ImportJobModel, job_id) is None:
                raise PersistenceError(operation, f"import job {job_id} does not exist")
            self._session.add(model)
            self._session.flush()
        except PersistenceError:
            savepoint.rollback()
            raise
        except Exception as exc:
            savepoint.rollback()
            raise PersistenceError(operation, str(exc)) from exc
        savepoint.commit()

        logger.debug(
            "phase_result_recorded",
            extra={"job_id": str(job_id), "phase": outcome.phase.value},
        )
        return model.to_dto()

    def list_for_job(self, job_id: UUID) -> tuple[PhaseResultRecord, ...]:
        order = {phase.value: i for i, phase in enumerate(PIPELINE_ORDER)}
        models = list(
            self._session.scalars(
                select(PhaseResultModel).where(PhaseResultModel.job_id == job_id)
            )
        )
        models.sort(key=lambda m: order.get(m.phase, len(order)))
        return tuple(m.to_dto() for m in models)
