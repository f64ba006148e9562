"""
Import job service: create -> process -> stage -> approve / reject.

Drives the job lifecycle around PipelineOrchestrator.  Processing stages
rows through the LOAD phase; approval promotes the valid staged rows into
the asset store through the storage collaborator, falling back to
row-by-row inserts (SAVEPOINT per row) when the bulk insert fails.
Uses structured logging (LogContext, get_logger("ingestion.*")).

Job status moves only along JOB_TRANSITIONS; anything else raises
InvalidJobTransitionError.  ``completed_at`` is written once, when a job
first enters COMPLETED or FAILED.  The service flushes; the caller commits.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from asset_config import get_pipeline_settings
from asset_config.schema import PipelineSettings
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.exceptions import ImportJobNotFoundError, InvalidJobTransitionError
from asset_kernel.logging_config import LogContext, get_logger

from asset_ingestion.adapters.base import StorageCollaborator
from asset_ingestion.adapters.csv_extractor import CsvExtractor
from asset_ingestion.domain.types import (
    JOB_TRANSITIONS,
    ApprovalResult,
    ApprovalStats,
    AssetCondition,
    AssetStatus,
    CleanupResult,
    FilePreview,
    ImportJob,
    ImportJobStatus,
    JobProgress,
    JobStatusReport,
    PhaseResultRecord,
    StagedRows,
    StoredFile,
)
from asset_ingestion.models.audit import PhaseResultModel
from asset_ingestion.models.staging import ImportJobModel, StagingAssetRowModel
from asset_ingestion.orchestrator import PipelineOrchestrator
from asset_ingestion.phases.extract import SAMPLE_FILE_ID, sample_extraction
from asset_ingestion.services.phase_recorder import PhaseResultRecorder

logger = get_logger("ingestion.import_service")

_CLEANABLE = (ImportJobStatus.COMPLETED.value, ImportJobStatus.FAILED.value)

REJECTED_MESSAGE = "Import rejected by user"


def _record_from_staged(row: StagingAssetRowModel, job_id: UUID) -> dict[str, Any]:
    """Build an asset record from a staged row's mapped data."""
    data = dict(row.mapped_data or {})
    return {
        **data,
        "asset_tag": data.get("asset_tag") or f"IMPORT-{row.row_number}",
        "name": data.get("name") or "Unnamed Asset",
        "status": data.get("status") or AssetStatus.ACTIVE.value,
        "condition": data.get("condition") or AssetCondition.GOOD.value,
        "source_job_id": str(job_id),
    }


class ImportJobService:
    """Import job lifecycle over one session."""

    def __init__(
        self,
        session: Session,
        storage: StorageCollaborator,
        orchestrator: PipelineOrchestrator | None = None,
        settings: PipelineSettings | None = None,
        clock: Clock | None = None,
        extractor: CsvExtractor | None = None,
    ):
        self._session = session
        self._storage = storage
        self._clock = clock or SystemClock()
        self._settings = settings or get_pipeline_settings()
        self._orchestrator = orchestrator or PipelineOrchestrator.from_session(
            session, storage, settings=self._settings, clock=self._clock,
        )
        self._extractor = extractor or CsvExtractor()
        self._recorder = PhaseResultRecorder(session, self._settings)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_job(self, file_id: str, actor_id: UUID) -> ImportJob:
        """Create a PENDING job for ``file_id``."""
        model = ImportJobModel(
            id=uuid4(),
            file_id=file_id,
            status=ImportJobStatus.PENDING.value,
            total_rows=0,
            processed_rows=0,
            error_rows=0,
            errors=None,
            created_by_id=actor_id,
            updated_by_id=None,
        )
        self._session.add(model)
        self._session.flush()
        logger.info(
            "job_created",
            extra={"job_id": str(model.id), "file_id": file_id, "actor_id": str(actor_id)},
        )
        return model.to_dto()

    def process_import(self, job_id: UUID) -> ImportJob:
        """Run the pipeline for a PENDING job and leave it STAGED or FAILED."""
        model = self._get_job_model(job_id)
        self._transition(model, ImportJobStatus.RUNNING)
        model.started_at = self._clock.now_utc()
        self._session.flush()

        with LogContext.bind(job_id=str(job_id), producer="asset_pipeline"):
            try:
                result = self._orchestrator.orchestrate(model.file_id, job_id=model.id)
            except Exception as exc:
                logger.error("import_crashed", extra={"error": str(exc)}, exc_info=True)
                model.errors = [f"Import failed: {exc}"]
                self._transition(model, ImportJobStatus.FAILED)
                self._session.flush()
                return model.to_dto()

            failure = result.failure
            if failure is not None or not result.success:
                model.errors = list(failure.errors) if failure else ["No pipeline phases were executed"]
                self._transition(model, ImportJobStatus.FAILED)
                logger.warning(
                    "import_failed",
                    extra={"phase": failure.phase if failure else None, "errors": model.errors},
                )
            else:
                valid, invalid = self._count_staged(model.id)
                model.total_rows = valid + invalid
                model.processed_rows = valid
                model.error_rows = invalid
                model.errors = None
                self._transition(model, ImportJobStatus.STAGED)
                logger.info(
                    "import_staged",
                    extra={"valid_rows": valid, "invalid_rows": invalid},
                )
            self._session.flush()
        return model.to_dto()

    def approve_import(self, job_id: UUID) -> ApprovalResult:
        """Promote a STAGED job's valid rows into the asset store.

        Raises:
            ImportJobNotFoundError: Unknown job.
            InvalidJobTransitionError: Job is not STAGED.
        """
        model = self._get_job_model(job_id)
        if model.status != ImportJobStatus.STAGED.value:
            raise InvalidJobTransitionError(
                str(job_id), model.status, ImportJobStatus.COMPLETED.value
            )

        staged = self._staged_models(job_id)
        importable = [r for r in staged if r.is_valid and r.will_import]
        skipped = len(staged) - len(importable)

        if not importable:
            return ApprovalResult(
                job_id=job_id,
                success=False,
                stats=ApprovalStats(total=0, successful=0, failed=0, skipped=skipped),
                errors=("No valid assets to import",),
            )

        records = [_record_from_staged(r, job_id) for r in importable]
        errors: list[str] = []
        try:
            inserted = self._storage.bulk_insert_records(records)
        except Exception as exc:
            logger.warning(
                "bulk_insert_failed",
                extra={"record_count": len(records), "error": str(exc)},
            )
            inserted, errors = self._insert_each(records)

        self._delete_staging([job_id])
        self._transition(model, ImportJobStatus.COMPLETED)
        self._session.flush()

        failed = len(records) - inserted
        logger.info(
            "import_approved",
            extra={"job_id": str(job_id), "inserted": inserted, "failed": failed, "skipped": skipped},
        )
        return ApprovalResult(
            job_id=job_id,
            success=failed == 0,
            stats=ApprovalStats(
                total=len(records), successful=inserted, failed=failed, skipped=skipped,
            ),
            errors=tuple(errors),
        )

    def reject_import(self, job_id: UUID) -> int:
        """Discard a STAGED job's rows; returns how many were cleared."""
        model = self._get_job_model(job_id)
        if model.status != ImportJobStatus.STAGED.value:
            raise InvalidJobTransitionError(
                str(job_id), model.status, ImportJobStatus.FAILED.value
            )
        cleared = self._delete_staging([job_id])
        model.errors = [REJECTED_MESSAGE]
        self._transition(model, ImportJobStatus.FAILED)
        self._session.flush()
        logger.info("import_rejected", extra={"job_id": str(job_id), "cleared": cleared})
        return cleared

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> ImportJob:
        return self._get_job_model(job_id).to_dto()

    def get_job_status(self, job_id: UUID) -> JobStatusReport:
        model = self._get_job_model(job_id)
        return JobStatusReport(
            job_id=model.id,
            file_id=model.file_id,
            status=ImportJobStatus(model.status),
            progress=JobProgress(total=model.total_rows, processed=model.processed_rows),
            errors=tuple(model.errors or ()),
            started_at=model.started_at,
            completed_at=model.completed_at,
        )

    def get_staged_rows(self, job_id: UUID) -> StagedRows:
        self._get_job_model(job_id)
        rows = tuple(m.to_dto() for m in self._staged_models(job_id))
        valid = sum(1 for r in rows if r.is_valid)
        return StagedRows(job_id=job_id, rows=rows, valid_count=valid, invalid_count=len(rows) - valid)

    def list_jobs(self, limit: int = 50) -> tuple[ImportJob, ...]:
        stmt = select(ImportJobModel).order_by(ImportJobModel.created_at.desc()).limit(limit)
        return tuple(m.to_dto() for m in self._session.scalars(stmt))

    def get_phase_results(self, job_id: UUID) -> tuple[PhaseResultRecord, ...]:
        self._get_job_model(job_id)
        return self._recorder.list_for_job(job_id)

    def list_files(self) -> tuple[StoredFile, ...]:
        return self._storage.list_files()

    def preview_file(self, file_id: str, max_rows: int | None = None) -> FilePreview:
        """Parse a file and return its first rows with long values shortened."""
        if file_id == SAMPLE_FILE_ID:
            extraction = sample_extraction()
        else:
            extraction = self._extractor.extract(self._storage.fetch_file_bytes(file_id))

        limit = self._settings.preview_value_length
        rows = tuple(
            {
                key: value[:limit] + "..." if isinstance(value, str) and len(value) > limit else value
                for key, value in row.items()
            }
            for row in extraction.rows[: max_rows or self._settings.preview_rows]
        )
        return FilePreview(
            file_id=file_id,
            columns=extraction.columns,
            rows=rows,
            total_rows=extraction.total_rows,
            errors=extraction.errors,
        )

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------

    def cleanup_old_jobs(self, older_than_hours: int | None = None) -> CleanupResult:
        """Delete finished jobs whose ``completed_at`` is older than the cutoff.

        PENDING, RUNNING and STAGED jobs are never touched.
        """
        hours = self._settings.cleanup_hours if older_than_hours is None else older_than_hours
        cutoff = self._clock.now_utc() - timedelta(hours=hours)
        job_ids = list(
            self._session.scalars(
                select(ImportJobModel.id).where(
                    ImportJobModel.status.in_(_CLEANABLE),
                    ImportJobModel.completed_at.is_not(None),
                    ImportJobModel.completed_at < cutoff,
                )
            )
        )
        if not job_ids:
            return CleanupResult(jobs_deleted=0, staging_rows_deleted=0)

        staging = self._delete_staging(job_ids)
        results = self._session.execute(
            delete(PhaseResultModel).where(PhaseResultModel.job_id.in_(job_ids))
        ).rowcount
        jobs = self._session.execute(
            delete(ImportJobModel).where(ImportJobModel.id.in_(job_ids))
        ).rowcount
        self._session.flush()
        self._session.expire_all()

        logger.info(
            "jobs_cleaned_up",
            extra={"jobs_deleted": jobs, "staging_rows_deleted": staging, "older_than_hours": hours},
        )
        return CleanupResult(jobs_deleted=jobs, staging_rows_deleted=staging, phase_results_deleted=results)

    def clear_all(self) -> CleanupResult:
        """Delete every job, staged row and phase result."""
        staging = self._session.execute(delete(StagingAssetRowModel)).rowcount
        results = self._session.execute(delete(PhaseResultModel)).rowcount
        jobs = self._session.execute(delete(ImportJobModel)).rowcount
        self._session.flush()
        self._session.expire_all()
        logger.warning(
            "import_data_cleared",
            extra={"jobs_deleted": jobs, "staging_rows_deleted": staging},
        )
        return CleanupResult(jobs_deleted=jobs, staging_rows_deleted=staging, phase_results_deleted=results)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _get_job_model(self, job_id: UUID) -> ImportJobModel:
        model = self._session.get(ImportJobModel, job_id)
        if model is None:
            raise ImportJobNotFoundError(str(job_id))
        return model

    def _transition(self, model: ImportJobModel, target: ImportJobStatus) -> None:
        current = ImportJobStatus(model.status)
        if target not in JOB_TRANSITIONS[current]:
            raise InvalidJobTransitionError(str(model.id), current.value, target.value)
        model.status = target.value
        if target.is_terminal and model.completed_at is None:
            model.completed_at = self._clock.now_utc()
        logger.info(
            "job_status_changed",
            extra={"job_id": str(model.id), "from_status": current.value, "to_status": target.value},
        )

    def _staged_models(self, job_id: UUID) -> list[StagingAssetRowModel]:
        stmt = (
            select(StagingAssetRowModel)
            .where(StagingAssetRowModel.job_id == job_id)
            .order_by(StagingAssetRowModel.row_number)
        )
        return list(self._session.scalars(stmt))

    def _count_staged(self, job_id: UUID) -> tuple[int, int]:
        stmt = (
            select(StagingAssetRowModel.is_valid, func.count())
            .where(StagingAssetRowModel.job_id == job_id)
            .group_by(StagingAssetRowModel.is_valid)
        )
        counts = {bool(valid): n for valid, n in self._session.execute(stmt)}
        return counts.get(True, 0), counts.get(False, 0)

    def _delete_staging(self, job_ids: Sequence[UUID]) -> int:
        deleted = self._session.execute(
            delete(StagingAssetRowModel).where(StagingAssetRowModel.job_id.in_(list(job_ids)))
        ).rowcount
        self._session.flush()
        return deleted

    def _insert_each(self, records: Sequence[dict[str, Any]]) -> tuple[int, list[str]]:
        """Row-by-row fallback: one SAVEPOINT per record."""
        inserted = 0
        errors: list[str] = []
        for record in records:
            savepoint = self._session.begin_nested()
            try:
                inserted += self._storage.bulk_insert_records([record])
            except Exception as exc:
                savepoint.rollback()
                message = f"Failed to insert {record.get('asset_tag')}: {exc}"
                errors.append(message)
                logger.warning("asset_insert_failed", extra={"asset_tag": record.get("asset_tag"), "error": str(exc)})
                continue
            savepoint.commit()
        return inserted, errors
