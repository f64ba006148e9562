"""
LoadPhase -- stage the run's rows for review.

Contract:
    Writes one StagingAssetRow per source row into the job's staging area:
    mapped rows as ``is_valid=True`` with their mapped record, rows that
    failed Validate as ``is_valid=False`` with their error list.  Rows are
    written in batches of ``batch_size``, each inside its own SAVEPOINT.
    For every mapped row an existence check decides INSERT vs UPDATE.

    Output key: ``load_results`` -- ``[{row_number, action, status, error?}]``.

Architecture: asset_ingestion/phases.  Session injected; flushes only.

Invariants enforced:
    - A failed batch rolls back only its own SAVEPOINT and marks every row
      in it FAILED; earlier batches stay staged.
    - ``success`` is True only when no row failed to stage.
    - Raw values are truncated to ``raw_value_length`` before storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from asset_config.schema import PipelineSettings
from asset_kernel.domain.clock import Clock
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import (
    LoadAction,
    LoadStatus,
    PipelinePhase,
    StagingAssetRow,
)
from asset_ingestion.models.staging import ImportJobModel, StagingAssetRowModel
from asset_ingestion.phases.base import BasePhase, PhaseContext, PhaseWork, first_rows
from asset_ingestion.rules.store import SYSTEM_ACTOR_ID

logger = get_logger("ingestion.phases.load")

RecordExists = Callable[[Mapping[str, Any]], bool]


def never_exists(record: Mapping[str, Any]) -> bool:
    """Default existence check: every record is new."""
    return False


@dataclass(frozen=True)
class _StageEntry:
    row: StagingAssetRow
    tag: str


def truncate_values(row: Mapping[str, Any], limit: int) -> dict[str, Any]:
    return {
        key: value[:limit] if isinstance(value, str) and len(value) > limit else value
        for key, value in row.items()
    }


def batched(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class LoadPhase(BasePhase):
    """LOAD: batch rows into the staging table."""

    phase = PipelinePhase.LOAD

    def __init__(
        self,
        session: Session,
        settings: PipelineSettings,
        clock: Clock | None = None,
        record_exists: RecordExists | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ):
        super().__init__(clock)
        self._session = session
        self._settings = settings
        self._record_exists = record_exists or never_exists
        self._actor_id = actor_id

    @property
    def rules(self) -> tuple[str, ...]:
        return (
            f"BATCH_SIZE ({self._settings.batch_size})",
            "CONFLICT_RESOLUTION (upsert)",
            "TRANSACTION_BOUNDARY (per batch)",
        )

    def _run(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseWork:
        entries = self._build_entries(data, context.job_id)

        warnings: list[str] = []
        stage = self._session.get(ImportJobModel, context.job_id) is not None
        if not stage:
            warnings.append(f"Import job {context.job_id} not found; rows were not staged")

        results: list[dict[str, Any]] = []
        transformations: list[dict[str, Any]] = []
        success_count = 0
        failure_count = 0

        for index, batch in enumerate(batched(entries, self._settings.batch_size)):
            error = self._write_batch(batch, index) if stage else None
            for entry in batch:
                if error is None:
                    results.append(
                        {
                            "row_number": entry.row.row_number,
                            "action": entry.row.action.value,
                            "status": LoadStatus.SUCCESS.value,
                        }
                    )
                    if entry.row.is_valid:
                        transformations.append(_action_trace(entry))
                    success_count += 1
                else:
                    results.append(
                        {
                            "row_number": entry.row.row_number,
                            "action": entry.row.action.value,
                            "status": LoadStatus.FAILED.value,
                            "error": error,
                        }
                    )
                    failure_count += 1

        errors = (f"{failure_count} records failed to load",) if failure_count else ()
        logger.info(
            "rows_staged",
            extra={
                "job_id": str(context.job_id),
                "staged": success_count if stage else 0,
                "failed": failure_count,
            },
        )
        return PhaseWork(
            data={**data, "load_results": results},
            processed=len(entries),
            succeeded=success_count,
            failed=failure_count,
            success=failure_count == 0,
            errors=errors,
            warnings=tuple(warnings),
            rules_applied=self.rules,
            transformations=tuple(transformations),
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _build_entries(self, data: Mapping[str, Any], job_id: UUID) -> list[_StageEntry]:
        mapped = first_rows(data, "mapped_rows", "transformed_rows", "cleaned_rows", "valid_rows", "rows")
        if mapped is None:
            raise ValueError("Invalid input: expected rows array from previous phase")

        raw_rows = data.get("rows") if isinstance(data.get("rows"), (list, tuple)) else mapped
        row_numbers = data.get("valid_row_numbers")
        if not isinstance(row_numbers, (list, tuple)) or len(row_numbers) != len(mapped):
            row_numbers = range(1, len(mapped) + 1)

        limit = self._settings.raw_value_length
        entries: list[_StageEntry] = []

        for record, row_number in zip(mapped, row_numbers):
            raw = raw_rows[row_number - 1] if 0 < row_number <= len(raw_rows) else record
            action = LoadAction.UPDATE if self._record_exists(record) else LoadAction.INSERT
            entries.append(
                _StageEntry(
                    row=StagingAssetRow(
                        row_id=uuid4(),
                        job_id=job_id,
                        row_number=row_number,
                        raw_data=truncate_values(raw, limit),
                        mapped_data=dict(record),
                        is_valid=True,
                        will_import=True,
                        action=action,
                    ),
                    tag=str(record.get("asset_tag") or "unknown"),
                )
            )

        for invalid in data.get("invalid_rows") or ():
            entries.append(
                _StageEntry(
                    row=StagingAssetRow(
                        row_id=uuid4(),
                        job_id=job_id,
                        row_number=invalid["row_number"],
                        raw_data=truncate_values(invalid["row"], limit),
                        mapped_data=None,
                        is_valid=False,
                        will_import=False,
                        validation_errors=tuple(invalid.get("errors") or ()),
                    ),
                    tag="unknown",
                )
            )

        entries.sort(key=lambda e: e.row.row_number)
        return entries

    def _write_batch(self, batch: Sequence[_StageEntry], index: int) -> str | None:
        """Stage one batch inside a SAVEPOINT; return the error message on failure."""
        savepoint = self._session.begin_nested()
        try:
            self._session.add_all(
                StagingAssetRowModel.from_dto(entry.row, self._actor_id) for entry in batch
            )
            self._session.flush()
        except Exception as exc:
            savepoint.rollback()
            logger.error(
                "staging_batch_failed",
                extra={"batch_index": index, "batch_size": len(batch), "error": str(exc)},
            )
            return str(exc)
        savepoint.commit()
        logger.debug("staging_batch_committed", extra={"batch_index": index, "batch_size": len(batch)})
        return None


def _action_trace(entry: _StageEntry) -> dict[str, Any]:
    if entry.row.action == LoadAction.UPDATE:
        return {"field": f"record_{entry.tag}", "before": "existing record", "after": "updated record"}
    return {"field": f"record_{entry.tag}", "before": "no record", "after": "new record inserted"}
