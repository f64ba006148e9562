"""
Staging ORM models for the asset import pipeline.

Contract:
    ImportJobModel persists one import attempt and its lifecycle status.
    StagingAssetRowModel persists one candidate asset per source row with
    raw_data, mapped_data, validity, and validation errors.  Rows are
    cascade-deleted with their job and removed on approve / reject.

Architecture: asset_ingestion/models. Imports from asset_kernel.db.base only.

Invariants enforced:
    - (job_id, row_number) is unique.
    - completed_at is written once, when the job enters a terminal status
      (enforced by ImportJobService, stored here).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from asset_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from asset_ingestion.domain.types import ImportJob, StagingAssetRow
    from asset_ingestion.models.audit import PhaseResultModel


def _to_json_safe(obj: Any) -> Any:
    """Convert values to JSON-serializable form (Decimal -> str, etc.)."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): _to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_json_safe(v) for v in obj]
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    return obj


class ImportJobModel(TrackedBase):
    """One import attempt for one source file."""

    __tablename__ = "import_jobs"

    __table_args__ = (
        Index("ix_import_jobs_status_completed", "status", "completed_at"),
    )

    file_id: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    processed_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    error_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    staging_rows: Mapped[list["StagingAssetRowModel"]] = relationship(
        "StagingAssetRowModel",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    phase_results: Mapped[list["PhaseResultModel"]] = relationship(
        "PhaseResultModel",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dto(self) -> ImportJob:
        from asset_ingestion.domain.types import ImportJob, ImportJobStatus

        return ImportJob(
            job_id=self.id,
            file_id=self.file_id,
            status=ImportJobStatus(self.status),
            total_rows=self.total_rows,
            processed_rows=self.processed_rows,
            error_rows=self.error_rows,
            errors=tuple(self.errors or ()),
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_at=self.created_at,
            created_by_id=self.created_by_id,
        )


class StagingAssetRowModel(TrackedBase):
    """Single staged asset row within a job."""

    __tablename__ = "staging_asset_rows"

    __table_args__ = (
        UniqueConstraint("job_id", "row_number", name="uq_staging_job_row"),
        Index("ix_staging_asset_rows_job_valid", "job_id", "is_valid"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    row_number: Mapped[int] = mapped_column(nullable=False)
    raw_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    mapped_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False)
    will_import: Mapped[bool] = mapped_column(Boolean, nullable=False)
    validation_errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    action: Mapped[str] = mapped_column(String(10), nullable=False, default="INSERT")

    job: Mapped["ImportJobModel"] = relationship(
        "ImportJobModel",
        back_populates="staging_rows",
        foreign_keys=[job_id],
    )

    def to_dto(self) -> StagingAssetRow:
        from asset_ingestion.domain.types import LoadAction, StagingAssetRow

        return StagingAssetRow(
            row_id=self.id,
            job_id=self.job_id,
            row_number=self.row_number,
            raw_data=dict(self.raw_data or {}),
            mapped_data=dict(self.mapped_data) if self.mapped_data is not None else None,
            is_valid=self.is_valid,
            will_import=self.will_import,
            validation_errors=tuple(self.validation_errors or ()),
            action=LoadAction(self.action),
        )

    @classmethod
    def from_dto(cls, dto: StagingAssetRow, created_by_id: UUID) -> StagingAssetRowModel:
        return cls(
            id=dto.row_id,
            job_id=dto.job_id,
            row_number=dto.row_number,
            raw_data=_to_json_safe(dto.raw_data),
            mapped_data=_to_json_safe(dto.mapped_data) if dto.mapped_data is not None else None,
            is_valid=dto.is_valid,
            will_import=dto.will_import,
            validation_errors=list(dto.validation_errors) or None,
            action=dto.action.value,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
