"""
PhaseResult ORM model -- append-only audit trail of pipeline phases.

Contract:
    One row per (job, phase) per orchestration run, written once by
    PhaseResultRecorder immediately after the phase completes, whether or
    not the phase succeeded.  Never updated.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from asset_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from asset_ingestion.domain.types import PhaseResultRecord
    from asset_ingestion.models.staging import ImportJobModel


class PhaseResultModel(TrackedBase):
    """Audit record of one phase execution within one job."""

    __tablename__ = "phase_results"

    __table_args__ = (
        UniqueConstraint("job_id", "phase", name="uq_phase_results_job_phase"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    phase: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    rows_processed: Mapped[int] = mapped_column(default=0, nullable=False)
    rows_modified: Mapped[int] = mapped_column(default=0, nullable=False)
    rows_failed: Mapped[int] = mapped_column(default=0, nullable=False)
    applied_rules: Mapped[list | None] = mapped_column(JSON, nullable=True)
    sample_before: Mapped[list | None] = mapped_column(JSON, nullable=True)
    sample_after: Mapped[list | None] = mapped_column(JSON, nullable=True)
    transformations: Mapped[list | None] = mapped_column(JSON, nullable=True)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)
    warnings: Mapped[list | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int] = mapped_column(default=0, nullable=False)

    job: Mapped["ImportJobModel"] = relationship(
        "ImportJobModel",
        back_populates="phase_results",
        foreign_keys=[job_id],
    )

    def to_dto(self) -> PhaseResultRecord:
        from asset_ingestion.domain.types import PhaseResultRecord, PhaseStatus, PipelinePhase

        return PhaseResultRecord(
            result_id=self.id,
            job_id=self.job_id,
            phase=PipelinePhase(self.phase),
            status=PhaseStatus(self.status),
            rows_processed=self.rows_processed,
            rows_modified=self.rows_modified,
            rows_failed=self.rows_failed,
            applied_rules=tuple(self.applied_rules or ()),
            sample_before=tuple(self.sample_before or ()),
            sample_after=tuple(self.sample_after or ()),
            transformations=tuple(self.transformations or ()),
            errors=tuple(self.errors or ()),
            warnings=tuple(self.warnings or ()),
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
        )
