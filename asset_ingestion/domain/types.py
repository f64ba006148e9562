"""
asset_ingestion.domain.types -- Pure frozen dataclasses for the import pipeline.

ZERO I/O. Imports only from asset_kernel/domain/.

Defines:
    - Pipeline phases and their fixed execution order
    - Rule types, job / staging / phase-result status enums
    - Target-schema enums (AssetStatus, AssetCondition)
    - Job, staging row, rule and phase-result snapshots
    - Service result DTOs (status report, staged rows, approval, cleanup, preview)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Phases and rule types
# =============================================================================


class PipelinePhase(str, Enum):
    """The six fixed pipeline stages."""

    EXTRACT = "EXTRACT"
    VALIDATE = "VALIDATE"
    CLEAN = "CLEAN"
    TRANSFORM = "TRANSFORM"
    MAP = "MAP"
    LOAD = "LOAD"


PIPELINE_ORDER: tuple[PipelinePhase, ...] = (
    PipelinePhase.EXTRACT,
    PipelinePhase.VALIDATE,
    PipelinePhase.CLEAN,
    PipelinePhase.TRANSFORM,
    PipelinePhase.MAP,
    PipelinePhase.LOAD,
)


class RuleType(str, Enum):
    """Processor type tags for persisted rules."""

    TRIM = "TRIM"
    REGEX_REPLACE = "REGEX_REPLACE"
    EXACT_REPLACE = "EXACT_REPLACE"
    REMOVE_DUPLICATES = "REMOVE_DUPLICATES"
    TO_UPPERCASE = "TO_UPPERCASE"
    SPECIAL_CHAR_REMOVE = "SPECIAL_CHAR_REMOVE"


WILDCARD_TARGET = "*"


# =============================================================================
# Status enums
# =============================================================================


class ImportJobStatus(str, Enum):
    """Import job lifecycle status."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    STAGED = "STAGED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportJobStatus.COMPLETED, ImportJobStatus.FAILED)


# Allowed lifecycle moves; anything else is InvalidJobTransitionError.
JOB_TRANSITIONS: dict[ImportJobStatus, frozenset[ImportJobStatus]] = {
    ImportJobStatus.PENDING: frozenset({ImportJobStatus.RUNNING, ImportJobStatus.FAILED}),
    ImportJobStatus.RUNNING: frozenset({ImportJobStatus.STAGED, ImportJobStatus.FAILED}),
    ImportJobStatus.STAGED: frozenset({ImportJobStatus.COMPLETED, ImportJobStatus.FAILED}),
    ImportJobStatus.COMPLETED: frozenset(),
    ImportJobStatus.FAILED: frozenset(),
}


class PhaseStatus(str, Enum):
    """Outcome recorded in a PhaseResult."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class LoadAction(str, Enum):
    """What LOAD decided for a staged row."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"


class LoadStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class AssetStatus(str, Enum):
    """Closed status enumeration of the target asset schema."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"
    DISPOSED = "DISPOSED"


class AssetCondition(str, Enum):
    """Closed condition enumeration of the target asset schema."""

    NEW = "NEW"
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    BROKEN = "BROKEN"
    UNKNOWN = "UNKNOWN"


# =============================================================================
# Persisted entity snapshots
# =============================================================================


@dataclass(frozen=True)
class ImportJob:
    """Immutable snapshot of one import attempt."""

    job_id: UUID
    file_id: str
    status: ImportJobStatus
    total_rows: int = 0
    processed_rows: int = 0
    error_rows: int = 0
    errors: tuple[str, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    created_by_id: UUID | None = None


@dataclass(frozen=True)
class StagingAssetRow:
    """Immutable snapshot of one candidate record awaiting approval."""

    row_id: UUID
    job_id: UUID
    row_number: int  # 1-based position in the source file
    raw_data: dict[str, Any]
    mapped_data: dict[str, Any] | None
    is_valid: bool
    will_import: bool
    validation_errors: tuple[str, ...] = ()
    action: LoadAction = LoadAction.INSERT


@dataclass(frozen=True)
class PipelineRule:
    """Immutable snapshot of one configurable rule."""

    rule_id: UUID
    name: str
    phase: PipelinePhase
    rule_type: str  # RuleType value; unregistered tags are tolerated
    target: str
    config: dict[str, Any] = field(default_factory=dict)
    priority: int = 0
    is_active: bool = True
    description: str | None = None
    created_at: datetime | None = None

    @property
    def is_wildcard(self) -> bool:
        return self.target == WILDCARD_TARGET


@dataclass(frozen=True)
class PhaseResultRecord:
    """Immutable snapshot of the audit record for one phase of one job."""

    result_id: UUID
    job_id: UUID
    phase: PipelinePhase
    status: PhaseStatus
    rows_processed: int
    rows_modified: int
    rows_failed: int
    applied_rules: tuple[str, ...] = ()
    sample_before: tuple[dict[str, Any], ...] = ()
    sample_after: tuple[dict[str, Any], ...] = ()
    transformations: tuple[dict[str, Any], ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0


# =============================================================================
# Service result DTOs
# =============================================================================


@dataclass(frozen=True)
class StoredFile:
    """A file the storage collaborator can serve to the pipeline."""

    file_id: str
    name: str
    size_bytes: int | None = None


@dataclass(frozen=True)
class JobProgress:
    total: int
    processed: int


@dataclass(frozen=True)
class JobStatusReport:
    """Pollable view of a job."""

    job_id: UUID
    file_id: str
    status: ImportJobStatus
    progress: JobProgress
    errors: tuple[str, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class StagedRows:
    """Staged rows for one job with validity counts."""

    job_id: UUID
    rows: tuple[StagingAssetRow, ...]
    valid_count: int
    invalid_count: int

    @property
    def total(self) -> int:
        return self.valid_count + self.invalid_count


@dataclass(frozen=True)
class ApprovalStats:
    total: int
    successful: int
    failed: int
    skipped: int


@dataclass(frozen=True)
class ApprovalResult:
    """Result of promoting a job's staged rows into the asset store."""

    job_id: UUID
    success: bool
    stats: ApprovalStats
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class CleanupResult:
    jobs_deleted: int
    staging_rows_deleted: int
    phase_results_deleted: int = 0


@dataclass(frozen=True)
class FilePreview:
    """First rows of a file with long values truncated."""

    file_id: str
    columns: tuple[str, ...]
    rows: tuple[dict[str, str], ...]
    total_rows: int
    errors: tuple[str, ...] = ()
