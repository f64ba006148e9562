"""
Typed exception hierarchy for the asset import pipeline.

Every exception carries a machine-readable ``code`` class attribute and
stores its context as attributes so it survives logging and serialization
(``StructuredFormatter`` emits them as ``exc_<name>`` fields).

    AssetPipelineError (base)
    |
    +-- ParseError
    +-- RowValidationError
    |
    +-- RuleError
    |   +-- RuleConfigError
    |   +-- RuleProcessingError
    |   +-- RuleNotFoundError
    |   +-- ProcessorNotRegisteredError
    |
    +-- PhaseError
    |   +-- PhaseFailure
    |   +-- PhaseNotRegisteredError
    |
    +-- PersistenceError
    |
    +-- ImportJobError
        +-- ImportJobNotFoundError
        +-- InvalidJobTransitionError
        +-- FileNotFoundInStorageError

Propagation policy:
    Row-scoped and rule-scoped problems are normally collected as messages
    and attached to rows / phase records, not raised.  ``PersistenceError``
    is logged by the orchestrator and never aborts a run.  Lookup and
    lifecycle errors (``*NotFoundError``, ``InvalidJobTransitionError``)
    propagate to the caller.
"""

from __future__ import annotations

from typing import Sequence


class AssetPipelineError(Exception):
    """Base exception for all asset pipeline errors."""

    code: str = "PIPELINE_ERROR"


# Parsing and row validation


class ParseError(AssetPipelineError):
    """CSV input is empty or could not be parsed into any rows."""

    code: str = "CSV_PARSE_ERROR"

    def __init__(self, source: str, errors: Sequence[str]):
        self.source = source
        self.errors = tuple(errors)
        detail = "; ".join(self.errors) if self.errors else "no rows"
        super().__init__(f"Failed to parse {source}: {detail}")


class RowValidationError(AssetPipelineError):
    """A row is missing a required field."""

    code: str = "ROW_VALIDATION_ERROR"

    def __init__(self, row_number: int, field: str, message: str):
        self.row_number = row_number
        self.field = field
        super().__init__(f"Row {row_number}: {message}")


# Rules


class RuleError(AssetPipelineError):
    """Base exception for rule-related errors."""

    code: str = "RULE_ERROR"


class RuleConfigError(RuleError):
    """A rule's configuration is malformed for its processor type."""

    code: str = "RULE_CONFIG_INVALID"

    def __init__(self, rule_name: str, rule_type: str, errors: Sequence[str]):
        self.rule_name = rule_name
        self.rule_type = rule_type
        self.errors = tuple(errors)
        super().__init__(
            f"Invalid config for rule {rule_name}: {', '.join(self.errors)}"
        )


class RuleProcessingError(RuleError):
    """A processor could not apply a rule to a value."""

    code: str = "RULE_PROCESSING_FAILED"

    def __init__(self, rule_name: str, message: str):
        self.rule_name = rule_name
        super().__init__(f"Rule {rule_name} failed: {message}")


class RuleNotFoundError(RuleError):
    """Rule with the given id does not exist."""

    code: str = "RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Rule not found: {rule_id}")


class ProcessorNotRegisteredError(RuleError):
    """No processor is registered for a rule type."""

    code: str = "PROCESSOR_NOT_REGISTERED"

    def __init__(self, rule_type: str, available: Sequence[str] = ()):
        self.rule_type = rule_type
        self.available = tuple(available)
        super().__init__(
            f"No processor registered for rule type '{rule_type}'. "
            f"Available: {list(self.available)}"
        )


# Phases


class PhaseError(AssetPipelineError):
    """Base exception for phase-related errors."""

    code: str = "PHASE_ERROR"


class PhaseFailure(PhaseError):
    """A phase reported failure with errors; remaining phases are halted."""

    code: str = "PHASE_FAILED"

    def __init__(self, phase: str, errors: Sequence[str]):
        self.phase = phase
        self.errors = tuple(errors)
        super().__init__(f"Phase {phase} failed: {'; '.join(self.errors)}")


class PhaseNotRegisteredError(PhaseError):
    """No processor is registered for a pipeline phase (strict mode only)."""

    code: str = "PHASE_NOT_REGISTERED"

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(f"No processor registered for phase {phase}")


# Persistence


class PersistenceError(AssetPipelineError):
    """An audit write or bulk insert failed."""

    code: str = "PERSISTENCE_FAILED"

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


# Import jobs


class ImportJobError(AssetPipelineError):
    """Base exception for import job errors."""

    code: str = "IMPORT_JOB_ERROR"


class ImportJobNotFoundError(ImportJobError):
    """Import job with the given id does not exist."""

    code: str = "IMPORT_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Import job not found: {job_id}")


class InvalidJobTransitionError(ImportJobError):
    """Requested job status change is not allowed from the current status."""

    code: str = "INVALID_JOB_TRANSITION"

    def __init__(self, job_id: str, from_status: str, to_status: str):
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Import job {job_id} cannot move from {from_status} to {to_status}"
        )


class FileNotFoundInStorageError(ImportJobError):
    """Storage has no file with the given id."""

    code: str = "FILE_NOT_FOUND"

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File not found: {file_id}")
