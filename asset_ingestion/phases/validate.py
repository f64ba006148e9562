"""
ValidatePhase -- split extracted rows into valid and invalid.

Contract:
    Requires ``rows``.  A row missing a required field (default Asset Tag and
    Asset Name) is invalid.  Status, cost, date, tag shape and manufacturer
    length problems are warnings only.  All messages are prefixed
    ``Row N: `` with N the 1-based row position.

    Output keys:
        valid_rows          rows that passed, in source order
        invalid_rows        [{row_number, row, errors}]
        valid_row_numbers   row numbers of ``valid_rows``, index-aligned
        validation_results  [{row, errors, warnings}] for every row

Invariants enforced:
    - The phase succeeds whenever it could inspect the input, even if every
      row is invalid; invalid rows are staged later with their errors.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from asset_config.schema import PipelineSettings
from asset_kernel.domain.clock import Clock
from asset_kernel.domain.dtos import ValidationError, ValidationResult
from asset_kernel.exceptions import RowValidationError
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import PipelinePhase
from asset_ingestion.phases.base import BasePhase, PhaseContext, PhaseWork
from asset_ingestion.phases.values import is_blank, parse_cost, parse_date

logger = get_logger("ingestion.phases.validate")

_STARTS_WITH_LETTER = re.compile(r"^[A-Za-z]")

# Display caps for the phase-level message lists.
MAX_ERRORS = 20
MAX_WARNINGS = 10


def validate_row(row: Mapping[str, Any], row_number: int, settings: PipelineSettings) -> ValidationResult:
    """Check one row; errors make it invalid, warnings never do."""
    errors = tuple(
        ValidationError(
            code=RowValidationError.code,
            message=f"Missing required field: {name}",
            field=name,
            details={"row_number": row_number},
        )
        for name in settings.required_fields
        if is_blank(row.get(name))
    )
    warnings: list[str] = []

    status = row.get("Status")
    if isinstance(status, str) and status.strip():
        if status.strip().upper() not in settings.valid_statuses:
            warnings.append(
                f"Invalid status '{status}'. Will default to '{settings.default_status}'"
            )

    cost = row.get("Purchase Cost")
    if not is_blank(cost) and parse_cost(cost) is None:
        warnings.append("Purchase Cost must be a valid number")

    purchased = row.get("Purchase Date")
    if not is_blank(purchased) and parse_date(purchased) is None:
        warnings.append("Invalid purchase date format")

    tag = row.get("Asset Tag")
    if isinstance(tag, str) and tag.strip() and not _STARTS_WITH_LETTER.match(tag.strip()):
        warnings.append("Asset Tag should start with a letter")

    manufacturer = row.get("Manufacturer")
    if isinstance(manufacturer, str) and len(manufacturer) > settings.max_manufacturer_length:
        warnings.append("Manufacturer name seems unusually long")

    return ValidationResult(errors=errors, warnings=tuple(warnings))


class ValidatePhase(BasePhase):
    """VALIDATE: required fields and data-shape checks."""

    phase = PipelinePhase.VALIDATE

    def __init__(self, settings: PipelineSettings, clock: Clock | None = None):
        super().__init__(clock)
        self._settings = settings

    def _run(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseWork:
        rows = data.get("rows")
        if not isinstance(rows, (list, tuple)):
            raise ValueError("Invalid input: expected rows array from EXTRACT phase")

        valid_rows: list[dict[str, Any]] = []
        valid_row_numbers: list[int] = []
        invalid_rows: list[dict[str, Any]] = []
        results: list[dict[str, Any]] = []
        errors: list[str] = []
        warnings: list[str] = []

        for index, row in enumerate(rows):
            row_number = index + 1
            result = validate_row(row, row_number, self._settings)
            results.append(
                {
                    "row": row_number,
                    "errors": list(result.messages),
                    "warnings": list(result.warnings),
                }
            )
            errors.extend(f"Row {row_number}: {m}" for m in result.messages)
            warnings.extend(f"Row {row_number}: {w}" for w in result.warnings)

            if result.is_valid:
                valid_rows.append(dict(row))
                valid_row_numbers.append(row_number)
            else:
                invalid_rows.append(
                    {"row_number": row_number, "row": dict(row), "errors": list(result.messages)}
                )

        warnings = warnings[:MAX_WARNINGS]
        if invalid_rows:
            warnings.append(f"{len(invalid_rows)} rows failed validation")

        logger.debug(
            "rows_validated",
            extra={"valid": len(valid_rows), "invalid": len(invalid_rows)},
        )

        return PhaseWork(
            data={
                **data,
                "valid_rows": valid_rows,
                "invalid_rows": invalid_rows,
                "valid_row_numbers": valid_row_numbers,
                "validation_results": results,
            },
            processed=len(rows),
            succeeded=len(valid_rows),
            failed=len(invalid_rows),
            errors=tuple(errors[:MAX_ERRORS]),
            warnings=tuple(warnings),
        )
