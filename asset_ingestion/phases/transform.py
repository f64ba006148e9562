"""
TransformPhase -- value normalization ahead of schema mapping.

Input is ``cleaned_rows``, else ``valid_rows``, else ``rows``.  Per row:
Status and Condition are trimmed and upper-cased, every string value is
trimmed, Purchase Cost becomes a plain numeric string, Purchase Date
becomes ISO ``yyyy-mm-dd``, and ``_processed_at`` / ``_row_index`` are
stamped.  Unparsable costs and dates are left untouched for Map to report.

Output key: ``transformed_rows``.
"""

from __future__ import annotations

from typing import Any, Mapping

from asset_ingestion.domain.types import PipelinePhase
from asset_ingestion.phases.base import BasePhase, PhaseContext, PhaseWork, first_rows
from asset_ingestion.phases.values import parse_cost, parse_date

MAX_DEBUG_TRANSFORMATIONS = 10

_ENUM_FIELDS = ("Status", "Condition")


class TransformPhase(BasePhase):
    """TRANSFORM: normalize formats."""

    phase = PipelinePhase.TRANSFORM

    def _run(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseWork:
        rows = first_rows(data, "cleaned_rows", "valid_rows", "rows")
        if rows is None:
            raise ValueError("Invalid input: expected rows array from previous phase")

        processed_at = self._clock.now_utc().isoformat()
        transformed: list[dict[str, Any]] = []
        transformations: list[dict[str, Any]] = []

        for index, row in enumerate(rows):
            new_row, changes = self._transform_row(row)
            new_row["_processed_at"] = processed_at
            new_row["_row_index"] = index
            transformed.append(new_row)
            transformations.extend(changes)

        warnings = (f"Applied {len(transformations)} transformations",) if transformations else ()
        return PhaseWork(
            data={**data, "transformed_rows": transformed},
            processed=len(rows),
            succeeded=len(rows),
            warnings=warnings,
            transformations=tuple(transformations[:MAX_DEBUG_TRANSFORMATIONS]),
        )

    def _transform_row(self, row: Mapping[str, Any]) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        out = dict(row)
        changes: list[dict[str, Any]] = []

        def record(key: str, after: Any) -> None:
            if out[key] != after:
                changes.append({"field": key, "before": out[key], "after": after})
                out[key] = after

        for key in _ENUM_FIELDS:
            if isinstance(out.get(key), str) and out[key]:
                record(key, out[key].strip().upper())

        for key, value in list(out.items()):
            if isinstance(value, str):
                record(key, value.strip())

        cost = out.get("Purchase Cost")
        if isinstance(cost, str) and cost:
            amount = parse_cost(cost)
            if amount is not None:
                record("Purchase Cost", str(amount))

        purchased = out.get("Purchase Date")
        if isinstance(purchased, str) and purchased:
            parsed = parse_date(purchased)
            if parsed is not None:
                record("Purchase Date", parsed.isoformat())

        return out, changes
