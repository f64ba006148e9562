"""
MapPhase -- rename CSV columns to asset fields and coerce their types.

Input is ``transformed_rows``, else ``cleaned_rows``, else ``valid_rows``,
else ``rows``.  Columns are renamed through the configured ``field_map``;
unmapped columns are dropped.  Status and condition are mapped into the
closed AssetStatus / AssetCondition enums (unknown or missing values take
the configured defaults), cost becomes Decimal and date becomes
``datetime.date``.  Each record is stamped with ``created_at`` and
``updated_at``.

Output key: ``mapped_rows``.
"""

from __future__ import annotations

from typing import Any, Mapping

from asset_config.schema import PipelineSettings
from asset_kernel.domain.clock import Clock

from asset_ingestion.domain.types import AssetCondition, AssetStatus, PipelinePhase
from asset_ingestion.phases.base import BasePhase, PhaseContext, PhaseWork
from asset_ingestion.phases.values import is_blank, parse_cost, parse_date

MAPPING_RULES = ("FIELD_MAPPING", "ENUM_MAPPING (status)", "ENUM_MAPPING (condition)")

_SOURCE_KEYS = ("transformed_rows", "cleaned_rows", "valid_rows", "rows")


def map_status(value: Any, settings: PipelineSettings) -> AssetStatus:
    if isinstance(value, str) and value.strip():
        mapped = settings.status_map.get(value.strip().upper())
        if mapped is not None:
            return AssetStatus(mapped)
    return AssetStatus(settings.default_status)


def map_condition(value: Any, settings: PipelineSettings) -> AssetCondition:
    if isinstance(value, str) and value.strip():
        mapped = settings.condition_map.get(value.strip().upper())
        if mapped is not None:
            return AssetCondition(mapped)
    return AssetCondition(settings.default_condition)


class MapPhase(BasePhase):
    """MAP: CSV columns -> asset schema."""

    phase = PipelinePhase.MAP

    def __init__(self, settings: PipelineSettings, clock: Clock | None = None):
        super().__init__(clock)
        self._settings = settings

    def _run(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseWork:
        source_key = next(
            (k for k in _SOURCE_KEYS if isinstance(data.get(k), (list, tuple))), None
        )
        if source_key is None:
            raise ValueError("Invalid input: expected rows array from previous phase")
        rows = list(data[source_key])

        row_numbers = list(range(1, len(rows) + 1))
        if source_key != "rows":
            aligned = data.get("valid_row_numbers")
            if isinstance(aligned, (list, tuple)) and len(aligned) == len(rows):
                row_numbers = list(aligned)

        now = self._clock.now_utc()
        mapped_rows: list[dict[str, Any]] = []
        transformations: list[dict[str, Any]] = []
        warnings: list[str] = []

        for row, row_number in zip(rows, row_numbers):
            record: dict[str, Any] = {}
            for column, field_name in self._settings.field_map.items():
                if column not in row:
                    continue
                value = row[column]
                record[field_name] = None if is_blank(value) else value
                transformations.append(
                    {
                        "field": f"{column}_row_{row_number}",
                        "before": f'CSV: "{column}"',
                        "after": f'DB: "{field_name}"',
                    }
                )

            original_status = record.get("status")
            record["status"] = map_status(original_status, self._settings)
            if original_status is not None and original_status != record["status"].value:
                transformations.append(
                    {
                        "field": f"status_enum_row_{row_number}",
                        "before": original_status,
                        "after": record["status"].value,
                    }
                )

            original_condition = record.get("condition")
            record["condition"] = map_condition(original_condition, self._settings)
            if original_condition is not None and original_condition != record["condition"].value:
                transformations.append(
                    {
                        "field": f"condition_enum_row_{row_number}",
                        "before": original_condition,
                        "after": record["condition"].value,
                    }
                )

            if record.get("purchase_cost") is not None:
                cost = parse_cost(record["purchase_cost"])
                if cost is None:
                    warnings.append(
                        f"Row {row_number}: Purchase Cost '{record['purchase_cost']}' is not a number, left empty"
                    )
                record["purchase_cost"] = cost

            if record.get("purchase_date") is not None:
                purchased = parse_date(record["purchase_date"])
                if purchased is None:
                    warnings.append(
                        f"Row {row_number}: Purchase Date '{record['purchase_date']}' is not a date, left empty"
                    )
                record["purchase_date"] = purchased

            record["created_at"] = now
            record["updated_at"] = now
            mapped_rows.append(record)

        return PhaseWork(
            data={**data, "mapped_rows": mapped_rows},
            processed=len(rows),
            succeeded=len(rows),
            warnings=tuple(warnings),
            rules_applied=MAPPING_RULES,
            transformations=tuple(transformations),
        )
