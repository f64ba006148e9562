"""
CleanPhase -- run the persisted CLEAN rules over every valid row.

Contract:
    Before touching rows, provisions the configured default CLEAN rules
    through ``RuleStore.ensure_default_rules`` (a no-op when any active
    CLEAN rule exists).  Each valid row is then passed through the shared
    RuleEngine.  A row whose rule application reports errors keeps its
    pre-clean values and contributes a warning.

    Output key: ``cleaned_rows`` (index-aligned with ``valid_rows``).
    Debug trace: one ``{field: "<key>_row_<n>", before, after}`` entry per
    changed value.
"""

from __future__ import annotations

from typing import Any, Mapping

from asset_config.schema import PipelineSettings
from asset_kernel.domain.clock import Clock
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import PipelinePhase
from asset_ingestion.phases.base import BasePhase, PhaseContext, PhaseWork
from asset_ingestion.rules.base import ProcessingContext
from asset_ingestion.rules.engine import RuleEngine
from asset_ingestion.rules.store import RuleStore

logger = get_logger("ingestion.phases.clean")


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any], row_number: int) -> list[dict[str, Any]]:
    return [
        {"field": f"{key}_row_{row_number}", "before": value, "after": after.get(key)}
        for key, value in before.items()
        if after.get(key) != value
    ]


class CleanPhase(BasePhase):
    """CLEAN: apply configurable cleaning rules."""

    phase = PipelinePhase.CLEAN

    def __init__(
        self,
        rule_store: RuleStore,
        engine: RuleEngine,
        settings: PipelineSettings,
        clock: Clock | None = None,
    ):
        super().__init__(clock)
        self._rule_store = rule_store
        self._engine = engine
        self._settings = settings

    def _run(self, data: Mapping[str, Any], context: PhaseContext) -> PhaseWork:
        rows = data.get("valid_rows")
        if not isinstance(rows, (list, tuple)):
            raise ValueError("Invalid input: expected valid_rows from VALIDATE phase")
        row_numbers = list(data.get("valid_row_numbers") or range(1, len(rows) + 1))

        self._rule_store.ensure_default_rules(
            self.phase, self._settings.default_rules_for(self.phase.value)
        )

        cleaned_rows: list[dict[str, Any]] = []
        transformations: list[dict[str, Any]] = []
        rules_applied: dict[str, None] = {}
        warnings: dict[str, None] = {}
        failed = 0

        for row, row_number in zip(rows, row_numbers):
            application = self._engine.apply(
                row,
                self.phase,
                ProcessingContext(
                    row_number=row_number,
                    job_id=context.job_id,
                    correlation_id=context.correlation_id,
                    metadata=dict(context.metadata),
                ),
            )
            warnings.update(dict.fromkeys(application.warnings))

            if not application.ok:
                failed += 1
                logger.warning(
                    "row_clean_failed",
                    extra={"row_number": row_number, "errors": list(application.errors)},
                )
                warnings.update(dict.fromkeys(f"Row {row_number}: {e}" for e in application.errors))
                cleaned_rows.append(dict(row))
                continue

            cleaned_rows.append(application.row)
            transformations.extend(changed_fields(row, application.row, row_number))
            rules_applied.update(dict.fromkeys(application.rules_applied))

        return PhaseWork(
            data={**data, "cleaned_rows": cleaned_rows},
            processed=len(rows),
            succeeded=len(rows) - failed,
            failed=failed,
            warnings=tuple(warnings),
            rules_applied=tuple(rules_applied),
            transformations=tuple(transformations),
        )
